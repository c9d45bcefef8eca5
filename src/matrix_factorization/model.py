from __future__ import annotations

import logging
import numbers

import torch
import torch.nn as nn

from .errors import InvalidDimensionError


logger = logging.getLogger(__name__)


class MatrixFactorization(nn.Module):
    """Plain MF model: rating ~ dot(user_emb, movie_emb), no biases.

    Both tables use sparse gradients so that an optimizer step only touches
    the rows referenced by the current batch.
    """

    def __init__(self, n_users: int, n_movies: int, *, latent_dim: int = 20) -> None:
        super().__init__()
        self.n_users = int(n_users)
        self.n_movies = int(n_movies)
        self.latent_dim = int(latent_dim)
        self.user_embed = nn.Embedding(self.n_users, self.latent_dim, sparse=True)
        self.movie_embed = nn.Embedding(self.n_movies, self.latent_dim, sparse=True)

    def forward(self, user_idx: torch.Tensor, movie_idx: torch.Tensor) -> torch.Tensor:
        u = self.user_embed(user_idx)
        m = self.movie_embed(movie_idx)
        return (u * m).sum(dim=1)


def _check_dim(name: str, value: object) -> int:
    # bool is an Integral too, but True as a table size is almost certainly a bug.
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidDimensionError(f"{name} must be a positive integer, got {value!r}")
    if int(value) <= 0:
        raise InvalidDimensionError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


def build_model(
    n_users: int,
    n_movies: int,
    latent_dim: int = 20,
    *,
    init_std: float = 0.05,
    seed: int | None = None,
) -> MatrixFactorization:
    """Allocate user/movie tables of exactly the requested sizes.

    Ids are 0-based table indices: a model built with `n_users=3` accepts user
    ids 0, 1 and 2 only. Entries are drawn from N(0, init_std**2); pass `seed`
    for a reproducible initialization.
    """
    n_users = _check_dim("n_users", n_users)
    n_movies = _check_dim("n_movies", n_movies)
    latent_dim = _check_dim("latent_dim", latent_dim)
    if not init_std > 0.0:
        raise InvalidDimensionError(f"init_std must be positive, got {init_std!r}")

    model = MatrixFactorization(n_users, n_movies, latent_dim=latent_dim)

    generator = None
    if seed is not None:
        generator = torch.Generator().manual_seed(int(seed))
    with torch.no_grad():
        model.user_embed.weight.normal_(0.0, float(init_std), generator=generator)
        model.movie_embed.weight.normal_(0.0, float(init_std), generator=generator)

    logger.debug("Built MF model users=%d movies=%d latent_dim=%d seed=%s", n_users, n_movies, latent_dim, seed)
    return model
