from __future__ import annotations

import pytest
import torch

from src.matrix_factorization.errors import InvalidDimensionError
from src.matrix_factorization.model import build_model


def test_build_model_has_exact_table_sizes() -> None:
    model = build_model(3, 7, 4, seed=0)

    assert tuple(model.user_embed.weight.shape) == (3, 4)
    assert tuple(model.movie_embed.weight.shape) == (7, 4)
    assert model.n_users == 3 and model.n_movies == 7 and model.latent_dim == 4


@pytest.mark.parametrize(
    "n_users,n_movies,latent_dim",
    [(0, 5, 4), (5, 0, 4), (5, 5, 0), (-1, 5, 4), (True, 5, 4), (2.5, 5, 4)],
)
def test_build_model_rejects_non_positive_sizes(n_users, n_movies, latent_dim) -> None:
    with pytest.raises(InvalidDimensionError):
        build_model(n_users, n_movies, latent_dim)


def test_build_model_is_deterministic_given_seed() -> None:
    a = build_model(4, 4, 3, seed=123)
    b = build_model(4, 4, 3, seed=123)
    c = build_model(4, 4, 3, seed=124)

    assert torch.equal(a.user_embed.weight, b.user_embed.weight)
    assert torch.equal(a.movie_embed.weight, b.movie_embed.weight)
    assert not torch.equal(a.user_embed.weight, c.user_embed.weight)


def test_initial_values_are_small() -> None:
    model = build_model(50, 50, 10, init_std=0.05, seed=0)
    assert float(model.user_embed.weight.abs().max()) < 0.5
    assert abs(float(model.user_embed.weight.mean())) < 0.05


def test_forward_is_row_wise_dot_product() -> None:
    model = build_model(2, 2, 2, seed=0)
    with torch.no_grad():
        model.user_embed.weight.copy_(torch.tensor([[1.0, 2.0], [0.5, 0.0]]))
        model.movie_embed.weight.copy_(torch.tensor([[3.0, 1.0], [2.0, 2.0]]))

    out = model(torch.tensor([0, 1, 0]), torch.tensor([0, 1, 1]))
    assert out.tolist() == pytest.approx([5.0, 1.0, 6.0])
