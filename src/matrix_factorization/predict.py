from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Iterable, Optional

import torch

from .errors import ModelNotReadyError, OutOfRangeError
from .model import MatrixFactorization


@dataclass(frozen=True)
class PredictionResult:
    userId: int
    movieId: int
    rating: float


def _check_index(value: object, size: int, *, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise OutOfRangeError(f"{what} must be an integer index, got {value!r}")
    idx = int(value)
    if not 0 <= idx < int(size):
        raise OutOfRangeError(f"{what} {idx} outside [0, {int(size)})")
    return idx


def _model_device(model: MatrixFactorization) -> torch.device:
    return model.user_embed.weight.device


def predict_rating(
    model: Optional[MatrixFactorization],
    user_id: int,
    movie_id: int,
    *,
    min_rating: float = 1.0,
    max_rating: float = 5.0,
) -> float:
    """Dot product of the user and movie vectors, clamped into [min_rating, max_rating]."""
    if model is None:
        raise ModelNotReadyError("no trained model available; run training first")
    u = _check_index(user_id, model.n_users, what="userId")
    m = _check_index(movie_id, model.n_movies, what="movieId")

    device = _model_device(model)
    with torch.no_grad():
        users = torch.tensor([u], dtype=torch.long, device=device)
        movies = torch.tensor([m], dtype=torch.long, device=device)
        raw = model(users, movies)
        clamped = torch.clamp(raw, min=float(min_rating), max=float(max_rating))
    return float(clamped.item())


def top_movies(
    model: Optional[MatrixFactorization],
    user_id: int,
    *,
    k: int = 10,
    exclude: Iterable[int] = (),
    min_rating: float = 1.0,
    max_rating: float = 5.0,
) -> list[PredictionResult]:
    """Rank every movie for a user by clamped predicted rating (ties by movie index)."""
    if model is None:
        raise ModelNotReadyError("no trained model available; run training first")
    u = _check_index(user_id, model.n_users, what="userId")
    skip = {int(m) for m in exclude}

    with torch.no_grad():
        user_vec = model.user_embed.weight[u]
        scores = model.movie_embed.weight @ user_vec
        scores = torch.clamp(scores, min=float(min_rating), max=float(max_rating)).cpu().numpy()

    # Stable sort on the negated score keeps lower movie indices first among ties.
    order = (-scores).argsort(kind="stable")
    out: list[PredictionResult] = []
    for j in order:
        if len(out) >= int(k):
            break
        mid = int(j)
        if mid in skip:
            continue
        out.append(PredictionResult(userId=u, movieId=mid, rating=float(scores[mid])))
    return out
