from __future__ import annotations

import pytest
import torch

from src.matrix_factorization.errors import ModelNotReadyError, OutOfRangeError
from src.matrix_factorization.model import build_model
from src.matrix_factorization.predict import predict_rating, top_movies


@pytest.fixture
def fixed_model():
    model = build_model(3, 4, 2, seed=0)
    with torch.no_grad():
        model.user_embed.weight.copy_(torch.tensor([[1.0, 1.0], [2.0, 0.0], [0.0, 0.0]]))
        # dots for user 0: 10.0, 3.0, -2.0, 3.0
        model.movie_embed.weight.copy_(torch.tensor([[5.0, 5.0], [1.5, 1.5], [-1.0, -1.0], [3.0, 0.0]]))
    return model


def test_predict_clamps_into_rating_range(fixed_model) -> None:
    assert predict_rating(fixed_model, 0, 0) == 5.0
    assert predict_rating(fixed_model, 0, 1) == pytest.approx(3.0)
    assert predict_rating(fixed_model, 0, 2) == 1.0
    assert predict_rating(fixed_model, 2, 1) == 1.0


def test_predict_without_model_is_not_ready() -> None:
    with pytest.raises(ModelNotReadyError):
        predict_rating(None, 0, 0)


@pytest.mark.parametrize("user_id,movie_id", [(5, 0), (3, 0), (-1, 0), (0, 4), (0, -1)])
def test_predict_rejects_out_of_range_ids(fixed_model, user_id: int, movie_id: int) -> None:
    with pytest.raises(OutOfRangeError):
        predict_rating(fixed_model, user_id, movie_id)


def test_predict_rejects_non_integer_ids(fixed_model) -> None:
    with pytest.raises(OutOfRangeError):
        predict_rating(fixed_model, 0.5, 0)


def test_predict_does_not_mutate_model(fixed_model) -> None:
    before = fixed_model.user_embed.weight.detach().clone()
    predict_rating(fixed_model, 1, 3)
    assert torch.equal(fixed_model.user_embed.weight, before)


def test_top_movies_orders_by_score_and_respects_exclude(fixed_model) -> None:
    recs = top_movies(fixed_model, 0, k=3)
    assert [r.movieId for r in recs] == [0, 1, 3]
    assert [r.rating for r in recs] == pytest.approx([5.0, 3.0, 3.0])

    recs = top_movies(fixed_model, 0, k=2, exclude={0})
    assert [r.movieId for r in recs] == [1, 3]


def test_top_movies_validates_user(fixed_model) -> None:
    with pytest.raises(OutOfRangeError):
        top_movies(fixed_model, 3)
    with pytest.raises(ModelNotReadyError):
        top_movies(None, 0)
