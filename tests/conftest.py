from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Ensure `import src...` works when pytest uses importlib import mode.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from src.data import Rating, RatingDataset  # noqa: E402


def make_dataset(rows: list[tuple[int, int, float]], num_users: int, num_movies: int) -> RatingDataset:
    """Dataset whose raw ids equal the table indices."""
    return RatingDataset(
        ratings=tuple(Rating(int(u), int(m), float(r)) for u, m, r in rows),
        num_users=num_users,
        num_movies=num_movies,
        user_classes=np.arange(num_users, dtype=np.int64),
        movie_classes=np.arange(num_movies, dtype=np.int64),
    )


@pytest.fixture
def planted_dataset() -> RatingDataset:
    # user 0 likes movie 0, user 1 likes movie 1
    return make_dataset([(0, 0, 5.0), (0, 1, 1.0), (1, 0, 1.0), (1, 1, 5.0)], num_users=2, num_movies=2)


@pytest.fixture
def single_rating_dataset() -> RatingDataset:
    return make_dataset([(0, 0, 5.0)], num_users=1, num_movies=1)


@pytest.fixture
def movies_frame() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "movieId": [10, 20, 30, 40],
            "title": ["Toy Story (1995)", "Heat (1995)", "Jumanji (1995)", "Casino (1995)"],
            "genres": [
                ["Animation", "Children's", "Comedy"],
                ["Action", "Crime", "Thriller"],
                ["Adventure", "Children's", "Fantasy"],
                ["Crime", "Drama"],
            ],
        }
    )


@pytest.fixture
def dataset_factory():
    return make_dataset
