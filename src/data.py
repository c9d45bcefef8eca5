from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple, Optional

import numpy as np
import pandas as pd
from sklearn.preprocessing import LabelEncoder


logger = logging.getLogger(__name__)


class Rating(NamedTuple):
    userId: int
    movieId: int
    rating: float


# u.item genre flag columns, in file order.
ML100K_GENRES: tuple[str, ...] = (
    "unknown",
    "Action",
    "Adventure",
    "Animation",
    "Children's",
    "Comedy",
    "Crime",
    "Documentary",
    "Drama",
    "Fantasy",
    "Film-Noir",
    "Horror",
    "Musical",
    "Mystery",
    "Romance",
    "Sci-Fi",
    "Thriller",
    "War",
    "Western",
)

SUPPORTED_FORMATS = ("ml-100k", "ml-latest-small")


@dataclass(frozen=True)
class RatingDataset:
    """Ratings encoded as 0-based table indices, plus the raw MovieLens ids behind them.

    `user_classes[i]` / `movie_classes[j]` give the raw id of user index `i` /
    movie index `j`. `movies` (optional) has columns movieId (raw), title, genres
    (list of genre names).
    """

    ratings: tuple[Rating, ...]
    num_users: int
    num_movies: int
    user_classes: np.ndarray = field(repr=False, compare=False)
    movie_classes: np.ndarray = field(repr=False, compare=False)
    movies: Optional[pd.DataFrame] = field(default=None, repr=False, compare=False)

    def user_index(self, raw_user_id: int) -> int:
        return _lookup(self.user_classes, raw_user_id, what="userId")

    def movie_index(self, raw_movie_id: int) -> int:
        return _lookup(self.movie_classes, raw_movie_id, what="movieId")

    def raw_movie_id(self, movie_idx: int) -> int:
        return int(self.movie_classes[int(movie_idx)])

    def raw_user_id(self, user_idx: int) -> int:
        return int(self.user_classes[int(user_idx)])

    def movie_title(self, raw_movie_id: int) -> Optional[str]:
        if self.movies is None:
            return None
        hit = self.movies.loc[self.movies["movieId"] == int(raw_movie_id), "title"]
        return None if hit.empty else str(hit.iloc[0])

    def rated_movie_indices(self, user_idx: int) -> set[int]:
        return {r.movieId for r in self.ratings if r.userId == int(user_idx)}


def _lookup(classes: np.ndarray, raw_id: int, *, what: str) -> int:
    pos = int(np.searchsorted(classes, int(raw_id)))
    if pos >= len(classes) or int(classes[pos]) != int(raw_id):
        raise KeyError(f"Unknown {what}: {raw_id}")
    return pos


def build_rating_dataset(ratings: pd.DataFrame, movies: Optional[pd.DataFrame] = None) -> RatingDataset:
    """Encode raw (userId, movieId, rating) rows into a dense 0-based `RatingDataset`.

    Movies listed in `movies` but never rated still get a table row, so they can
    be scored at prediction time. Row order of `ratings` is preserved.
    """
    required = {"userId", "movieId", "rating"}
    missing = required - set(ratings.columns)
    if missing:
        raise ValueError(f"ratings missing required columns: {sorted(missing)}")

    df = ratings[["userId", "movieId", "rating"]].dropna().reset_index(drop=True)

    # LabelEncoder classes are sorted, which `_lookup` relies on.
    le_user = LabelEncoder()
    le_movie = LabelEncoder()
    user_idx = le_user.fit_transform(df["userId"].astype(np.int64).values)
    movie_ids = df["movieId"].astype(np.int64).values
    if movies is not None:
        le_movie.fit(np.concatenate([movie_ids, movies["movieId"].astype(np.int64).values]))
    else:
        le_movie.fit(movie_ids)
    movie_idx = le_movie.transform(movie_ids)

    rows = tuple(
        Rating(int(u), int(m), float(r))
        for u, m, r in zip(user_idx.tolist(), movie_idx.tolist(), df["rating"].astype(float).tolist())
    )
    dataset = RatingDataset(
        ratings=rows,
        num_users=int(len(le_user.classes_)),
        num_movies=int(len(le_movie.classes_)),
        user_classes=le_user.classes_.astype(np.int64),
        movie_classes=le_movie.classes_.astype(np.int64),
        movies=movies,
    )
    logger.info(
        "Ratings dataset: users=%d movies=%d ratings=%d",
        dataset.num_users,
        dataset.num_movies,
        len(dataset.ratings),
    )
    return dataset


def parse_genres(genres: str) -> list[str]:
    """Parse pipe-separated genre tokens into a list."""
    if not isinstance(genres, str):
        return []
    tokens = [g.strip() for g in genres.split("|")]
    return [g for g in tokens if g and g != "(no genres listed)"]


def load_ml100k(raw_dir: Path) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Read MovieLens 100K `u.data` (tab-separated) and `u.item` (pipe-separated, latin-1)."""
    raw_dir = Path(raw_dir)
    ratings = pd.read_csv(
        raw_dir / "u.data",
        sep="\t",
        header=None,
        names=["userId", "movieId", "rating", "timestamp"],
        dtype={"userId": "int64", "movieId": "int64", "rating": "float64", "timestamp": "int64"},
    )
    item_cols = ["movieId", "title", "release_date", "video_release_date", "imdb_url", *ML100K_GENRES]
    items = pd.read_csv(
        raw_dir / "u.item",
        sep="|",
        header=None,
        names=item_cols,
        encoding="latin-1",
    )
    flags = items[list(ML100K_GENRES)].fillna(0).astype(int).to_numpy()
    movies = pd.DataFrame(
        {
            "movieId": items["movieId"].astype("int64"),
            "title": items["title"].astype(str).str.strip(),
            "genres": [[g for g, on in zip(ML100K_GENRES, row) if on] for row in flags],
        }
    )
    return ratings, movies


def load_ml_latest(raw_dir: Path) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Read MovieLens latest-small `ratings.csv` and `movies.csv`."""
    raw_dir = Path(raw_dir)
    ratings = pd.read_csv(
        raw_dir / "ratings.csv",
        dtype={"userId": "int64", "movieId": "int64", "rating": "float64", "timestamp": "int64"},
    )
    movies = pd.read_csv(
        raw_dir / "movies.csv",
        dtype={"movieId": "int64", "title": "string", "genres": "string"},
    )
    movies = pd.DataFrame(
        {
            "movieId": movies["movieId"].astype("int64"),
            "title": movies["title"].astype(str),
            "genres": movies["genres"].apply(parse_genres),
        }
    )
    return ratings, movies


def load_ratings(raw_dir: Path, fmt: str = "ml-100k") -> RatingDataset:
    """Load a MovieLens directory into a `RatingDataset`."""
    if fmt == "ml-100k":
        ratings, movies = load_ml100k(raw_dir)
    elif fmt == "ml-latest-small":
        ratings, movies = load_ml_latest(raw_dir)
    else:
        raise ValueError(f"dataset format must be one of {SUPPORTED_FORMATS}, got {fmt!r}")

    if movies["movieId"].duplicated().any():
        raise ValueError("movie metadata has duplicate movieId values")
    logger.info("Loaded %s from %s", fmt, raw_dir)
    return build_rating_dataset(ratings, movies)
