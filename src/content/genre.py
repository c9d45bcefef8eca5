"""Content-based movie ranking by genre-set similarity."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

import pandas as pd


METRICS = ("jaccard", "cosine")


@dataclass(frozen=True)
class SimilarMovie:
    movieId: int
    title: str
    score: float


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """|A ∩ B| / |A ∪ B|; two empty sets score 0."""
    sa, sb = set(a), set(b)
    union = len(sa | sb)
    if union == 0:
        return 0.0
    return len(sa & sb) / union


def cosine_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """Cosine between binary genre indicator vectors; 0 if either set is empty."""
    sa, sb = set(a), set(b)
    if not sa or not sb:
        return 0.0
    return len(sa & sb) / math.sqrt(len(sa) * len(sb))


def similar_movies(
    movies: pd.DataFrame,
    movie_id: int,
    *,
    top_n: int = 2,
    metric: str = "jaccard",
) -> list[SimilarMovie]:
    """Rank other movies by genre similarity to `movie_id`.

    Parameters
    ----------
    movies:
        Frame with columns movieId, title, genres (list of genre names).
    movie_id:
        Raw movieId of the liked movie.
    top_n:
        Number of results to return.
    metric:
        "jaccard" or "cosine".

    Returns
    -------
    list[SimilarMovie]
        Sorted by score desc, ties by case-insensitive title.
    """
    if metric not in METRICS:
        raise ValueError(f"metric must be one of {METRICS}, got {metric!r}")
    sim = jaccard_similarity if metric == "jaccard" else cosine_similarity

    liked = movies.loc[movies["movieId"] == int(movie_id)]
    if liked.empty:
        raise KeyError(f"Unknown movieId: {movie_id}")
    liked_genres = list(liked.iloc[0]["genres"] or [])

    scored: list[SimilarMovie] = []
    for row in movies.itertuples(index=False):
        if int(row.movieId) == int(movie_id):
            continue
        scored.append(
            SimilarMovie(movieId=int(row.movieId), title=str(row.title), score=sim(liked_genres, row.genres or []))
        )

    scored.sort(key=lambda s: (-s.score, s.title.casefold()))
    return scored[: int(top_n)]
