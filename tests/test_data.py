from __future__ import annotations

import pandas as pd
import pytest

from src.data import Rating, build_rating_dataset, load_ratings


def _write_ml100k(raw_dir) -> None:
    (raw_dir / "u.data").write_text("196\t242\t3\t881250949\n186\t302\t3\t891717742\n196\t302\t5\t881251000\n")
    flags_242 = "|".join(["0"] * 5 + ["1"] + ["0"] * 13)  # Comedy
    flags_302 = "|".join(["0", "0", "0", "0", "0", "0", "1", "0", "0", "0", "1", "0", "0", "1", "0", "0", "1", "0", "0"])
    flags_1 = "|".join(["0", "0", "0", "1", "1", "1"] + ["0"] * 13)
    lines = [
        f"1|Toy Story (1995)|01-Jan-1995||http://example.org/1|{flags_1}",
        f"242|Kolya (1996)|24-Jan-1997||http://example.org/242|{flags_242}",
        f"302|L.A. Confidential (1997)|01-Jan-1997||http://example.org/302|{flags_302}",
    ]
    (raw_dir / "u.item").write_bytes(("\n".join(lines) + "\n").encode("latin-1"))


def test_build_rating_dataset_encodes_raw_ids_to_zero_based_indices() -> None:
    ratings = pd.DataFrame({"userId": [10, 10, 3], "movieId": [7, 2, 7], "rating": [4.0, 2.0, 5.0]})

    ds = build_rating_dataset(ratings)

    assert ds.num_users == 2
    assert ds.num_movies == 2
    # Row order is preserved, ids are sorted-label indices.
    assert ds.ratings == (Rating(1, 1, 4.0), Rating(1, 0, 2.0), Rating(0, 1, 5.0))
    assert ds.user_index(10) == 1
    assert ds.movie_index(2) == 0
    assert ds.raw_movie_id(1) == 7
    assert ds.raw_user_id(0) == 3
    assert ds.rated_movie_indices(1) == {0, 1}


def test_unknown_raw_id_raises_key_error() -> None:
    ds = build_rating_dataset(pd.DataFrame({"userId": [1], "movieId": [1], "rating": [3.0]}))
    with pytest.raises(KeyError):
        ds.user_index(99)
    with pytest.raises(KeyError):
        ds.movie_index(0)


def test_unrated_movies_get_a_table_row(movies_frame) -> None:
    ratings = pd.DataFrame({"userId": [1, 2], "movieId": [10, 20], "rating": [4.0, 3.0]})

    ds = build_rating_dataset(ratings, movies_frame)

    assert ds.num_movies == 4
    assert ds.movie_index(40) == 3
    assert ds.movie_title(30) == "Jumanji (1995)"


def test_missing_columns_are_rejected() -> None:
    with pytest.raises(ValueError):
        build_rating_dataset(pd.DataFrame({"userId": [1], "rating": [3.0]}))


def test_load_ml100k(tmp_path) -> None:
    _write_ml100k(tmp_path)

    ds = load_ratings(tmp_path, fmt="ml-100k")

    assert ds.num_users == 2
    assert ds.num_movies == 3
    assert len(ds.ratings) == 3
    assert ds.movie_title(242) == "Kolya (1996)"
    genres = dict(zip(ds.movies["movieId"], ds.movies["genres"]))
    assert genres[242] == ["Comedy"]
    assert genres[302] == ["Crime", "Film-Noir", "Mystery", "Thriller"]
    assert genres[1] == ["Animation", "Children's", "Comedy"]


def test_load_ml_latest(tmp_path) -> None:
    (tmp_path / "ratings.csv").write_text(
        "userId,movieId,rating,timestamp\n1,1,4.0,964982703\n1,3,4.5,964981247\n2,1,3.0,964982224\n"
    )
    (tmp_path / "movies.csv").write_text(
        "movieId,title,genres\n"
        "1,Toy Story (1995),Adventure|Animation|Children|Comedy|Fantasy\n"
        "2,Jumanji (1995),Adventure|Children|Fantasy\n"
        "3,Grumpier Old Men (1995),Comedy|Romance\n"
        "4,Unknown (2000),(no genres listed)\n"
    )

    ds = load_ratings(tmp_path, fmt="ml-latest-small")

    assert ds.num_users == 2
    assert ds.num_movies == 4
    genres = dict(zip(ds.movies["movieId"], ds.movies["genres"]))
    assert genres[3] == ["Comedy", "Romance"]
    assert genres[4] == []


def test_unknown_format_is_rejected(tmp_path) -> None:
    with pytest.raises(ValueError):
        load_ratings(tmp_path, fmt="netflix")
