"""Train the MF rating model on MovieLens and predict a rating from the command line.

Ids on the command line are raw MovieLens ids (as in u.data / ratings.csv);
they are translated to table indices through the loaded dataset.
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import asdict
from pathlib import Path

import pandas as pd

from ..config import load_config, mf_config_from_mapping
from ..data import load_ratings
from ..utils import ReproducibilityConfig, set_global_seed, setup_logging
from .errors import RecommenderError
from .session import TrainingSession


logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Matrix-factorization movie rating predictor")
    p.add_argument("--user-id", type=int, required=True, help="MovieLens userId (raw id)")
    p.add_argument("--movie-id", type=int, default=None, help="MovieLens movieId (raw id) to predict")
    p.add_argument("--top-k", type=int, default=0, help="Also list the top-k unseen movies for the user")
    p.add_argument("--config", type=Path, default=None, help="Path to config YAML")
    p.add_argument("--raw-dir", type=Path, default=None, help="Override dataset directory")
    p.add_argument("--format", type=str, default=None, help="ml-100k or ml-latest-small")
    p.add_argument("--epochs", type=int, default=None, help="Override epochs")
    p.add_argument("--batch-size", type=int, default=None, help="Override batch size")
    p.add_argument("--latent-dim", type=int, default=None, help="Override latent dimension")
    p.add_argument("--lr", type=float, default=None, help="Override learning rate")
    p.add_argument("--validation-split", type=float, default=None, help="Override validation split")
    p.add_argument("--device", type=str, default=None, help="cpu/cuda; default auto")
    p.add_argument("--log-level", type=str, default="INFO")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.log_level)

    app_cfg = load_config(args.config)
    set_global_seed(ReproducibilityConfig(seed=app_cfg.seed))
    cfg = mf_config_from_mapping(
        asdict(app_cfg.mf),
        epochs=args.epochs,
        batch_size=args.batch_size,
        latent_dim=args.latent_dim,
        lr=args.lr,
        validation_split=args.validation_split,
    )

    dataset = load_ratings(args.raw_dir or app_cfg.dataset.raw_dir, fmt=args.format or app_cfg.dataset.format)
    try:
        user_idx = dataset.user_index(args.user_id)
        movie_idx = dataset.movie_index(args.movie_id) if args.movie_id is not None else None
    except KeyError as exc:
        print(f"error: {exc.args[0]}", file=sys.stderr)
        return 2

    session = TrainingSession(device=args.device)
    try:
        reports = list(session.train(dataset, cfg))
    except RecommenderError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print("\n=== Training ===")
    print(pd.DataFrame([asdict(r) for r in reports]).to_string(index=False))

    if movie_idx is not None:
        result = session.predict(user_idx, movie_idx)
        title = dataset.movie_title(args.movie_id) or f"movie {args.movie_id}"
        print(f"\nPredicted rating for user {args.user_id} on {title!r} = {result.rating:.2f} / 5")

    if args.top_k > 0:
        seen = dataset.rated_movie_indices(user_idx)
        recs = session.recommend(user_idx, k=args.top_k, exclude=seen)
        rows = []
        for r in recs:
            raw_id = dataset.raw_movie_id(r.movieId)
            rows.append({"movieId": raw_id, "title": dataset.movie_title(raw_id), "predicted": round(r.rating, 3)})
        print("\n=== Recommended Movies ===")
        print(pd.DataFrame(rows).to_string(index=False) if rows else "No recommendations found.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
