"""FastAPI service exposing training, rating prediction and genre-based similar movies."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Iterator, Optional

from fastapi import FastAPI, HTTPException, Request

from ..config import AppConfig, get_repo_root, load_config, mf_config_from_mapping
from ..content.genre import similar_movies
from ..data import RatingDataset, load_ratings
from ..matrix_factorization.errors import ModelNotReadyError, OutOfRangeError, TrainingFailedError
from ..matrix_factorization.session import TrainingSession, paced
from ..matrix_factorization.train import TrainingReport
from ..utils import setup_logging
from .schemas import (
    PredictRequest,
    PredictResponse,
    RecommendRequest,
    RecommendResponse,
    SimilarMoviesRequest,
    SimilarMoviesResponse,
    TrainRequest,
    TrainResponse,
    TrainStatus,
)

logger = logging.getLogger(__name__)


def _get_env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or str(raw).strip() == "":
        return default
    p = Path(str(raw))
    return p if p.is_absolute() else (get_repo_root() / p).resolve()


async def _drain(reports: Iterator[TrainingReport]) -> None:
    try:
        async for _ in paced(reports):
            pass
    except TrainingFailedError as exc:
        # Recorded on the session and surfaced through /train/status.
        logger.error("Background training failed: %s", exc)


def _session(request: Request) -> TrainingSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Training session not initialized")
    return session


def _dataset(request: Request) -> RatingDataset:
    dataset = getattr(request.app.state, "dataset", None)
    if dataset is None:
        raise HTTPException(status_code=503, detail="Dataset not loaded")
    return dataset


def _indices(dataset: RatingDataset, user_id: int, movie_id: Optional[int] = None) -> tuple[int, Optional[int]]:
    try:
        u = dataset.user_index(user_id)
        m = dataset.movie_index(movie_id) if movie_id is not None else None
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
    return u, m


def create_app(
    *,
    dataset: RatingDataset | None = None,
    app_config: AppConfig | None = None,
) -> FastAPI:
    """Build the API. Without arguments, config and dataset are loaded at startup."""

    @asynccontextmanager
    async def lifespan(app_: FastAPI):
        setup_logging(os.getenv("LOG_LEVEL", "INFO"))
        cfg = app_config
        if cfg is None:
            config_path = _get_env_path("CONFIG_PATH", get_repo_root() / "config.yaml")
            cfg = load_config(config_path)
        app_.state.config = cfg
        app_.state.dataset = dataset if dataset is not None else load_ratings(cfg.dataset.raw_dir, fmt=cfg.dataset.format)
        app_.state.session = TrainingSession()
        app_.state.tasks = set()
        logger.info(
            "Starting service with dataset users=%d movies=%d",
            app_.state.dataset.num_users,
            app_.state.dataset.num_movies,
        )
        yield
        for task in list(app_.state.tasks):
            task.cancel()

    app = FastAPI(title="MovieLens MF Rating Service", lifespan=lifespan)

    @app.post("/train", response_model=TrainResponse)
    async def train(req: TrainRequest, request: Request) -> dict:
        """Start a training run; a request made while one is running is ignored."""
        session = _session(request)
        data = _dataset(request)
        base: AppConfig = request.app.state.config
        try:
            cfg = mf_config_from_mapping(
                asdict(base.mf),
                epochs=req.epochs,
                batch_size=req.batch_size,
                lr=req.lr,
                latent_dim=req.latent_dim,
                validation_split=req.validation_split,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        # Claim the session before returning so that concurrent requests see it busy.
        reports = session.start(data, cfg)
        if reports is None:
            return {"started": False, "status": session.status()}

        if req.wait:
            try:
                async for _ in paced(reports):
                    pass
            except TrainingFailedError as exc:
                raise HTTPException(status_code=500, detail=str(exc)) from exc
            return {"started": True, "status": session.status()}

        task = asyncio.create_task(_drain(reports))
        request.app.state.tasks.add(task)
        task.add_done_callback(request.app.state.tasks.discard)
        return {"started": True, "status": session.status()}

    @app.get("/train/status", response_model=TrainStatus)
    def train_status(request: Request) -> dict:
        return _session(request).status()

    @app.post("/predict", response_model=PredictResponse)
    def predict(req: PredictRequest, request: Request) -> dict:
        """Predict a clamped 1..5 rating for a (userId, movieId) pair of raw MovieLens ids."""
        session = _session(request)
        data = _dataset(request)
        u, m = _indices(data, req.userId, req.movieId)
        try:
            result = session.predict(u, m)
        except ModelNotReadyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except OutOfRangeError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {
            "userId": int(req.userId),
            "movieId": int(req.movieId),
            "title": data.movie_title(req.movieId),
            "rating": result.rating,
        }

    @app.post("/recommend", response_model=RecommendResponse)
    def recommend(req: RecommendRequest, request: Request) -> dict:
        """Top-k movies for a user by predicted rating."""
        session = _session(request)
        data = _dataset(request)
        u, _ = _indices(data, req.userId)
        exclude = data.rated_movie_indices(u) if req.exclude_rated else set()
        try:
            recs = session.recommend(u, k=int(req.k), exclude=exclude)
        except ModelNotReadyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except OutOfRangeError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

        results = []
        for r in recs:
            raw_id = data.raw_movie_id(r.movieId)
            results.append({"userId": int(req.userId), "movieId": raw_id, "title": data.movie_title(raw_id), "rating": r.rating})
        return {"userId": int(req.userId), "k": int(req.k), "results": results}

    @app.post("/similar_movies", response_model=SimilarMoviesResponse)
    def similar(req: SimilarMoviesRequest, request: Request) -> dict:
        """Movies sharing the most genres with the given one."""
        data = _dataset(request)
        if data.movies is None:
            raise HTTPException(status_code=503, detail="Movie metadata not loaded")
        try:
            sims = similar_movies(data.movies, req.movieId, top_n=int(req.top_n), metric=req.metric)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
        return {"movieId": int(req.movieId), "metric": req.metric, "results": [s.__dict__ for s in sims]}

    return app


app = create_app()
