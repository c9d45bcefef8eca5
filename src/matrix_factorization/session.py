from __future__ import annotations

import asyncio
import logging
import threading
import time
from enum import Enum
from typing import Any, AsyncIterator, Iterable, Iterator, Optional

from .errors import ModelNotReadyError, TrainingFailedError
from .model import MatrixFactorization, build_model
from .predict import PredictionResult, predict_rating, top_movies
from .train import MFTrainConfig, TrainingReport, train_model


logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    TRAINING = "training"
    READY = "ready"


async def paced(reports: Iterator[TrainingReport]) -> AsyncIterator[TrainingReport]:
    """Yield from a report stream, handing control back to the event loop after every epoch."""
    try:
        for report in reports:
            yield report
            await asyncio.sleep(0)
    finally:
        reports.close()


class TrainingSession:
    """Owns the current model and guarantees at most one training run at a time.

    State machine::

        idle --train()--> training --success--> ready
                          training --failure--> idle

    `train()` while a run is in progress yields nothing and changes nothing.
    The in-progress flag is a non-blocking lock acquisition, so the check-and-set
    is atomic for threaded callers as well as for cooperative tasks.
    """

    def __init__(self, *, device: str | None = None) -> None:
        self.device = device
        self._in_progress = threading.Lock()
        self._state = SessionState.IDLE
        self._model: Optional[MatrixFactorization] = None
        self._cfg: Optional[MFTrainConfig] = None
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None
        self.reports: list[TrainingReport] = []
        self.last_error: Optional[TrainingFailedError] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def in_progress(self) -> bool:
        return self._in_progress.locked()

    @property
    def model(self) -> Optional[MatrixFactorization]:
        """The fitted model, or None unless the session is ready."""
        return self._model if self._state is SessionState.READY else None

    @property
    def last_report(self) -> Optional[TrainingReport]:
        return self.reports[-1] if self.reports else None

    def elapsed_s(self) -> Optional[float]:
        """Seconds since the current (or last) run started; None before any run."""
        if self.started_at is None:
            return None
        end = time.monotonic() if self.finished_at is None else self.finished_at
        return end - self.started_at

    def status(self) -> dict[str, Any]:
        last = self.last_report
        return {
            "state": self._state.value,
            "in_progress": self.in_progress,
            "elapsed_s": self.elapsed_s(),
            "epochs_done": len(self.reports),
            "train_loss": None if last is None else last.train_loss,
            "val_loss": None if last is None else last.val_loss,
            "error": None if self.last_error is None else str(self.last_error),
        }

    def train(
        self,
        dataset: Any,
        cfg: MFTrainConfig | None = None,
        *,
        model: MatrixFactorization | None = None,
    ) -> Iterator[TrainingReport]:
        """Train a fresh model on `dataset`, yielding one `TrainingReport` per epoch.

        `dataset` needs `ratings`, `num_users` and `num_movies`. Pass `model` to
        train a pre-built instance instead of building one from the dataset sizes.
        The run starts when the iterator is first advanced; closing the iterator
        early abandons the run and leaves the session idle.
        """
        reports = self.start(dataset, cfg, model=model)
        if reports is None:
            return
        yield from reports

    def start(
        self,
        dataset: Any,
        cfg: MFTrainConfig | None = None,
        *,
        model: MatrixFactorization | None = None,
    ) -> Optional[Iterator[TrainingReport]]:
        """Claim the session right away and return the run's report stream.

        Returns None when a run is already in progress. The returned stream holds
        the in-progress flag until it is exhausted or closed.
        """
        if not self._in_progress.acquire(blocking=False):
            logger.info("MF training already in progress; ignoring train request")
            return None
        reports = self._run(dataset, cfg or MFTrainConfig(), model)
        # Enter the generator so that close() or garbage collection releases the flag.
        next(reports)
        return reports

    def _run(
        self,
        dataset: Any,
        cfg: MFTrainConfig,
        model: MatrixFactorization | None,
    ) -> Iterator[Optional[TrainingReport]]:
        try:
            yield None
            if model is None:
                model = build_model(
                    dataset.num_users,
                    dataset.num_movies,
                    cfg.latent_dim,
                    init_std=cfg.init_std,
                    seed=cfg.seed,
                )
            self._state = SessionState.TRAINING
            self._model = None
            self._cfg = cfg
            self.reports = []
            self.last_error = None
            self.started_at = time.monotonic()
            self.finished_at = None

            completed = False
            try:
                for report in train_model(
                    model,
                    dataset.ratings,
                    cfg,
                    device=self.device,
                    start_time=self.started_at,
                ):
                    self.reports.append(report)
                    yield report
                completed = True
            except TrainingFailedError as exc:
                self.last_error = exc
                logger.warning("MF training failed after %d epochs: %s", len(self.reports), exc)
                raise
            finally:
                self.finished_at = time.monotonic()
                if completed:
                    self._model = model
                    self._state = SessionState.READY
                    logger.info("MF training finished in %.2fs", self.finished_at - self.started_at)
                else:
                    self._state = SessionState.IDLE
        finally:
            self._in_progress.release()

    async def train_async(
        self,
        dataset: Any,
        cfg: MFTrainConfig | None = None,
        *,
        model: MatrixFactorization | None = None,
    ) -> AsyncIterator[TrainingReport]:
        """Same as `train`, handing control back to the event loop after every epoch."""
        async for report in paced(self.train(dataset, cfg, model=model)):
            yield report

    def _ready_model(self) -> MatrixFactorization:
        if self._state is not SessionState.READY or self._model is None:
            raise ModelNotReadyError(f"model not ready (session state: {self._state.value})")
        return self._model

    def _rating_bounds(self) -> tuple[float, float]:
        cfg = self._cfg or MFTrainConfig()
        return float(cfg.min_rating), float(cfg.max_rating)

    def predict(self, user_id: int, movie_id: int) -> PredictionResult:
        model = self._ready_model()
        lo, hi = self._rating_bounds()
        rating = predict_rating(model, user_id, movie_id, min_rating=lo, max_rating=hi)
        return PredictionResult(userId=int(user_id), movieId=int(movie_id), rating=rating)

    def recommend(self, user_id: int, *, k: int = 10, exclude: Iterable[int] = ()) -> list[PredictionResult]:
        model = self._ready_model()
        lo, hi = self._rating_bounds()
        return top_movies(model, user_id, k=k, exclude=exclude, min_rating=lo, max_rating=hi)
