from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Sequence

import numpy as np
import torch
from torch.utils.data import DataLoader, Dataset

from .errors import OutOfRangeError, TrainingFailedError
from .model import MatrixFactorization


logger = logging.getLogger(__name__)


class RatingsDataset(Dataset):
    def __init__(self, user_idx: np.ndarray, movie_idx: np.ndarray, rating: np.ndarray) -> None:
        self.user_idx = user_idx.astype(np.int64, copy=False)
        self.movie_idx = movie_idx.astype(np.int64, copy=False)
        self.rating = rating.astype(np.float32, copy=False)

    def __len__(self) -> int:
        return int(len(self.user_idx))

    def __getitem__(self, i: int) -> dict[str, torch.Tensor]:
        return {
            "users": torch.tensor(self.user_idx[i], dtype=torch.long),
            "movies": torch.tensor(self.movie_idx[i], dtype=torch.long),
            "ratings": torch.tensor(self.rating[i], dtype=torch.float32),
        }


@dataclass(frozen=True)
class MFTrainConfig:
    latent_dim: int = 20
    epochs: int = 10
    batch_size: int = 64
    lr: float = 1e-3
    validation_split: float = 0.1
    shuffle: bool = True
    seed: Optional[int] = None
    init_std: float = 0.05
    min_rating: float = 1.0
    max_rating: float = 5.0

    def __post_init__(self) -> None:
        if int(self.epochs) <= 0:
            raise ValueError(f"epochs must be positive, got {self.epochs!r}")
        if int(self.batch_size) <= 0:
            raise ValueError(f"batch_size must be positive, got {self.batch_size!r}")
        if not float(self.lr) > 0.0:
            raise ValueError(f"lr must be positive, got {self.lr!r}")
        if not 0.0 <= float(self.validation_split) < 1.0:
            raise ValueError(f"validation_split must be in [0, 1), got {self.validation_split!r}")
        if float(self.min_rating) > float(self.max_rating):
            raise ValueError("min_rating must not exceed max_rating")


@dataclass(frozen=True)
class TrainingReport:
    """Progress record emitted once per finished epoch (epochs are 0-based)."""

    epoch: int
    train_loss: float
    val_loss: Optional[float]
    elapsed_s: float


def _device_from_str(device: str | None) -> torch.device:
    # Sparse embedding gradients are not supported on MPS, so auto-detection stops at CUDA.
    if device is None:
        if torch.cuda.is_available():
            return torch.device("cuda")
        return torch.device("cpu")
    return torch.device(str(device))


def ratings_to_arrays(ratings: Iterable[Sequence[float]]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split (userId, movieId, rating) triples into index and target arrays, keeping order."""
    rows = list(ratings)
    user_idx = np.fromiter((int(r[0]) for r in rows), dtype=np.int64, count=len(rows))
    movie_idx = np.fromiter((int(r[1]) for r in rows), dtype=np.int64, count=len(rows))
    rating = np.fromiter((float(r[2]) for r in rows), dtype=np.float32, count=len(rows))
    return user_idx, movie_idx, rating


def check_index_bounds(idx: np.ndarray, size: int, *, what: str) -> None:
    bad = (idx < 0) | (idx >= int(size))
    if bad.any():
        first = int(idx[np.argmax(bad)])
        raise OutOfRangeError(f"{what} {first} outside [0, {int(size)}) ({int(bad.sum())} offending ratings)")


def _evaluate(model: MatrixFactorization, loader: DataLoader, device: torch.device) -> float:
    loss_fn = torch.nn.MSELoss()
    total = 0.0
    n = 0
    model.eval()
    with torch.no_grad():
        for batch in loader:
            users = batch["users"].to(device)
            movies = batch["movies"].to(device)
            ratings_t = batch["ratings"].to(device)
            loss = loss_fn(model(users, movies), ratings_t)
            bs = int(users.shape[0])
            total += float(loss.item()) * bs
            n += bs
    return total / max(1, n)


def train_model(
    model: MatrixFactorization,
    ratings: Iterable[Sequence[float]],
    cfg: MFTrainConfig,
    *,
    device: str | None = None,
    start_time: float | None = None,
) -> Iterator[TrainingReport]:
    """Fit `model` in place to (userId, movieId, rating) triples, yielding one report per epoch.

    The last `cfg.validation_split` fraction of `ratings` (by position) is held out
    for validation and never used for updates. Only the training slice is shuffled.

    Any failure inside the loop is re-raised as `TrainingFailedError`.
    """
    t0 = time.monotonic() if start_time is None else float(start_time)
    try:
        user_idx, movie_idx, rating = ratings_to_arrays(ratings)
        n_total = int(len(rating))
        if n_total == 0:
            raise ValueError("no ratings to train on")
        check_index_bounds(user_idx, model.n_users, what="userId")
        check_index_bounds(movie_idx, model.n_movies, what="movieId")

        # At most n_total - 1 ratings are held out; tiny datasets skip validation instead of failing.
        split_at = max(1, int(n_total * (1.0 - float(cfg.validation_split))))

        train_ds = RatingsDataset(user_idx[:split_at], movie_idx[:split_at], rating[:split_at])
        generator = torch.Generator().manual_seed(int(cfg.seed)) if cfg.seed is not None else None
        train_loader = DataLoader(
            train_ds,
            batch_size=int(cfg.batch_size),
            shuffle=bool(cfg.shuffle),
            generator=generator,
            num_workers=0,
        )
        val_loader = None
        if split_at < n_total:
            val_ds = RatingsDataset(user_idx[split_at:], movie_idx[split_at:], rating[split_at:])
            val_loader = DataLoader(val_ds, batch_size=int(cfg.batch_size), shuffle=False, num_workers=0)

        torch_device = _device_from_str(device)
        model.to(torch_device)
        optimizer = torch.optim.SparseAdam(list(model.parameters()), lr=float(cfg.lr))
        loss_fn = torch.nn.MSELoss()

        logger.info(
            "MF training on device=%s users=%d movies=%d train=%d val=%d epochs=%d batch_size=%d",
            torch_device,
            model.n_users,
            model.n_movies,
            split_at,
            n_total - split_at,
            int(cfg.epochs),
            int(cfg.batch_size),
        )

        for epoch in range(int(cfg.epochs)):
            model.train()
            total_loss = 0.0
            n = 0
            for batch in train_loader:
                users = batch["users"].to(torch_device)
                movies = batch["movies"].to(torch_device)
                ratings_t = batch["ratings"].to(torch_device)

                loss = loss_fn(model(users, movies), ratings_t)
                if not torch.isfinite(loss):
                    raise FloatingPointError(f"non-finite loss at epoch {epoch}")

                optimizer.zero_grad(set_to_none=True)
                loss.backward()
                optimizer.step()

                bs = int(users.shape[0])
                total_loss += float(loss.item()) * bs
                n += bs

            train_mse = total_loss / max(1, n)
            val_mse = _evaluate(model, val_loader, torch_device) if val_loader is not None else None
            if val_mse is not None and not math.isfinite(val_mse):
                raise FloatingPointError(f"non-finite validation loss at epoch {epoch}")

            report = TrainingReport(
                epoch=epoch,
                train_loss=train_mse,
                val_loss=val_mse,
                elapsed_s=time.monotonic() - t0,
            )
            logger.info(
                "MF epoch=%d train_mse=%.4f val_mse=%s elapsed=%.2fs",
                epoch,
                train_mse,
                "n/a" if val_mse is None else f"{val_mse:.4f}",
                report.elapsed_s,
            )
            yield report
    except TrainingFailedError:
        raise
    except Exception as exc:
        raise TrainingFailedError(f"MF training failed: {exc}", cause=exc) from exc
    finally:
        model.eval()
