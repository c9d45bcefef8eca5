"""Latent-factor rating prediction for MovieLens ratings.

Core idea:
- Build two embedding tables (users, movies) sized by the dataset
- Fit them with mini-batch sparse Adam so that dot(user, movie) approximates the rating
- Serve clamped point predictions from the fitted tables

`TrainingSession` ties the pieces together and guarantees a single training run at a time.
"""

from .errors import (
    InvalidDimensionError,
    ModelNotReadyError,
    OutOfRangeError,
    RecommenderError,
    TrainingFailedError,
)
from .model import MatrixFactorization, build_model
from .predict import PredictionResult, predict_rating, top_movies
from .session import SessionState, TrainingSession
from .train import MFTrainConfig, TrainingReport, train_model

__all__ = [
    "InvalidDimensionError",
    "MFTrainConfig",
    "MatrixFactorization",
    "ModelNotReadyError",
    "OutOfRangeError",
    "PredictionResult",
    "RecommenderError",
    "SessionState",
    "TrainingFailedError",
    "TrainingReport",
    "TrainingSession",
    "build_model",
    "predict_rating",
    "top_movies",
    "train_model",
]
