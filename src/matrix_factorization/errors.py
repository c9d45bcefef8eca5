"""Error types raised by the matrix-factorization engine."""

from __future__ import annotations


class RecommenderError(Exception):
    """Base class for every error the rating engine reports to its caller."""


class InvalidDimensionError(RecommenderError, ValueError):
    """A model was requested with a non-positive table size or latent dimension."""


class TrainingFailedError(RecommenderError, RuntimeError):
    """The optimization loop stopped on an error; `cause` holds the original exception."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ModelNotReadyError(RecommenderError):
    """A prediction was requested before a training run completed."""


class OutOfRangeError(RecommenderError, IndexError):
    """A user or movie index lies outside the tables the model was built with."""
