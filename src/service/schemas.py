"""Pydantic schemas for the rating-prediction API."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class TrainRequest(BaseModel):
    """Start a training run; unset fields fall back to config.yaml."""

    epochs: Optional[int] = Field(None, ge=1, le=1000)
    batch_size: Optional[int] = Field(None, ge=1, le=65536)
    lr: Optional[float] = Field(None, gt=0.0, le=1.0)
    latent_dim: Optional[int] = Field(None, ge=1, le=512)
    validation_split: Optional[float] = Field(None, ge=0.0, lt=1.0)
    wait: bool = Field(False, description="Block until the run finishes instead of training in the background")


class TrainStatus(BaseModel):
    state: Literal["idle", "training", "ready"]
    in_progress: bool
    elapsed_s: Optional[float] = None
    epochs_done: int
    train_loss: Optional[float] = None
    val_loss: Optional[float] = None
    error: Optional[str] = None


class TrainResponse(BaseModel):
    started: bool
    status: TrainStatus


class PredictRequest(BaseModel):
    userId: int = Field(..., description="MovieLens userId (raw id)")
    movieId: int = Field(..., description="MovieLens movieId (raw id)")


class PredictResponse(BaseModel):
    userId: int
    movieId: int
    title: Optional[str] = None
    rating: float


class RecommendRequest(BaseModel):
    userId: int = Field(..., description="MovieLens userId (raw id)")
    k: int = Field(10, ge=1, le=50, description="Number of recommendations to return (1..50).")
    exclude_rated: bool = True


class RecommendResponse(BaseModel):
    userId: int
    k: int
    results: list[PredictResponse]


class SimilarMoviesRequest(BaseModel):
    movieId: int = Field(..., description="Liked movie (raw MovieLens id)")
    top_n: int = Field(2, ge=1, le=50)
    metric: Literal["jaccard", "cosine"] = "jaccard"


class SimilarMovieItem(BaseModel):
    movieId: int
    title: str
    score: float


class SimilarMoviesResponse(BaseModel):
    movieId: int
    metric: str
    results: list[SimilarMovieItem]
