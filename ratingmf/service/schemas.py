"""Pydantic schemas for the rating prediction API."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class PredictRequest(BaseModel):
    """A (user, movie) pair picked by the caller."""

    userId: int = Field(..., ge=1, description="MovieLens userId")
    movieId: int = Field(..., ge=1, description="MovieLens movieId")


class PredictResponse(BaseModel):
    userId: int
    movieId: int
    title: str
    rating: float = Field(..., ge=1.0, le=5.0, description="Predicted rating clamped to 1..5")
    rating_class: Literal["high", "medium", "low"]


class StatusResponse(BaseModel):
    state: Literal["idle", "training", "ready", "failed"]
    epoch: Optional[int] = None
    epochs: Optional[int] = None
    train_loss: Optional[float] = None
    val_loss: Optional[float] = None
    error: Optional[str] = None


class UserItem(BaseModel):
    userId: int
    label: str


class MovieItem(BaseModel):
    movieId: int
    title: str
    year: Optional[int] = None
    label: str


class TrainRequest(BaseModel):
    """Optional overrides for a new training run."""

    epochs: Optional[int] = Field(None, ge=1, le=1000)
    batch_size: Optional[int] = Field(None, ge=1)
    learning_rate: Optional[float] = Field(None, gt=0.0)
    validation_split: Optional[float] = Field(None, ge=0.0, lt=1.0)
