from __future__ import annotations

import math
from typing import Literal

from ..data import RATING_MAX, RATING_MIN
from ..errors import ModelNotReady, UnknownId
from .model import FactorizationModel


RatingClass = Literal["high", "medium", "low"]


def clamp_rating(value: float) -> float:
    return float(min(RATING_MAX, max(RATING_MIN, float(value))))


def predict_rating(model: FactorizationModel | None, user_id: int, movie_id: int) -> float:
    """Predicted rating for (user_id, movie_id), clamped to the 1..5 scale.

    Raises `ModelNotReady` until an epoch has completed, after divergence, or
    when the raw score is not finite, and `UnknownId` for ids outside the model
    range or absent from the training data.
    """
    if model is None or not model.ready:
        raise ModelNotReady("model has not completed a training epoch yet")

    raw = model.predict(int(user_id), int(movie_id))
    # Range checks ran inside predict(); these catch in-range gaps.
    if not model.is_observed_user(user_id):
        raise UnknownId("user", int(user_id))
    if not model.is_observed_movie(movie_id):
        raise UnknownId("movie", int(movie_id))
    if not math.isfinite(raw):
        raise ModelNotReady(f"model produced a non-finite score {raw!r} for user={user_id} movie={movie_id}")
    return clamp_rating(raw)


def rating_class(rating: float) -> RatingClass:
    if rating >= 4.0:
        return "high"
    if rating <= 2.0:
        return "low"
    return "medium"
