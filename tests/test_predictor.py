from __future__ import annotations

import pytest
import torch

from ratingmf.data import Dataset, load_dataset
from ratingmf.errors import ModelNotReady, UnknownId
from ratingmf.mf.model import create_model
from ratingmf.mf.predictor import clamp_rating, predict_rating, rating_class
from ratingmf.mf.train import TrainConfig, fit


@pytest.fixture(scope="module")
def trained_anti():
    ds = Dataset.from_ratings(
        [
            {"user": 1, "movie": 1, "rating": 5},
            {"user": 1, "movie": 2, "rating": 1},
            {"user": 2, "movie": 1, "rating": 1},
            {"user": 2, "movie": 2, "rating": 5},
        ]
    )
    model = create_model(ds.max_user_id, ds.max_movie_id, 2, seed=42)
    fit(model, ds, TrainConfig(epochs=200, learning_rate=0.05, device="cpu"))
    return model


def test_learns_anti_correlated_preferences(trained_anti) -> None:
    assert predict_rating(trained_anti, 1, 1) > predict_rating(trained_anti, 1, 2)
    assert predict_rating(trained_anti, 2, 2) > predict_rating(trained_anti, 2, 1)


def test_predictions_are_clamped_to_scale(trained_anti) -> None:
    for user_id in (1, 2):
        for movie_id in (1, 2):
            assert 1.0 <= predict_rating(trained_anti, user_id, movie_id) <= 5.0


def test_raw_prediction_outside_scale_is_clamped() -> None:
    model = create_model(1, 1, 1, seed=0)
    model.mark_observed([1], [1])
    model.epochs_completed = 1
    with torch.no_grad():
        model.user_bias.weight[1] = 10.0
    assert model.predict(1, 1) > 5.0
    assert predict_rating(model, 1, 1) == 5.0

    with torch.no_grad():
        model.user_bias.weight[1] = -10.0
    assert predict_rating(model, 1, 1) == 1.0


def test_non_finite_raw_prediction_is_not_clamped() -> None:
    model = create_model(1, 1, 1, seed=0)
    model.mark_observed([1], [1])
    model.epochs_completed = 1
    with torch.no_grad():
        model.user_embed.weight[1] = float("nan")
    with pytest.raises(ModelNotReady):
        predict_rating(model, 1, 1)

    with torch.no_grad():
        model.user_embed.weight[1] = 0.0
        model.user_bias.weight[1] = float("-inf")
    with pytest.raises(ModelNotReady):
        predict_rating(model, 1, 1)


def test_prediction_is_idempotent(trained_anti) -> None:
    assert predict_rating(trained_anti, 1, 2) == predict_rating(trained_anti, 1, 2)


def test_boundary_ids(trained_anti) -> None:
    # max ids are valid; max + 1 is not
    predict_rating(trained_anti, 2, 2)
    with pytest.raises(UnknownId):
        predict_rating(trained_anti, 3, 1)
    with pytest.raises(UnknownId):
        predict_rating(trained_anti, 1, 3)


def test_in_range_but_unobserved_ids_are_unknown() -> None:
    ds = Dataset.from_ratings([(1, 1, 4.0), (3, 4, 2.0)])
    model = create_model(ds.max_user_id, ds.max_movie_id, 2, seed=0)
    fit(model, ds, TrainConfig(epochs=1, device="cpu"))

    predict_rating(model, 3, 1)
    with pytest.raises(UnknownId) as excinfo:
        predict_rating(model, 2, 1)
    assert excinfo.value.kind == "user"
    with pytest.raises(UnknownId):
        predict_rating(model, 1, 2)


def test_not_ready_before_training() -> None:
    model = create_model(2, 2, 2, seed=0)
    with pytest.raises(ModelNotReady):
        predict_rating(model, 1, 1)
    with pytest.raises(ModelNotReady):
        predict_rating(None, 1, 1)


@pytest.mark.parametrize(
    ("rating", "expected"),
    [(5.0, "high"), (4.0, "high"), (3.99, "medium"), (2.01, "medium"), (2.0, "low"), (1.0, "low")],
)
def test_rating_class(rating: float, expected: str) -> None:
    assert rating_class(rating) == expected


def test_clamp_rating() -> None:
    assert clamp_rating(-3.2) == 1.0
    assert clamp_rating(3.3) == 3.3
    assert clamp_rating(7) == 5.0


def test_loaded_dataset_boundary_ids(csv_data_dir) -> None:
    ds = load_dataset(csv_data_dir)
    model = create_model(ds.max_user_id, ds.max_movie_id, 2, seed=0)
    fit(model, ds, TrainConfig(epochs=1, device="cpu"))

    assert 1.0 <= predict_rating(model, ds.max_user_id, ds.max_movie_id) <= 5.0
    with pytest.raises(UnknownId):
        predict_rating(model, ds.max_user_id + 1, 1)
    # Movie 3 is listed in movies.csv but never rated: it lies past the range.
    with pytest.raises(UnknownId) as excinfo:
        predict_rating(model, 1, ds.max_movie_id + 1)
    assert excinfo.value.max_id == ds.max_movie_id
