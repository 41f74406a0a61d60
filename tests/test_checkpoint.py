from __future__ import annotations

import json
from pathlib import Path

import pytest

from ratingmf.data import Dataset
from ratingmf.mf.checkpoint import load_checkpoint, meta_path_for, save_checkpoint
from ratingmf.mf.model import create_model
from ratingmf.mf.predictor import predict_rating
from ratingmf.mf.train import TrainConfig, fit


def test_checkpoint_preserves_predictions(tmp_path: Path, anti_dataset: Dataset) -> None:
    model = create_model(anti_dataset.max_user_id, anti_dataset.max_movie_id, 3, seed=0)
    cfg = TrainConfig(epochs=3, learning_rate=0.05, device="cpu")
    report = fit(model, anti_dataset, cfg)

    path = save_checkpoint(model, tmp_path / "artifacts" / "mf_model.pt", report=report, config=cfg)
    restored = load_checkpoint(path)

    assert restored.latent_dim == 3
    assert restored.epochs_completed == 3
    assert restored.ready
    for user_id, movie_id in [(1, 1), (1, 2), (2, 1), (2, 2)]:
        assert predict_rating(restored, user_id, movie_id) == pytest.approx(
            predict_rating(model, user_id, movie_id), abs=1e-6
        )

    meta = json.loads(meta_path_for(path).read_text())
    assert meta["max_user_id"] == 2
    assert meta["observed_movies"] == 2
    assert meta["train_config"]["epochs"] == 3
    assert len(meta["report"]["history"]) == 3


def test_missing_checkpoint_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_checkpoint(tmp_path / "missing.pt")
