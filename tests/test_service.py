from __future__ import annotations

import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from ratingmf.service.app import app


def _wait_for(client: TestClient, state: str, timeout_s: float = 60.0) -> dict:
    deadline = time.monotonic() + timeout_s
    while True:
        body = client.get("/status").json()
        if body["state"] == state:
            return body
        if body["state"] == "failed" or time.monotonic() > deadline:
            pytest.fail(f"expected state={state!r}, got {body}")
        time.sleep(0.05)


@pytest.fixture()
def client(tmp_path: Path, csv_data_dir: Path, monkeypatch: pytest.MonkeyPatch):
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        f"dataset:\n  source: {csv_data_dir}\n"
        "model:\n  latent_dim: 2\n  seed: 0\n"
        "train:\n  epochs: 200\n  batch_size: 32\n  learning_rate: 0.05\n  device: cpu\n"
    )
    monkeypatch.setenv("CONFIG_PATH", str(cfg))
    with TestClient(app) as c:
        yield c


def test_status_users_movies(client: TestClient) -> None:
    status = _wait_for(client, "ready")
    assert status["epoch"] == 200
    assert status["epochs"] == 200
    assert status["train_loss"] is not None
    assert status["error"] is None

    users = client.get("/users").json()
    assert users == [{"userId": 1, "label": "User 1"}, {"userId": 2, "label": "User 2"}]

    movies = client.get("/movies").json()
    assert [m["movieId"] for m in movies] == [1, 2, 3]
    assert movies[0]["label"] == "Toy Story (1995)"
    assert movies[0]["year"] == 1995


def test_predict(client: TestClient) -> None:
    _wait_for(client, "ready")

    liked = client.post("/predict", json={"userId": 1, "movieId": 1})
    disliked = client.post("/predict", json={"userId": 1, "movieId": 2})
    assert liked.status_code == 200
    assert disliked.status_code == 200

    body = liked.json()
    assert body["title"] == "Toy Story (1995)"
    assert 1.0 <= body["rating"] <= 5.0
    assert body["rating"] > disliked.json()["rating"]
    assert body["rating_class"] in {"high", "medium", "low"}


def test_predict_errors(client: TestClient) -> None:
    _wait_for(client, "ready")

    assert client.post("/predict", json={"userId": 3, "movieId": 1}).status_code == 404
    assert client.post("/predict", json={"userId": 1, "movieId": 3}).status_code == 404
    assert client.post("/predict", json={"userId": 0, "movieId": 1}).status_code == 422


def test_retrain(client: TestClient) -> None:
    _wait_for(client, "ready")

    resp = client.post("/train", json={"epochs": 3})
    assert resp.status_code == 202
    status = _wait_for(client, "ready")
    assert status["epochs"] == 3

    assert client.post("/train", json={"epochs": 0}).status_code == 422
