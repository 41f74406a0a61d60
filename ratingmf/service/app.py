"""FastAPI service: load ratings, train in the background, answer rating queries."""

from __future__ import annotations

import dataclasses
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException

from ..catalog import movie_label, user_label
from ..config import load_app_config
from ..data import load_dataset
from ..errors import ModelNotReady, TrainingInProgress, UnknownId
from ..mf.predictor import rating_class
from ..paths import get_repo_root
from ..session import Session
from ..utils import setup_logging
from .schemas import MovieItem, PredictRequest, PredictResponse, StatusResponse, TrainRequest, UserItem


logger = logging.getLogger(__name__)

SHUTDOWN_JOIN_TIMEOUT_S = 30.0


def _get_env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or str(raw).strip() == "":
        return default
    p = Path(str(raw))
    return p if p.is_absolute() else (get_repo_root() / p).resolve()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    config_path = _get_env_path("CONFIG_PATH", get_repo_root() / "config.yaml")
    app_cfg = load_app_config(config_path)

    logger.info("Loading MovieLens data from %s", app_cfg.paths.data_dir)
    dataset = load_dataset(app_cfg.paths.data_dir)

    session = Session(dataset, latent_dim=app_cfg.latent_dim, seed=app_cfg.model_seed)
    app.state.session = session
    app.state.train_config = app_cfg.train

    logger.info("Data loaded. Training model (config=%s)", config_path)
    session.start_training(app_cfg.train)
    yield

    session.cancel()
    if not session.wait(SHUTDOWN_JOIN_TIMEOUT_S):
        logger.warning("Training thread still running at shutdown")


app = FastAPI(title="MovieLens Rating Predictor", lifespan=lifespan)


def _session(app_: FastAPI) -> Session:
    session = getattr(app_.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Session not initialized")
    return session


def _status(session: Session) -> dict:
    progress = session.last_progress
    return {
        "state": session.state.value,
        "epoch": (progress.epoch if progress else None),
        "epochs": (session.epochs_planned or None),
        "train_loss": (progress.train_loss if progress else None),
        "val_loss": (progress.val_loss if progress else None),
        "error": (None if session.error is None else str(session.error)),
    }


@app.get("/status", response_model=StatusResponse)
def status() -> dict:
    """Training state and the latest epoch's losses."""
    return _status(_session(app))


@app.get("/users", response_model=list[UserItem])
def users() -> list[dict]:
    session = _session(app)
    return [{"userId": u, "label": user_label(u)} for u in session.dataset.user_ids()]


@app.get("/movies", response_model=list[MovieItem])
def movies() -> list[dict]:
    """Catalog movies, or the rated movie ids when no catalog was loaded."""
    dataset = _session(app).dataset
    catalog = dataset.catalog()
    if catalog:
        return [{"movieId": m.id, "title": m.title, "year": m.year, "label": movie_label(m)} for m in catalog]
    return [
        {"movieId": mid, "title": movie_label(None, mid), "year": None, "label": movie_label(None, mid)}
        for mid in dataset.movie_ids()
    ]


@app.post("/predict", response_model=PredictResponse)
def predict(req: PredictRequest) -> dict:
    session = _session(app)
    try:
        rating = session.predict(int(req.userId), int(req.movieId))
    except ModelNotReady as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except UnknownId as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return {
        "userId": int(req.userId),
        "movieId": int(req.movieId),
        "title": movie_label(session.dataset.movie(req.movieId), req.movieId),
        "rating": rating,
        "rating_class": rating_class(rating),
    }


@app.post("/train", response_model=StatusResponse, status_code=202)
def train(req: Optional[TrainRequest] = None) -> dict:
    """Start a new background training run with optional overrides."""
    session = _session(app)
    cfg = app.state.train_config
    if req is not None:
        overrides = {k: v for k, v in req.model_dump().items() if v is not None}
        try:
            cfg = dataclasses.replace(cfg, **overrides)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        session.start_training(cfg)
    except TrainingInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _status(session)


@app.post("/train/cancel", response_model=StatusResponse)
def cancel_training() -> dict:
    """Ask the running training to stop at the next epoch boundary."""
    session = _session(app)
    session.cancel()
    return _status(session)
