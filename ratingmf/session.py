"""Application state for one dataset, one model and its training lifecycle.

State transitions: idle -> training -> {ready, failed}. A run cancelled before
any epoch finishes falls back to idle. Retraining starts from the current
model unless the previous run failed, in which case a fresh model is built.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from threading import Lock
from typing import Optional

from .data import Dataset
from .errors import ModelNotReady, TrainingInProgress
from .mf.model import FactorizationModel, create_model
from .mf.predictor import predict_rating
from .mf.train import EpochProgress, ProgressCallback, TrainConfig, TrainingReport, fit


logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    TRAINING = "training"
    READY = "ready"
    FAILED = "failed"


class Session:
    def __init__(self, dataset: Dataset, *, latent_dim: int = 8, seed: int | None = None) -> None:
        self.dataset = dataset
        self.latent_dim = int(latent_dim)
        self.seed = seed

        self.model: Optional[FactorizationModel] = None
        self.report: Optional[TrainingReport] = None
        self.error: Optional[BaseException] = None
        self.last_progress: Optional[EpochProgress] = None
        self.epochs_planned: int = 0

        self._lock = Lock()
        self._state = SessionState.IDLE
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    def _begin(self, config: TrainConfig) -> FactorizationModel:
        with self._lock:
            if self._state is SessionState.TRAINING:
                raise TrainingInProgress("a training run is already in progress")
            if self.model is None or self._state is SessionState.FAILED:
                self.model = create_model(
                    self.dataset.max_user_id,
                    self.dataset.max_movie_id,
                    self.latent_dim,
                    seed=self.seed,
                )
            self._state = SessionState.TRAINING
            self._cancel.clear()
            self.error = None
            self.last_progress = None
            self.epochs_planned = int(config.epochs)
            return self.model

    def _run(
        self,
        model: FactorizationModel,
        config: TrainConfig,
        on_epoch_end: ProgressCallback | None,
    ) -> TrainingReport:
        def _progress(progress: EpochProgress) -> None:
            self.last_progress = progress
            if on_epoch_end is not None:
                on_epoch_end(progress)

        try:
            report = fit(model, self.dataset, config, on_epoch_end=_progress, cancel=self._cancel)
        except Exception as exc:
            with self._lock:
                self._state = SessionState.FAILED
                self.error = exc
            logger.error("Training failed: %s", exc)
            raise

        with self._lock:
            self.report = report
            self._state = SessionState.READY if model.ready else SessionState.IDLE
        logger.info(
            "Training finished: state=%s epochs=%d loss=%s",
            self._state.value,
            report.epochs_completed,
            report.final_train_loss,
        )
        return report

    def train(self, config: TrainConfig | None = None, *, on_epoch_end: ProgressCallback | None = None) -> TrainingReport:
        """Train synchronously; errors propagate after the session is marked failed."""
        cfg = config or TrainConfig()
        model = self._begin(cfg)
        return self._run(model, cfg, on_epoch_end)

    def _run_in_background(
        self,
        model: FactorizationModel,
        config: TrainConfig,
        on_epoch_end: ProgressCallback | None,
    ) -> None:
        try:
            self._run(model, config, on_epoch_end)
        except Exception:
            # Already recorded in `state` and `error` by _run().
            logger.debug("Background training run ended with an error", exc_info=True)

    def start_training(
        self,
        config: TrainConfig | None = None,
        *,
        on_epoch_end: ProgressCallback | None = None,
    ) -> threading.Thread:
        """Train on a background thread; failures are recorded in `error`."""
        cfg = config or TrainConfig()
        model = self._begin(cfg)
        thread = threading.Thread(
            target=self._run_in_background,
            args=(model, cfg, on_epoch_end),
            name="ratingmf-train",
            daemon=True,
        )
        self._thread = thread
        thread.start()
        return thread

    def cancel(self) -> None:
        """Request cancellation; honored at the next epoch boundary."""
        self._cancel.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Join the background run; True when no run is left alive."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def predict(self, user_id: int, movie_id: int) -> float:
        """Serve from the current model; reads during a run may see the previous epoch."""
        with self._lock:
            state, error = self._state, self.error
        if state is SessionState.FAILED:
            raise ModelNotReady(f"last training run failed: {error}")
        return predict_rating(self.model, user_id, movie_id)
