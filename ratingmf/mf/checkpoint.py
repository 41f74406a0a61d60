from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

import torch

from .model import FactorizationModel
from .train import TrainConfig, TrainingReport


logger = logging.getLogger(__name__)


def meta_path_for(checkpoint_path: Path) -> Path:
    return Path(checkpoint_path).with_suffix(".meta.json")


def save_checkpoint(
    model: FactorizationModel,
    path: Path,
    *,
    report: TrainingReport | None = None,
    config: TrainConfig | None = None,
) -> Path:
    """Persist weights plus a JSON sidecar describing the run."""
    path = Path(path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    torch.save(
        {
            "state_dict": model.state_dict(),
            "max_user_id": model.max_user_id,
            "max_movie_id": model.max_movie_id,
            "latent_dim": model.latent_dim,
            "epochs_completed": model.epochs_completed,
            "diverged": model.diverged,
        },
        path,
    )

    meta: dict[str, Any] = {
        "max_user_id": model.max_user_id,
        "max_movie_id": model.max_movie_id,
        "latent_dim": model.latent_dim,
        "epochs_completed": model.epochs_completed,
        "observed_users": int(model.user_seen.sum().item()),
        "observed_movies": int(model.movie_seen.sum().item()),
    }
    if config is not None:
        meta["train_config"] = config.to_dict()
    if report is not None:
        meta["report"] = {
            "final_train_loss": report.final_train_loss,
            "final_val_loss": report.final_val_loss,
            "epochs_completed": report.epochs_completed,
            "cancelled": report.cancelled,
            "history": [asdict(p) for p in report.history],
        }
    meta_path_for(path).write_text(json.dumps(meta, indent=2, sort_keys=True) + "\n")

    logger.info("Saved checkpoint -> %s", path)
    return path


def load_checkpoint(path: Path, *, device: str | None = "cpu") -> FactorizationModel:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Checkpoint not found: {path}. Run the training pipeline first.")

    ckpt = torch.load(path, map_location=device or "cpu")
    model = FactorizationModel(
        int(ckpt["max_user_id"]),
        int(ckpt["max_movie_id"]),
        latent_dim=int(ckpt["latent_dim"]),
    )
    model.load_state_dict(ckpt["state_dict"])
    model.epochs_completed = int(ckpt.get("epochs_completed", 0))
    model.diverged = bool(ckpt.get("diverged", False))
    model.eval()
    return model
