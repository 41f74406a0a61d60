"""YAML configuration for the training pipeline, CLI and service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from .mf.train import TrainConfig
from .paths import ProjectPaths, get_repo_root


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppConfig:
    paths: ProjectPaths
    latent_dim: int
    model_seed: int
    train: TrainConfig
    log_level: str = "INFO"


def load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    obj = yaml.safe_load(path.read_text())
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise ValueError(f"Expected YAML mapping at {path}, got {type(obj)}")
    return obj


def _section(cfg: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = cfg.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"config section {name!r} must be a mapping")
    return value


def load_app_config(
    config_path: Path | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Read `config.yaml` into an `AppConfig`.

    Relative paths are resolved against the directory holding the config file.
    `overrides` replaces `train` keys (CLI flags); `None` values are ignored.
    """
    if config_path is None:
        config_path = get_repo_root() / "config.yaml"
    config_path = Path(config_path).resolve()
    cfg = load_yaml(config_path)
    base_dir = config_path.parent

    dataset_cfg = _section(cfg, "dataset")
    model_cfg = _section(cfg, "model")
    train_cfg = dict(_section(cfg, "train"))
    artifacts_cfg = _section(cfg, "artifacts")
    logging_cfg = _section(cfg, "logging")

    for key, value in (overrides or {}).items():
        if value is not None:
            train_cfg[key] = value

    paths = ProjectPaths.from_repo_root(
        base_dir,
        data_dir=str(dataset_cfg.get("source", "data/ml-100k")),
        artifacts_dir=str(artifacts_cfg.get("dir", "artifacts")),
        checkpoint_name=str(artifacts_cfg.get("checkpoint", "mf_model.pt")),
    )

    device = train_cfg.get("device")
    train = TrainConfig(
        epochs=int(train_cfg.get("epochs", 5)),
        batch_size=int(train_cfg.get("batch_size", 32)),
        learning_rate=float(train_cfg.get("learning_rate", 1e-3)),
        validation_split=float(train_cfg.get("validation_split", 0.0)),
        shuffle_each_epoch=bool(train_cfg.get("shuffle_each_epoch", True)),
        seed=int(train_cfg.get("seed", 42)),
        device=(None if device is None else str(device)),
    )

    app_cfg = AppConfig(
        paths=paths,
        latent_dim=int(model_cfg.get("latent_dim", 8)),
        model_seed=int(model_cfg.get("seed", train.seed)),
        train=train,
        log_level=str(logging_cfg.get("level", "INFO")),
    )
    logger.debug("Loaded config from %s: %s", config_path, app_cfg)
    return app_cfg
