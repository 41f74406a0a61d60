from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass

import numpy as np
import torch


@dataclass(frozen=True)
class ReproducibilityConfig:
    seed: int = 42
    deterministic: bool = True


def setup_logging(level: int | str = "INFO") -> None:
    """Configure root logging for the CLI, the training pipeline and the service.

    `level` may be a numeric level or a name in any case, as written in the
    `logging.level` key of config.yaml. Later calls only adjust the level.
    """
    if isinstance(level, str):
        level = level.strip().upper()
    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(level)
        return

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def set_global_seed(cfg: ReproducibilityConfig) -> None:
    """Seed python, numpy and torch RNGs.

    Determinism is best-effort: CUDA kernels for sparse embedding gradients are
    not guaranteed to be bitwise reproducible.
    """
    random.seed(cfg.seed)
    np.random.seed(cfg.seed)
    torch.manual_seed(cfg.seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(cfg.seed)

    if cfg.deterministic:
        torch.backends.cudnn.deterministic = True
        torch.backends.cudnn.benchmark = False

    os.environ["PYTHONHASHSEED"] = str(cfg.seed)


def device_from_str(device: str | None) -> torch.device:
    """Resolve a device name; `None` picks CUDA when available, else CPU.

    MPS is never auto-selected because it lacks sparse gradient support.
    """
    if device is None:
        if torch.cuda.is_available():
            return torch.device("cuda")
        return torch.device("cpu")
    return torch.device(str(device))
