"""Train the rating model from `config.yaml` and save a checkpoint.

Usage:
  python -m ratingmf.pipelines.train_build --epochs 10 --latent-dim 16
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from ..config import load_app_config
from ..data import load_dataset
from ..mf.checkpoint import save_checkpoint
from ..mf.model import create_model
from ..mf.train import TrainingReport, fit
from ..paths import get_repo_root, resolve_path
from ..utils import ReproducibilityConfig, set_global_seed, setup_logging


logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Train the biased matrix-factorization rating model.")
    p.add_argument("--config", type=Path, default=Path("config.yaml"), help="Path to config YAML.")
    p.add_argument("--data-dir", type=Path, default=None, help="Override dataset directory")
    p.add_argument("--out", type=Path, default=None, help="Override checkpoint path")
    p.add_argument("--device", type=str, default=None, help="cpu/cuda; default auto")
    p.add_argument("--epochs", type=int, default=None, help="Override epochs")
    p.add_argument("--batch-size", type=int, default=None, help="Override batch size")
    p.add_argument("--lr", type=float, default=None, help="Override learning rate")
    p.add_argument("--validation-split", type=float, default=None, help="Override validation split")
    p.add_argument("--latent-dim", type=int, default=None, help="Override latent dimension")
    p.add_argument("--seed", type=int, default=None, help="Override random seed")
    return p


def run_train_build(
    config_path: Path,
    *,
    data_dir: Path | None = None,
    out_path: Path | None = None,
    latent_dim: int | None = None,
    train_overrides: dict | None = None,
) -> TrainingReport:
    app_cfg = load_app_config(config_path, overrides=train_overrides)
    setup_logging(app_cfg.log_level)

    cfg = app_cfg.train
    set_global_seed(ReproducibilityConfig(seed=cfg.seed))

    dataset = load_dataset(data_dir if data_dir is not None else app_cfg.paths.data_dir)
    model = create_model(
        dataset.max_user_id,
        dataset.max_movie_id,
        int(latent_dim or app_cfg.latent_dim),
        seed=app_cfg.model_seed,
    )

    report = fit(model, dataset, cfg)
    logger.info(
        "Model training complete: epochs=%d loss=%.4f",
        report.epochs_completed,
        report.final_train_loss if report.final_train_loss is not None else float("nan"),
    )

    target = out_path if out_path is not None else app_cfg.paths.checkpoint_path
    save_checkpoint(model, target, report=report, config=cfg)
    return report


def main(argv: list[str] | None = None) -> None:
    setup_logging("INFO")
    args = build_arg_parser().parse_args(argv)
    config_path = Path(args.config)
    if not config_path.is_absolute():
        config_path = resolve_path(get_repo_root(), config_path)

    run_train_build(
        config_path,
        data_dir=args.data_dir,
        out_path=args.out,
        latent_dim=args.latent_dim,
        train_overrides={
            "epochs": args.epochs,
            "batch_size": args.batch_size,
            "learning_rate": args.lr,
            "validation_split": args.validation_split,
            "seed": args.seed,
            "device": args.device,
        },
    )


if __name__ == "__main__":
    main()
