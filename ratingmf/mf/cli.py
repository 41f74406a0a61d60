"""Predict a rating for a (user, movie) pair from a saved checkpoint.

Usage:
  python -m ratingmf.mf.cli --user-id 1 --movie-id 50
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from ..catalog import movie_label, user_label
from ..config import load_app_config
from ..data import load_dataset
from ..errors import DataUnavailable, ModelNotReady, UnknownId
from ..paths import get_repo_root, resolve_path
from ..utils import setup_logging
from .checkpoint import load_checkpoint
from .predictor import predict_rating, rating_class


logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Predict a MovieLens rating with the trained MF model")
    p.add_argument("--user-id", type=int, required=True, help="MovieLens userId")
    p.add_argument("--movie-id", type=int, required=True, help="MovieLens movieId")
    p.add_argument("--config", type=Path, default=Path("config.yaml"), help="Path to config YAML")
    p.add_argument("--checkpoint", type=Path, default=None, help="Override checkpoint path")
    p.add_argument("--no-titles", action="store_true", help="Skip loading the movie catalog")
    return p


def main(argv: list[str] | None = None) -> int:
    setup_logging("WARNING")
    args = build_arg_parser().parse_args(argv)
    config_path = Path(args.config)
    if not config_path.is_absolute():
        config_path = resolve_path(get_repo_root(), config_path)
    app_cfg = load_app_config(config_path)

    model = load_checkpoint(args.checkpoint or app_cfg.paths.checkpoint_path)

    title = f"Movie {args.movie_id}"
    if not args.no_titles:
        try:
            dataset = load_dataset(app_cfg.paths.data_dir)
            title = movie_label(dataset.movie(args.movie_id), args.movie_id)
        except DataUnavailable as exc:
            logger.warning("Movie catalog unavailable, showing ids only: %s", exc)

    try:
        rating = predict_rating(model, args.user_id, args.movie_id)
    except (UnknownId, ModelNotReady) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    print(f'Predicted rating for {user_label(args.user_id)} on "{title}": {rating:.2f}/5 ({rating_class(rating)})')
    return 0


if __name__ == "__main__":
    sys.exit(main())
