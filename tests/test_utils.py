from __future__ import annotations

import logging
from pathlib import Path

import pytest

from ratingmf.paths import ProjectPaths, get_repo_root
from ratingmf.utils import setup_logging


def test_setup_logging_accepts_lowercase_level_names() -> None:
    root_logger = logging.getLogger()
    previous = root_logger.level
    try:
        setup_logging("debug")
        assert root_logger.level == logging.DEBUG
        setup_logging(logging.WARNING)
        assert root_logger.level == logging.WARNING
    finally:
        root_logger.setLevel(previous)


def test_repo_root_is_found_above_the_start(tmp_path: Path) -> None:
    (tmp_path / "config.yaml").write_text("data:\n  dir: data\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert get_repo_root(nested) == tmp_path.resolve()
    assert get_repo_root(tmp_path / "config.yaml") == tmp_path.resolve()


def test_repo_root_defaults_to_the_working_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "config.yaml").write_text("")
    monkeypatch.chdir(tmp_path)
    assert get_repo_root() == tmp_path.resolve()


def test_project_paths_resolve_relative_to_root(tmp_path: Path) -> None:
    paths = ProjectPaths.from_repo_root(tmp_path, data_dir="data/ml", checkpoint_name="m.pt")
    assert paths.data_dir == (tmp_path / "data" / "ml").resolve()
    assert paths.checkpoint_path == (tmp_path / "artifacts" / "m.pt").resolve()
