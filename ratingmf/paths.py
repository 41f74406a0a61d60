from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ProjectPaths:
    data_dir: Path
    artifacts_dir: Path
    checkpoint_path: Path

    @classmethod
    def from_repo_root(
        cls,
        repo_root: Path,
        *,
        data_dir: Path | str = "data/ml-100k",
        artifacts_dir: Path | str = "artifacts",
        checkpoint_name: str = "mf_model.pt",
    ) -> "ProjectPaths":
        artifacts_dir_p = resolve_path(repo_root, artifacts_dir)
        return cls(
            data_dir=resolve_path(repo_root, data_dir),
            artifacts_dir=artifacts_dir_p,
            checkpoint_path=artifacts_dir_p / checkpoint_name,
        )


def resolve_path(repo_root: Path, p: Path | str) -> Path:
    """Resolve `p` against `repo_root` unless it is already absolute."""
    p_path = Path(p)
    if not p_path.is_absolute():
        p_path = repo_root / p_path
    return p_path.resolve()


def _looks_like_repo_root(directory: Path) -> bool:
    return (directory / "config.yaml").is_file() or (directory / ".git").exists()


def get_repo_root(start: Path | str | None = None) -> Path:
    """Nearest directory at or above `start` holding `config.yaml` or `.git`.

    `start` defaults to the working directory. When nothing is found there, the
    search is repeated from the installed package, which covers a source checkout
    run from an unrelated directory.
    """
    origins = [Path.cwd() if start is None else Path(start), Path(__file__).parent]
    for origin in origins:
        origin = origin.resolve()
        if origin.is_file():
            origin = origin.parent
        for candidate in (origin, *origin.parents):
            if _looks_like_repo_root(candidate):
                return candidate

    raise FileNotFoundError("Could not locate repo root (expected `config.yaml` or `.git`).")
