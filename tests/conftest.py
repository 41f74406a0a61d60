from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure `import ratingmf...` works when pytest uses importlib import mode.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from ratingmf.data import Dataset  # noqa: E402


ANTI_CORRELATED = [
    {"user": 1, "movie": 1, "rating": 5},
    {"user": 1, "movie": 2, "rating": 1},
    {"user": 2, "movie": 1, "rating": 1},
    {"user": 2, "movie": 2, "rating": 5},
]


@pytest.fixture()
def anti_dataset() -> Dataset:
    return Dataset.from_ratings(ANTI_CORRELATED)


def write_csv_dataset(directory: Path, with_movies: bool = True) -> Path:
    """Write the anti-correlated ratings in MovieLens CSV layout."""
    directory.mkdir(parents=True, exist_ok=True)
    lines = ["userId,movieId,rating,timestamp"]
    lines += [f"{r['user']},{r['movie']},{r['rating']},964982703" for r in ANTI_CORRELATED]
    (directory / "ratings.csv").write_text("\n".join(lines) + "\n")
    if with_movies:
        (directory / "movies.csv").write_text(
            "movieId,title,genres\n"
            "1,Toy Story (1995),Adventure|Animation\n"
            "2,GoldenEye (1995),Action|Thriller\n"
            "3,Four Rooms (1995),Thriller\n"
        )
    return directory


@pytest.fixture()
def csv_data_dir(tmp_path: Path) -> Path:
    return write_csv_dataset(tmp_path / "data")
