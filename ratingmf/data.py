"""Rating dataset loading and normalization.

Two on-disk layouts are understood:

- MovieLens 100K: tab-separated `u.data` (user, item, rating, timestamp) and a
  pipe-separated, latin-1 encoded `u.item` whose second column is the title.
- MovieLens CSV: `ratings.csv` (userId, movieId, rating, ...) and `movies.csv`
  (movieId, title, ...).

The movie catalog is optional in both layouts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

import numpy as np
import pandas as pd

from .catalog import split_title_and_year
from .errors import DataUnavailable


logger = logging.getLogger(__name__)

RATING_MIN = 1.0
RATING_MAX = 5.0

RATING_COLUMNS = ("userId", "movieId", "rating")


@dataclass(frozen=True)
class Rating:
    userId: int
    movieId: int
    rating: float

    def __post_init__(self) -> None:
        if int(self.userId) < 1 or int(self.movieId) < 1:
            raise ValueError(f"ids must be >= 1, got userId={self.userId} movieId={self.movieId}")
        if not (RATING_MIN <= float(self.rating) <= RATING_MAX):
            raise ValueError(f"rating must be in [{RATING_MIN}, {RATING_MAX}], got {self.rating}")


@dataclass(frozen=True)
class Movie:
    id: int
    title: str
    year: Optional[int] = None


def _coerce_rating(obj: Any) -> Rating:
    if isinstance(obj, Rating):
        return obj
    if isinstance(obj, Mapping):
        user = obj.get("userId", obj.get("user"))
        movie = obj.get("movieId", obj.get("movie"))
        return Rating(userId=int(user), movieId=int(movie), rating=float(obj["rating"]))
    user, movie, rating = obj
    return Rating(userId=int(user), movieId=int(movie), rating=float(rating))


def _coerce_movie(obj: Any) -> Movie:
    if isinstance(obj, Movie):
        return obj
    if isinstance(obj, Mapping):
        movie_id = obj.get("movieId", obj.get("id"))
        year = obj.get("year")
        return Movie(id=int(movie_id), title=str(obj["title"]), year=(None if year is None else int(year)))
    movie_id, title, *rest = obj
    year = rest[0] if rest else None
    return Movie(id=int(movie_id), title=str(title), year=(None if year is None else int(year)))


def _normalize_ratings(df: pd.DataFrame, *, origin: str) -> pd.DataFrame:
    """Keep (userId, movieId, rating), drop rows outside the 1..5 contract."""
    missing = [c for c in RATING_COLUMNS if c not in df.columns]
    if missing:
        raise DataUnavailable(f"{origin} missing columns: {missing}")

    df = df[list(RATING_COLUMNS)].dropna().copy()
    try:
        df["userId"] = df["userId"].astype("int64")
        df["movieId"] = df["movieId"].astype("int64")
        df["rating"] = df["rating"].astype("float64")
    except (TypeError, ValueError) as exc:
        raise DataUnavailable(f"{origin} has non-numeric rating rows: {exc}") from exc

    valid = (df["userId"] >= 1) & (df["movieId"] >= 1) & df["rating"].between(RATING_MIN, RATING_MAX)
    n_bad = int((~valid).sum())
    if n_bad:
        logger.warning("Dropping %d rating rows from %s with ids < 1 or rating outside [1, 5]", n_bad, origin)
    return df.loc[valid].reset_index(drop=True)


def _normalize_movies(df: pd.DataFrame | None, *, origin: str) -> pd.DataFrame:
    """Return (movieId, title, year) with the year split off the raw title."""
    if df is None or df.empty:
        return pd.DataFrame(
            {
                "movieId": pd.Series(dtype="int64"),
                "title": pd.Series(dtype="string"),
                "year": pd.Series(dtype="Int64"),
            }
        )

    if "movieId" not in df.columns or "title" not in df.columns:
        raise DataUnavailable(f"{origin} must contain columns 'movieId' and 'title'")

    df = df.dropna(subset=["movieId"]).copy()
    try:
        df["movieId"] = df["movieId"].astype("int64")
    except (TypeError, ValueError) as exc:
        raise DataUnavailable(f"{origin} has non-numeric movieId values: {exc}") from exc
    df = df[df["movieId"] >= 1]
    if df["movieId"].duplicated().any():
        raise DataUnavailable(f"{origin} has duplicate movieId values")

    if "year" in df.columns:
        titles = df["title"].fillna("").astype(str).str.strip()
        years = pd.to_numeric(df["year"], errors="coerce").astype("Int64")
    else:
        parts = [split_title_and_year(t) for t in df["title"].fillna("").astype(str)]
        titles = pd.Series([p[0] for p in parts], index=df.index)
        years = pd.Series([p[1] for p in parts], index=df.index, dtype="Int64")

    out = pd.DataFrame({"movieId": df["movieId"], "title": titles.astype("string"), "year": years})
    return out.sort_values("movieId").reset_index(drop=True)


@dataclass(frozen=True)
class Dataset:
    """Ratings plus an optional movie catalog and derived id ranges."""

    ratings: pd.DataFrame
    movies: pd.DataFrame
    max_user_id: int
    max_movie_id: int

    @classmethod
    def from_frames(
        cls,
        ratings: pd.DataFrame,
        movies: pd.DataFrame | None = None,
        *,
        origin: str = "ratings",
    ) -> "Dataset":
        ratings_n = _normalize_ratings(ratings, origin=origin)
        movies_n = _normalize_movies(movies, origin=f"{origin} movies")

        # Id ranges come from the ratings alone; catalog-only movies past the
        # largest rated id stay outside the model's range.
        max_user_id = int(ratings_n["userId"].max()) if len(ratings_n) else 0
        max_movie_id = int(ratings_n["movieId"].max()) if len(ratings_n) else 0

        return cls(ratings=ratings_n, movies=movies_n, max_user_id=max_user_id, max_movie_id=max_movie_id)

    @classmethod
    def from_ratings(
        cls,
        records: Iterable[Any],
        movies: Iterable[Any] | None = None,
    ) -> "Dataset":
        """Build a dataset in memory from `Rating`s, mappings or (user, movie, rating) tuples."""
        rows = [_coerce_rating(r) for r in records]
        ratings = pd.DataFrame(
            {
                "userId": pd.Series([r.userId for r in rows], dtype="int64"),
                "movieId": pd.Series([r.movieId for r in rows], dtype="int64"),
                "rating": pd.Series([r.rating for r in rows], dtype="float64"),
            }
        )
        movies_df = None
        if movies is not None:
            catalog = [_coerce_movie(m) for m in movies]
            movies_df = pd.DataFrame(
                {
                    "movieId": [m.id for m in catalog],
                    "title": [m.title for m in catalog],
                    "year": pd.Series([m.year for m in catalog], dtype="Int64"),
                }
            )
        return cls.from_frames(ratings, movies_df, origin="records")

    def __len__(self) -> int:
        return int(len(self.ratings))

    def user_ids(self) -> list[int]:
        return sorted(int(u) for u in self.ratings["userId"].unique())

    def movie_ids(self) -> list[int]:
        """Sorted ids of movies that received at least one rating."""
        return sorted(int(m) for m in self.ratings["movieId"].unique())

    def catalog(self) -> list[Movie]:
        return [
            Movie(id=int(row.movieId), title=str(row.title), year=(None if pd.isna(row.year) else int(row.year)))
            for row in self.movies.itertuples(index=False)
        ]

    def movie(self, movie_id: int) -> Movie | None:
        match = self.movies[self.movies["movieId"] == int(movie_id)]
        if match.empty:
            return None
        row = match.iloc[0]
        year = row["year"]
        return Movie(id=int(row["movieId"]), title=str(row["title"]), year=(None if pd.isna(year) else int(year)))

    def arrays(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """(user ids int64, movie ids int64, ratings float32) in dataset order."""
        return (
            self.ratings["userId"].to_numpy(dtype=np.int64),
            self.ratings["movieId"].to_numpy(dtype=np.int64),
            self.ratings["rating"].to_numpy(dtype=np.float32),
        )


def _read_table(path: Path, **kwargs: Any) -> pd.DataFrame:
    try:
        return pd.read_csv(path, **kwargs)
    except (OSError, ValueError) as exc:
        # pandas parser/empty-data errors are ValueError subclasses.
        raise DataUnavailable(f"Could not read {path}: {exc}") from exc


def _read_ml100k(ratings_path: Path) -> tuple[pd.DataFrame, pd.DataFrame | None]:
    ratings = _read_table(
        ratings_path,
        sep="\t",
        header=None,
        names=["userId", "movieId", "rating", "timestamp"],
    )
    items_path = ratings_path.with_name("u.item")
    movies = None
    if items_path.is_file():
        movies = _read_table(items_path, sep="|", header=None, usecols=[0, 1], encoding="latin-1")
        movies = movies.rename(columns={0: "movieId", 1: "title"})
    return ratings, movies


def _read_csv_layout(ratings_path: Path) -> tuple[pd.DataFrame, pd.DataFrame | None]:
    ratings = _read_table(ratings_path)
    movies_path = ratings_path.with_name("movies.csv")
    movies = _read_table(movies_path) if movies_path.is_file() else None
    return ratings, movies


def load_dataset(source: Path | str) -> Dataset:
    """Load a ratings dataset from a directory or a ratings file.

    Raises `DataUnavailable` when nothing usable can be read.
    """
    path = Path(source)
    if path.is_dir():
        if (path / "u.data").is_file():
            ratings_path = path / "u.data"
        elif (path / "ratings.csv").is_file():
            ratings_path = path / "ratings.csv"
        else:
            raise DataUnavailable(f"No u.data or ratings.csv found in {path}")
    elif path.is_file():
        ratings_path = path
    else:
        raise DataUnavailable(f"Ratings source not found: {path}")

    if ratings_path.suffix.lower() == ".csv":
        ratings, movies = _read_csv_layout(ratings_path)
    else:
        ratings, movies = _read_ml100k(ratings_path)

    dataset = Dataset.from_frames(ratings, movies, origin=ratings_path.name)
    if len(dataset) == 0:
        raise DataUnavailable(f"No usable ratings in {ratings_path}")

    logger.info(
        "Loaded %d ratings from %s: max_user_id=%d max_movie_id=%d catalog=%d",
        len(dataset),
        ratings_path,
        dataset.max_user_id,
        dataset.max_movie_id,
        len(dataset.movies),
    )
    return dataset
