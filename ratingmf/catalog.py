"""Title parsing and display labels for users and movies."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .data import Movie


_TITLE_YEAR_RE = re.compile(r"\((\d{4})\)\s*$")


def split_title_and_year(title: str) -> tuple[str, Optional[int]]:
    """Split a MovieLens `title` into (title_clean, year) when it ends with '(YYYY)'."""
    title = "" if title is None else str(title)
    title = title.strip()

    match = _TITLE_YEAR_RE.search(title)
    if not match:
        return title, None

    year = int(match.group(1))
    title_clean = title[: match.start()].rstrip()
    return title_clean, year


def movie_label(movie: "Movie | None", movie_id: int | None = None) -> str:
    """`"Title (Year)"`, the bare title when the year is unknown, or `"Movie <id>"`."""
    if movie is None:
        return f"Movie {movie_id}"
    if movie.year is not None:
        return f"{movie.title} ({movie.year})"
    return movie.title


def user_label(user_id: int) -> str:
    return f"User {int(user_id)}"
