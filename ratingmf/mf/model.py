from __future__ import annotations

from typing import Iterable

import torch
import torch.nn as nn

from ..errors import UnknownId


class FactorizationModel(nn.Module):
    """Biased MF model: dot(user_emb, movie_emb) + user_bias + movie_bias.

    Embedding tables are indexed directly by the raw MovieLens ids, so they hold
    `max_id + 1` rows and row 0 is never used. All tables emit sparse gradients:
    an optimizer step only touches the rows of ids present in the batch.
    """

    def __init__(
        self,
        max_user_id: int,
        max_movie_id: int,
        *,
        latent_dim: int = 8,
        init_std: float = 0.01,
    ) -> None:
        super().__init__()
        if int(max_user_id) < 0 or int(max_movie_id) < 0:
            raise ValueError(f"max ids must be >= 0, got users={max_user_id} movies={max_movie_id}")
        if int(latent_dim) < 1:
            raise ValueError(f"latent_dim must be >= 1, got {latent_dim}")

        self.max_user_id = int(max_user_id)
        self.max_movie_id = int(max_movie_id)
        self.latent_dim = int(latent_dim)

        self.user_embed = nn.Embedding(self.max_user_id + 1, self.latent_dim, sparse=True)
        self.movie_embed = nn.Embedding(self.max_movie_id + 1, self.latent_dim, sparse=True)
        self.user_bias = nn.Embedding(self.max_user_id + 1, 1, sparse=True)
        self.movie_bias = nn.Embedding(self.max_movie_id + 1, 1, sparse=True)

        nn.init.normal_(self.user_embed.weight, std=float(init_std))
        nn.init.normal_(self.movie_embed.weight, std=float(init_std))
        nn.init.zeros_(self.user_bias.weight)
        nn.init.zeros_(self.movie_bias.weight)

        # Ids that appeared in the dataset the model was fitted on.
        self.register_buffer("user_seen", torch.zeros(self.max_user_id + 1, dtype=torch.bool))
        self.register_buffer("movie_seen", torch.zeros(self.max_movie_id + 1, dtype=torch.bool))

        self.epochs_completed = 0
        self.diverged = False

    @property
    def ready(self) -> bool:
        """True once at least one epoch completed and training did not diverge."""
        return self.epochs_completed > 0 and not self.diverged

    @property
    def device(self) -> torch.device:
        return self.user_embed.weight.device

    def check_ids(self, users: torch.Tensor, movies: torch.Tensor) -> None:
        """Raise `UnknownId` for the first id outside 1..max."""
        bad_users = (users < 1) | (users > self.max_user_id)
        if bool(bad_users.any()):
            raise UnknownId("user", int(users[bad_users][0]), self.max_user_id)
        bad_movies = (movies < 1) | (movies > self.max_movie_id)
        if bool(bad_movies.any()):
            raise UnknownId("movie", int(movies[bad_movies][0]), self.max_movie_id)

    def forward(self, users: torch.Tensor, movies: torch.Tensor) -> torch.Tensor:
        self.check_ids(users, movies)
        u = self.user_embed(users)  # [B, K]
        m = self.movie_embed(movies)  # [B, K]
        dot = (u * m).sum(dim=1)
        return dot + self.user_bias(users).squeeze(1) + self.movie_bias(movies).squeeze(1)

    def predict(self, user_id: int, movie_id: int) -> float:
        """Raw (unclamped) prediction for a single pair."""
        users = torch.tensor([int(user_id)], dtype=torch.long, device=self.device)
        movies = torch.tensor([int(movie_id)], dtype=torch.long, device=self.device)
        with torch.no_grad():
            return float(self(users, movies).item())

    def mark_observed(self, user_ids: Iterable[int], movie_ids: Iterable[int]) -> None:
        users = torch.as_tensor(list(user_ids), dtype=torch.long, device=self.device)
        movies = torch.as_tensor(list(movie_ids), dtype=torch.long, device=self.device)
        self.check_ids(users, movies)
        self.user_seen[users] = True
        self.movie_seen[movies] = True

    def is_observed_user(self, user_id: int) -> bool:
        return 1 <= int(user_id) <= self.max_user_id and bool(self.user_seen[int(user_id)])

    def is_observed_movie(self, movie_id: int) -> bool:
        return 1 <= int(movie_id) <= self.max_movie_id and bool(self.movie_seen[int(movie_id)])


def create_model(
    max_user_id: int,
    max_movie_id: int,
    latent_dim: int = 8,
    *,
    seed: int | None = None,
) -> FactorizationModel:
    """Build a freshly initialized model; `seed` makes the initialization reproducible."""
    if seed is not None:
        torch.manual_seed(int(seed))
    return FactorizationModel(max_user_id, max_movie_id, latent_dim=latent_dim)
