from __future__ import annotations

import logging
import math
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterator, Optional

import numpy as np
import torch
from sklearn import model_selection
from torch.utils.data import DataLoader, Dataset as TorchDataset

from ..data import Dataset
from ..errors import EmptyDataset, NonFiniteLoss
from ..utils import device_from_str
from .model import FactorizationModel


logger = logging.getLogger(__name__)


class RatingsDataset(TorchDataset):
    def __init__(self, user_ids: np.ndarray, movie_ids: np.ndarray, rating: np.ndarray) -> None:
        self.users = torch.as_tensor(user_ids.astype(np.int64, copy=False), dtype=torch.long)
        self.movies = torch.as_tensor(movie_ids.astype(np.int64, copy=False), dtype=torch.long)
        self.ratings = torch.as_tensor(rating.astype(np.float32, copy=False), dtype=torch.float32)

    def __len__(self) -> int:
        return int(self.users.shape[0])

    def __getitem__(self, i: int) -> dict[str, torch.Tensor]:
        return {"users": self.users[i], "movies": self.movies[i], "ratings": self.ratings[i]}


@dataclass(frozen=True)
class TrainConfig:
    epochs: int = 5
    batch_size: int = 32
    learning_rate: float = 1e-3
    validation_split: float = 0.0
    shuffle_each_epoch: bool = True
    seed: int = 42
    device: Optional[str] = None

    def __post_init__(self) -> None:
        if int(self.epochs) < 1:
            raise ValueError(f"epochs must be a positive integer, got {self.epochs}")
        if int(self.batch_size) < 1:
            raise ValueError(f"batch_size must be a positive integer, got {self.batch_size}")
        if not (float(self.learning_rate) > 0.0 and math.isfinite(float(self.learning_rate))):
            raise ValueError(f"learning_rate must be a positive real, got {self.learning_rate}")
        if not (0.0 <= float(self.validation_split) < 1.0):
            raise ValueError(f"validation_split must be in [0, 1), got {self.validation_split}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class EpochProgress:
    """Emitted after every completed epoch; `epoch` counts from 1."""

    epoch: int
    epochs: int
    train_loss: float
    val_loss: Optional[float] = None


@dataclass(frozen=True)
class TrainingReport:
    final_train_loss: Optional[float]
    final_val_loss: Optional[float]
    epochs_completed: int
    cancelled: bool = False
    history: tuple[EpochProgress, ...] = field(default_factory=tuple)


ProgressCallback = Callable[[EpochProgress], None]


def split_indices(n: int, validation_split: float, seed: int) -> tuple[np.ndarray, np.ndarray]:
    """Hold out the trailing `validation_split` share of a seeded permutation.

    The train share is floor(n * (1 - split)); the split is drawn once per fit.
    """
    idx = np.arange(int(n), dtype=np.int64)
    n_train = int(math.floor(n * (1.0 - float(validation_split))))
    n_val = int(n) - n_train
    if n_val == 0:
        if validation_split > 0.0:
            logger.warning("validation_split=%.3f leaves no validation rows for n=%d", validation_split, n)
        return idx, idx[:0]
    if n_train == 0:
        raise EmptyDataset(f"validation_split={validation_split} leaves no training rows for n={n}")

    train_idx, val_idx = model_selection.train_test_split(
        idx,
        test_size=n_val,
        random_state=int(seed),
        shuffle=True,
    )
    return np.sort(train_idx), np.sort(val_idx)


def _evaluate(model: FactorizationModel, loader: DataLoader, loss_fn: torch.nn.Module) -> float:
    model.eval()
    total = 0.0
    n = 0
    with torch.no_grad():
        for batch in loader:
            users = batch["users"].to(model.device)
            movies = batch["movies"].to(model.device)
            ratings_t = batch["ratings"].to(model.device)
            loss = loss_fn(model(users, movies), ratings_t)
            bs = int(users.shape[0])
            total += float(loss.item()) * bs
            n += bs
    model.train()
    return total / max(1, n)


def iter_epochs(
    model: FactorizationModel,
    dataset: Dataset,
    config: TrainConfig | None = None,
) -> Iterator[EpochProgress]:
    """Validate inputs eagerly, then return a generator that trains one epoch per `next()`.

    The generator is the only writer of `model` while it runs.
    """
    cfg = config or TrainConfig()
    if len(dataset) == 0:
        raise EmptyDataset("cannot fit a model on a dataset with zero ratings")
    if dataset.max_user_id > model.max_user_id or dataset.max_movie_id > model.max_movie_id:
        raise ValueError(
            "model id range is smaller than the dataset: "
            f"model=({model.max_user_id}, {model.max_movie_id}) "
            f"dataset=({dataset.max_user_id}, {dataset.max_movie_id})"
        )

    users, movies, ratings = dataset.arrays()
    train_idx, val_idx = split_indices(len(dataset), cfg.validation_split, cfg.seed)

    torch_device = device_from_str(cfg.device)
    model.to(torch_device)
    model.mark_observed(np.unique(users).tolist(), np.unique(movies).tolist())
    model.diverged = False

    generator = torch.Generator()
    generator.manual_seed(int(cfg.seed))
    train_loader = DataLoader(
        RatingsDataset(users[train_idx], movies[train_idx], ratings[train_idx]),
        batch_size=int(cfg.batch_size),
        shuffle=bool(cfg.shuffle_each_epoch),
        generator=generator,
        num_workers=0,
    )
    val_loader = None
    if len(val_idx):
        val_loader = DataLoader(
            RatingsDataset(users[val_idx], movies[val_idx], ratings[val_idx]),
            batch_size=int(cfg.batch_size),
            shuffle=False,
            num_workers=0,
        )

    logger.info(
        "Training MF on device=%s epochs=%d batch_size=%d lr=%g train=%d val=%d",
        torch_device,
        int(cfg.epochs),
        int(cfg.batch_size),
        float(cfg.learning_rate),
        len(train_idx),
        len(val_idx),
    )
    return _run_epochs(model, cfg, train_loader, val_loader)


# A prediction this large already overflows float32 once squared in the loss.
_PREDICTION_LIMIT = math.sqrt(float(torch.finfo(torch.float32).max))


def _parameters_diverged(model: FactorizationModel) -> bool:
    """True when a parameter is non-finite or predictions can no longer be bounded."""
    with torch.no_grad():
        if not all(bool(torch.isfinite(p).all()) for p in model.parameters()):
            return True
        bound = (
            model.user_embed.weight.double().norm(dim=1).max()
            * model.movie_embed.weight.double().norm(dim=1).max()
            + model.user_bias.weight.double().abs().max()
            + model.movie_bias.weight.double().abs().max()
        )
    bound = float(bound)
    return not math.isfinite(bound) or bound > _PREDICTION_LIMIT


def _run_epochs(
    model: FactorizationModel,
    cfg: TrainConfig,
    train_loader: DataLoader,
    val_loader: DataLoader | None,
) -> Iterator[EpochProgress]:
    # Lazy Adam: moments and parameters change only for rows present in the batch.
    optimizer = torch.optim.SparseAdam(list(model.parameters()), lr=float(cfg.learning_rate))
    loss_fn = torch.nn.MSELoss()

    model.train()
    for epoch in range(1, int(cfg.epochs) + 1):
        total_loss = 0.0
        n = 0
        for batch_idx, batch in enumerate(train_loader):
            users = batch["users"].to(model.device)
            movies = batch["movies"].to(model.device)
            ratings_t = batch["ratings"].to(model.device)

            loss = loss_fn(model(users, movies), ratings_t)
            if not bool(torch.isfinite(loss)):
                model.diverged = True
                logger.error("Non-finite loss at epoch=%d batch=%d; aborting training", epoch, batch_idx)
                raise NonFiniteLoss(epoch, batch_idx, float(loss.item()))

            optimizer.zero_grad(set_to_none=True)
            loss.backward()
            optimizer.step()

            bs = int(users.shape[0])
            total_loss += float(loss.item()) * bs
            n += bs

        train_mse = total_loss / max(1, n)
        val_mse = _evaluate(model, val_loader, loss_fn) if val_loader is not None else None
        # The last optimizer step of the epoch is never seen by a batch loss.
        if _parameters_diverged(model) or (val_mse is not None and not math.isfinite(val_mse)):
            model.diverged = True
            logger.error("Parameters diverged after epoch=%d; aborting training", epoch)
            raise NonFiniteLoss(epoch, None, train_mse if val_mse is None else val_mse)
        model.epochs_completed += 1

        if val_mse is None:
            logger.info("Epoch %d/%d, loss=%.4f", epoch, int(cfg.epochs), train_mse)
        else:
            logger.info("Epoch %d/%d, loss=%.4f val_loss=%.4f", epoch, int(cfg.epochs), train_mse, val_mse)
        yield EpochProgress(epoch=epoch, epochs=int(cfg.epochs), train_loss=train_mse, val_loss=val_mse)


def fit(
    model: FactorizationModel,
    dataset: Dataset,
    config: TrainConfig | None = None,
    *,
    on_epoch_end: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
) -> TrainingReport:
    """Train `model` in place on `dataset`.

    `on_epoch_end` runs between epochs and must not mutate the model.
    `cancel` is checked before every epoch; a set event ends training early.
    """
    epochs = iter_epochs(model, dataset, config)
    history: list[EpochProgress] = []
    cancelled = False
    try:
        while True:
            if cancel is not None and cancel.is_set():
                cancelled = True
                logger.info("Training cancelled after %d epoch(s)", len(history))
                break
            try:
                progress = next(epochs)
            except StopIteration:
                break
            history.append(progress)
            if on_epoch_end is not None:
                on_epoch_end(progress)
    finally:
        epochs.close()

    last = history[-1] if history else None
    return TrainingReport(
        final_train_loss=(last.train_loss if last else None),
        final_val_loss=(last.val_loss if last else None),
        epochs_completed=len(history),
        cancelled=cancelled,
        history=tuple(history),
    )
