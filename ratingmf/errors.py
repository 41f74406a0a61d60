"""Error taxonomy shared by the dataset, model, trainer and predictor."""

from __future__ import annotations


class RatingModelError(Exception):
    """Base class for all errors raised by this package."""


class DataUnavailable(RatingModelError):
    """The ratings source cannot be read or holds no usable ratings."""


class EmptyDataset(RatingModelError, ValueError):
    """`fit` was called without any training examples."""


class NonFiniteLoss(RatingModelError):
    """Training diverged: a loss or a learned parameter became NaN or infinite.

    `batch` is None when the divergence was caught at the end of an epoch
    rather than on a batch loss.
    """

    def __init__(self, epoch: int, batch: int | None, loss: float) -> None:
        if batch is None:
            msg = f"training diverged after epoch={epoch} (loss={loss!r})"
        else:
            msg = f"non-finite loss {loss!r} at epoch={epoch} batch={batch}"
        super().__init__(msg)
        self.epoch = int(epoch)
        self.batch = None if batch is None else int(batch)
        self.loss = float(loss)


class UnknownId(RatingModelError, KeyError):
    """A user or movie id lies outside the model's range or was never observed."""

    def __init__(self, kind: str, value: int, max_id: int | None = None) -> None:
        if max_id is None:
            msg = f"Unknown {kind}Id: {value} (never observed in the dataset)"
        else:
            msg = f"Unknown {kind}Id: {value} (valid range 1..{max_id})"
        super().__init__(msg)
        self.kind = kind
        self.value = int(value)
        self.max_id = max_id

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message.
        return str(self.args[0])


class ModelNotReady(RatingModelError, RuntimeError):
    """Prediction requested before a usable trained model exists."""


class TrainingInProgress(RatingModelError, RuntimeError):
    """A second training run was requested while one is still running."""
