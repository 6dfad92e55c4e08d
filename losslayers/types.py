from enum import Enum
from dataclasses import dataclass
from typing import Any, Optional, Tuple
import torch

from .constants import LOG_THRESHOLD


class LayerKind(Enum):
    """
    Loss and metric layer kinds, composed with their blob arity.
    Format: Name = (unique_slug, num_bottom, num_top, differentiable)
    """

    _num_bottom: int
    _num_top: int
    _differentiable: bool

    MultinomialLogistic = ("multinomial_logistic", 2, 0, True)
    Infogain = ("infogain", 2, 0, True)
    Euclidean = ("euclidean", 2, 0, True)
    Hinge = ("hinge", 2, 0, True)
    Accuracy = ("accuracy", 2, 1, False)

    def __new__(cls, value: str, num_bottom: int, num_top: int, differentiable: bool):
        obj = object.__new__(cls)
        obj._value_ = value
        obj._num_bottom = num_bottom
        obj._num_top = num_top
        obj._differentiable = differentiable
        return obj

    @property
    def num_bottom(self) -> int:
        """Number of input blobs the layer takes (prediction, then label/target)."""
        return self._num_bottom

    @property
    def num_top(self) -> int:
        """Number of output blobs the layer writes."""
        return self._num_top

    @property
    def differentiable(self) -> bool:
        """Whether backward is defined, i.e. the layer can drive training."""
        return self._differentiable

    @property
    def requires_label(self) -> bool:
        """Whether the second bottom is a (N, 1, 1, 1) class-index blob.

        Euclidean takes a dense target of the prediction's shape instead.
        """
        return self is not LayerKind.Euclidean

    @classmethod
    def from_name(cls, name: str) -> "LayerKind":
        """Look up a kind by slug ('hinge') or member name ('Hinge')."""
        for kind in cls:
            if name in (kind.value, kind.name):
                return kind
        choices = ", ".join(kind.value for kind in cls)
        raise ValueError(f"Unknown layer kind '{name}', expected one of: {choices}")


@dataclass(frozen=True)
class LayerConfig:
    """
    Immutable, hashable layer configuration.

    Used as the single input of `make_layer` and as dictionary keys when
    collecting results for several layers.
    """

    kind: LayerKind
    name: Optional[str] = None
    infogain_source: Optional[str] = None
    log_threshold: float = LOG_THRESHOLD

    def __post_init__(self):
        if self.log_threshold <= 0:
            raise ValueError(
                f"log_threshold must be positive, got {self.log_threshold}"
            )
        if self.infogain_source is not None and self.kind is not LayerKind.Infogain:
            raise ValueError(
                f"infogain_source is only meaningful for '{LayerKind.Infogain.value}', "
                f"got kind '{self.kind.value}'"
            )

    @property
    def display_name(self) -> str:
        """Name for logs and reports (e.g. 'loss' or 'hinge')."""
        return self.name if self.name is not None else self.kind.value

    @classmethod
    def with_params(cls, kind: Any, **kwargs: Any) -> "LayerConfig":
        """Convenience constructor - accepts the kind as a LayerKind or its name."""
        if not isinstance(kind, LayerKind):
            kind = LayerKind.from_name(str(kind))
        return cls(kind=kind, **kwargs)


@dataclass(frozen=True)
class AccuracyRecord:
    """
    Per-sample view of the last accuracy forward pass.

    Exposed to diagnostic collaborators (prediction logs, error-image dumps)
    so they never need to recompute the arg-max themselves.
    """

    scores: torch.Tensor  # (N, dim) class scores as fed to the layer
    predicted: torch.Tensor  # (N,) arg-max index, lowest index wins ties
    labels: torch.Tensor  # (N,) true class index

    @property
    def correct(self) -> torch.Tensor:
        """Boolean mask of samples whose arg-max equals the label."""
        return self.predicted == self.labels

    def __len__(self) -> int:
        return int(self.labels.shape[0])

    def rows(self) -> Tuple[Tuple[torch.Tensor, int, int], ...]:
        """(scores, predicted, label) per sample, in batch order."""
        return tuple(
            (self.scores[i], int(self.predicted[i]), int(self.labels[i]))
            for i in range(len(self))
        )
