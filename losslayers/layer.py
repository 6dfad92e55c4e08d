"""
Layer contract shared by every loss and metric layer.

The engine drives each layer through three calls:
1. setup(bottom, top) once, to validate blob arity/shapes and size scratch space
2. forward(bottom, top) per batch -> 0-d tensor holding the batch-mean loss
3. backward(top, bottom) per batch, only for differentiable layers;
   overwrites bottom[0].diff in full (never accumulates)

Bottom blobs are [prediction, label] (or [prediction, target] for Euclidean).
"""

from abc import ABC, abstractmethod
import logging
from typing import Optional, Sequence
import torch

from .blob import Blob
from .errors import (
    LayerError,
    LayerSetupError,
    ArityMismatch,
    ShapeMismatch,
    LabelOutOfRange,
    MisuseAsObjective,
)
from .types import LayerKind, LayerConfig

logger = logging.getLogger(__name__)

BlobList = Sequence[Blob]


class Layer(ABC):
    """Abstract base for loss/metric layers."""

    kind: LayerKind

    def __init__(self, config: Optional[LayerConfig] = None):
        """
        Args:
            config: Layer parameters. Defaults to LayerConfig(kind=self.kind).
        """
        if config is None:
            config = LayerConfig(kind=self.kind)
        elif config.kind is not self.kind:
            raise ValueError(
                f"{type(self).__name__} expects a '{self.kind.value}' config, got '{config.kind.value}'"
            )
        self.config = config
        self.is_setup = False

    @property
    def name(self) -> str:
        return self.config.display_name

    @property
    def log_threshold(self) -> float:
        return self.config.log_threshold

    @property
    def differentiable(self) -> bool:
        return self.kind.differentiable

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def check_setup(
        self, bottom: BlobList, top: Optional[BlobList] = None
    ) -> Optional[LayerSetupError]:
        """
        Validate blob arity and shapes without raising.

        Returns:
            The error setup() would raise, or None if the blobs are acceptable
        """
        top = top if top is not None else []
        if len(bottom) != self.kind.num_bottom:
            return ArityMismatch(
                f"{self.name}: takes {self.kind.num_bottom} bottom blobs, got {len(bottom)}"
            )
        if len(top) != self.kind.num_top:
            return ArityMismatch(
                f"{self.name}: takes {self.kind.num_top} top blobs, got {len(top)}"
            )
        if bottom[0].num != bottom[1].num:
            return ShapeMismatch(
                f"{self.name}: the data and label should have the same number, "
                f"got {bottom[0].num} and {bottom[1].num}"
            )
        if self.kind.requires_label and bottom[1].shape[1:] != (1, 1, 1):
            return ShapeMismatch(
                f"{self.name}: label blob must be (N, 1, 1, 1), got {bottom[1].shape}"
            )
        return self._check_shapes(bottom, top)

    def _check_shapes(self, bottom: BlobList, top: BlobList) -> Optional[LayerSetupError]:
        """Layer-specific validation hook; runs after the common checks pass."""
        return None

    def setup(self, bottom: BlobList, top: Optional[BlobList] = None) -> None:
        """
        Validate the blobs and prepare internal state.

        Raises:
            ArityMismatch: wrong number of bottom/top blobs
            ShapeMismatch: batch sizes or label shape disagree
            ConfigMismatch: layer parameters are inconsistent (infogain matrix)
        """
        top = top if top is not None else []
        error = self.check_setup(bottom, top)
        if error is not None:
            raise error
        self._setup(bottom, top)
        self.is_setup = True
        logger.debug("%s set up for bottom shapes %s", self.name, [b.shape for b in bottom])

    def _setup(self, bottom: BlobList, top: BlobList) -> None:
        """Allocate scratch blobs / load parameters. Default: nothing to do."""

    def _require_setup(self) -> None:
        if not self.is_setup:
            raise LayerError(f"{self.name}: setup() must be called before forward/backward")

    # -------------------------------------------------------------------------
    # Forward / Backward
    # -------------------------------------------------------------------------

    def forward(self, bottom: BlobList, top: Optional[BlobList] = None) -> torch.Tensor:
        """
        Compute the batch-mean loss.

        Returns:
            0-d tensor (same dtype/device as the prediction blob)
        """
        self._require_setup()
        return self._forward(bottom, top if top is not None else [])

    def backward(
        self, top: Optional[BlobList], bottom: BlobList, propagate_down: bool = True
    ) -> None:
        """
        Overwrite bottom[0].diff with d(loss)/d(prediction).

        Args:
            top: Output blobs (unused by loss layers; accepted for a uniform call)
            bottom: The same blobs that were passed to forward
            propagate_down: If False, leave the gradient buffer untouched
        """
        if not self.differentiable:
            raise MisuseAsObjective(
                f"{self.name}: '{self.kind.value}' layer has no gradient and must not be used as a loss"
            )
        self._require_setup()
        if not propagate_down:
            return
        self._backward(top if top is not None else [], bottom)

    @abstractmethod
    def _forward(self, bottom: BlobList, top: BlobList) -> torch.Tensor:
        pass

    def _backward(self, top: BlobList, bottom: BlobList) -> None:
        raise MisuseAsObjective(f"{self.name}: backward is not implemented")

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------

    def labels(self, label_blob: Blob, dim: int) -> torch.Tensor:
        """
        Class indices from a label blob, truncated toward zero like an int cast.

        Raises:
            LabelOutOfRange: a label is outside [0, dim)
        """
        labels = label_blob.data.view(-1).to(torch.int64)
        if labels.numel() > 0:
            low, high = int(labels.min()), int(labels.max())
            if low < 0 or high >= dim:
                bad = low if low < 0 else high
                raise LabelOutOfRange(
                    f"{self.name}: label {bad} out of range for {dim} classes"
                )
        return labels

    def clamp_probs(self, probs: torch.Tensor) -> torch.Tensor:
        """max(p, log_threshold) so log() and 1/p stay finite."""
        return probs.clamp_min(self.log_threshold)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def zeros_like_loss(blob: Blob) -> torch.Tensor:
    """0-d zero on the blob's dtype/device (the 'loss' of metric layers)."""
    return torch.zeros((), dtype=blob.dtype, device=blob.device)
