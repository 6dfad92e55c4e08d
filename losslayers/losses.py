"""
Loss layer implementations with gradient support.

All losses share the Layer interface:
1. forward(bottom) -> batch-mean loss (sum over the batch divided by N)
2. backward(top, bottom) -> overwrites bottom[0].diff with d(loss)/d(prediction)

Bottom blobs are [prediction, label], except Euclidean which takes
[prediction, target] of identical shape.
"""

import logging
from typing import Optional, Union
import numpy as np
import torch

from .blob import Blob
from .constants import HINGE_MARGIN
from .errors import ConfigMismatch, ShapeMismatch, LayerSetupError
from .io import as_weight_matrix, load_weight_matrix
from .layer import Layer, BlobList
from .types import LayerKind, LayerConfig

logger = logging.getLogger(__name__)


class MultinomialLogisticLossLayer(Layer):
    """
    Multinomial logistic loss on predicted probabilities:
    L = -1/N * sum_i log(max(p[i, label_i], eps))

    Gradient is sparse: only the true-class entry of each sample is non-zero,
    dL/dp[i, label_i] = -1 / (max(p[i, label_i], eps) * N)
    """

    kind = LayerKind.MultinomialLogistic

    def _true_class_probs(self, bottom: BlobList):
        probs = bottom[0].as_matrix()
        labels = self.labels(bottom[1], probs.shape[1])
        # Clamp to keep log() and 1/p finite
        prob = self.clamp_probs(probs.gather(1, labels.view(-1, 1)).view(-1))
        return prob, labels

    def _forward(self, bottom: BlobList, top: BlobList) -> torch.Tensor:
        num = bottom[0].num
        prob, _ = self._true_class_probs(bottom)
        return -torch.log(prob).sum() / num

    def _backward(self, top: BlobList, bottom: BlobList) -> None:
        num = bottom[0].num
        prob, labels = self._true_class_probs(bottom)

        bottom[0].zero_diff()
        diff = bottom[0].diff_matrix()
        diff.scatter_(1, labels.view(-1, 1), (-1.0 / prob / num).view(-1, 1))


class InfogainLossLayer(Layer):
    """
    Information-gain-weighted cross entropy over all classes:
    L = -1/N * sum_i sum_j H[label_i, j] * log(max(p[i, j], eps))

    Gradient is dense:
    dL/dp[i, j] = -H[label_i, j] / (max(p[i, j], eps) * N)

    With H = identity this is exactly the multinomial logistic loss.
    """

    kind = LayerKind.Infogain

    def __init__(
        self,
        config: Optional[LayerConfig] = None,
        infogain: Optional[Union[torch.Tensor, np.ndarray]] = None,
    ):
        """
        Args:
            config: Layer parameters; config.infogain_source names the matrix file
            infogain: Matrix given directly instead of through a file
        """
        super().__init__(config)
        if infogain is not None and self.config.infogain_source is not None:
            raise ValueError(
                f"{self.name}: give the infogain matrix either as a tensor or a file, not both"
            )
        # Validated eagerly; moved to the prediction dtype/device in setup
        self._given = as_weight_matrix(infogain) if infogain is not None else None
        self.infogain: Optional[torch.Tensor] = None

    def _check_shapes(self, bottom: BlobList, top: BlobList) -> Optional[LayerSetupError]:
        if self._given is None and self.config.infogain_source is None:
            return ConfigMismatch(
                f"{self.name}: no infogain matrix (set infogain_source or pass a tensor)"
            )
        return None

    def _setup(self, bottom: BlobList, top: BlobList) -> None:
        pred = bottom[0]
        if self._given is not None:
            self.infogain = self._given.to(dtype=pred.dtype, device=pred.device)
        else:
            self.infogain = load_weight_matrix(
                self.config.infogain_source, dtype=pred.dtype, device=pred.device
            )
        # Side length vs. class count is checked per forward: the per-sample
        # dimension belongs to the batch, not to the layer
        logger.info(
            "%s: using %dx%d infogain matrix", self.name, *self.infogain.shape
        )

    def _weights(self, bottom: BlobList, dim: int) -> torch.Tensor:
        """Row H[label_i] for every sample, shape (N, dim)."""
        if self.infogain.shape[0] != dim:
            raise ConfigMismatch(
                f"{self.name}: infogain matrix is {self.infogain.shape[0]}x{self.infogain.shape[1]} "
                f"but predictions have {dim} entries per sample"
            )
        labels = self.labels(bottom[1], dim)
        return self.infogain.index_select(0, labels)

    def _forward(self, bottom: BlobList, top: BlobList) -> torch.Tensor:
        probs = bottom[0].as_matrix()
        num, dim = probs.shape
        weights = self._weights(bottom, dim)
        return -(weights * torch.log(self.clamp_probs(probs))).sum() / num

    def _backward(self, top: BlobList, bottom: BlobList) -> None:
        probs = bottom[0].as_matrix()
        num, dim = probs.shape
        weights = self._weights(bottom, dim)

        diff = bottom[0].diff_matrix()
        torch.div(weights, self.clamp_probs(probs), out=diff)
        diff.div_(-num)


class EuclideanLossLayer(Layer):
    """
    Half sum of squared differences, averaged over the batch (not per element):
    L = 1/(2N) * ||prediction - target||^2

    Gradient: dL/dprediction = (prediction - target) / N

    The difference lives in a scratch blob owned by the layer. Backward
    recomputes it from the bottoms, so it does not rely on a preceding
    forward over the same batch.
    """

    kind = LayerKind.Euclidean

    def __init__(self, config: Optional[LayerConfig] = None):
        super().__init__(config)
        self.difference = Blob()

    def _check_shapes(self, bottom: BlobList, top: BlobList) -> Optional[LayerSetupError]:
        if bottom[0].shape[1:] != bottom[1].shape[1:]:
            return ShapeMismatch(
                f"{self.name}: prediction {bottom[0].shape} and target {bottom[1].shape} "
                "must have the same channels, height and width"
            )
        return None

    def _setup(self, bottom: BlobList, top: BlobList) -> None:
        self.difference = Blob(*bottom[0].shape, dtype=bottom[0].dtype, device=bottom[0].device)

    def _compute_difference(self, bottom: BlobList) -> torch.Tensor:
        # Follow the batch if the engine reshaped the bottoms since setup
        self.difference.reshape_like(bottom[0])
        torch.sub(bottom[0].data, bottom[1].data, out=self.difference.data)
        return self.difference.data

    def _forward(self, bottom: BlobList, top: BlobList) -> torch.Tensor:
        num = bottom[0].num
        d = self._compute_difference(bottom).view(-1)
        return torch.dot(d, d) / num / 2

    def _backward(self, top: BlobList, bottom: BlobList) -> None:
        num = bottom[0].num
        d = self._compute_difference(bottom)
        torch.mul(d, 1.0 / num, out=bottom[0].diff)


class HingeLossLayer(Layer):
    """
    Multi-class L1 hinge loss with margin 1:
    L = 1/N * sum_i sum_j max(0, 1 + s_ij * x_ij)
    where s_ij = -1 for the true class j = label_i and +1 otherwise.

    Subgradient: sign(max(0, 1 + s_ij * x_ij)) * s_ij / N, which is 0 for
    inactive margins and 0 exactly at the margin boundary.

    Margins are computed into a scratch blob owned by the layer. Backward
    recomputes them from the bottoms, so forward never touches the caller's
    gradient buffer and backward does not rely on a preceding forward.
    """

    kind = LayerKind.Hinge

    def __init__(self, config: Optional[LayerConfig] = None):
        super().__init__(config)
        self.margins = Blob()

    def _setup(self, bottom: BlobList, top: BlobList) -> None:
        self.margins = Blob(*bottom[0].shape, dtype=bottom[0].dtype, device=bottom[0].device)

    def _compute_margins(self, bottom: BlobList):
        """
        Fill the scratch blob with max(0, margin + s * x) and return it as (N, dim).

        Returns:
            (margins, labels) tuple
        """
        self.margins.reshape_like(bottom[0])
        margins = self.margins.as_matrix()
        # 1. Copy scores
        margins.copy_(bottom[0].as_matrix())
        num, dim = margins.shape
        labels = self.labels(bottom[1], dim)
        rows = torch.arange(num, device=margins.device)

        # 2. Flip the true-class score so a large true score means a small loss
        margins[rows, labels] *= -1

        # 3. max(0, margin + value)
        margins.add_(HINGE_MARGIN).clamp_(min=0)
        return margins, labels

    def _forward(self, bottom: BlobList, top: BlobList) -> torch.Tensor:
        num = bottom[0].num
        margins, _ = self._compute_margins(bottom)
        # Every entry is non-negative, so the sum equals the L1 norm
        return margins.sum() / num

    def _backward(self, top: BlobList, bottom: BlobList) -> None:
        num = bottom[0].num
        margins, labels = self._compute_margins(bottom)
        rows = torch.arange(num, device=margins.device)

        diff = bottom[0].diff_matrix()
        torch.sign(margins, out=diff)
        diff[rows, labels] *= -1
        diff.mul_(1.0 / num)
