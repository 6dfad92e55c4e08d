import logging
from typing import List, Optional, Sequence
import torch

from .constants import LOG_THRESHOLD
from .errors import LayerSetupError, ShapeMismatch
from .layer import Layer, BlobList, zeros_like_loss
from .types import AccuracyRecord, LayerConfig, LayerKind

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Batch Metrics (scores vs labels)
# -----------------------------------------------------------------------------


def get_argmax(scores: torch.Tensor) -> torch.Tensor:
    """
    Row-wise arg-max that resolves exact ties to the lowest index.

    NaN entries never win, as in a strict greater-than scan. A row whose
    entries are all NaN or -inf reports class 0.

    Args:
        scores: Class scores (N, dim)

    Returns:
        Index tensor (N,), int64
    """
    num, dim = scores.shape
    if dim == 0:
        return torch.zeros(num, dtype=torch.int64, device=scores.device)
    clean = torch.where(torch.isnan(scores), torch.full_like(scores, float("-inf")), scores)
    max_vals = clean.max(dim=1, keepdim=True).values
    candidates = torch.arange(dim, device=scores.device).expand(num, dim)
    # Non-max entries get the out-of-range index `dim`, then the smallest survivor wins
    winners = (clean == max_vals) & (clean > float("-inf"))
    masked = torch.where(winners, candidates, torch.full_like(candidates, dim))
    argmax = masked.min(dim=1).values
    return torch.where(argmax == dim, torch.zeros_like(argmax), argmax)


def get_accuracy(scores: torch.Tensor, labels: torch.Tensor) -> torch.Tensor:
    """
    Fraction of samples whose arg-max equals the label.

    Args:
        scores: Class scores (N, dim)
        labels: Class indices (N,)

    Returns:
        0-d tensor in [0, 1]
    """
    correct = (get_argmax(scores) == labels).to(scores.dtype)
    return correct.mean()


def get_mean_nll(
    scores: torch.Tensor, labels: torch.Tensor, log_threshold: float = LOG_THRESHOLD
) -> torch.Tensor:
    """
    Mean negative log-probability of the true class, clamped at log_threshold.

    Args:
        scores: Class probabilities (N, dim)
        labels: Class indices (N,)
        log_threshold: Floor applied before the logarithm

    Returns:
        0-d tensor
    """
    prob = scores.gather(1, labels.view(-1, 1)).view(-1).clamp_min(log_threshold)
    return -torch.log(prob).mean()


# -----------------------------------------------------------------------------
# Accuracy Layer
# -----------------------------------------------------------------------------


class AccuracyLayer(Layer):
    """
    Forward-only classification accuracy.

    Writes [accuracy, mean negative log-probability of the true class] into
    top[0], reshaped to (1, 2, 1, 1). The returned loss is always 0: this layer
    must never be wired into the gradient path, and backward raises
    MisuseAsObjective.

    After each forward, `last_record` holds the per-sample scores, arg-max and
    labels; every registered sink receives the same record. A failing sink is
    logged and does not affect the metric.
    """

    kind = LayerKind.Accuracy

    def __init__(self, config: Optional[LayerConfig] = None, sinks: Sequence = ()):
        """
        Args:
            config: Layer parameters
            sinks: PredictionSink instances notified after every forward
        """
        super().__init__(config)
        self.sinks: List = list(sinks)
        self.last_record: Optional[AccuracyRecord] = None

    def add_sink(self, sink) -> None:
        self.sinks.append(sink)

    def _check_shapes(self, bottom: BlobList, top: BlobList) -> Optional[LayerSetupError]:
        if top[0] is bottom[0] or top[0] is bottom[1]:
            return ShapeMismatch(f"{self.name}: top blob must not alias a bottom blob")
        return None

    def _setup(self, bottom: BlobList, top: BlobList) -> None:
        top[0].reshape(1, 2, 1, 1)

    def _forward(self, bottom: BlobList, top: BlobList) -> torch.Tensor:
        scores = bottom[0].as_matrix()
        labels = self.labels(bottom[1], scores.shape[1])

        # 1. Arg-max, first index wins ties
        predicted = get_argmax(scores)

        # 2. Fraction correct and mean clamped negative log-probability
        accuracy = get_accuracy(scores, labels)
        logprob = get_mean_nll(scores, labels, self.log_threshold)

        out = top[0].data.view(-1)
        out[0] = accuracy
        out[1] = logprob

        self.last_record = AccuracyRecord(
            scores=scores.detach().clone(), predicted=predicted, labels=labels
        )
        self._notify_sinks(self.last_record)

        return zeros_like_loss(bottom[0])

    def _notify_sinks(self, record: AccuracyRecord) -> None:
        for sink in self.sinks:
            try:
                sink.write(record)
            except Exception:
                logger.warning(
                    "%s: prediction sink %r failed; metric unaffected",
                    self.name,
                    sink,
                    exc_info=True,
                )
