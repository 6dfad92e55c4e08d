from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import numpy as np
import torch


@dataclass
class LayerHistory:
    """
    Per-batch record of one layer's results.

    Values stay as tensors while batches run; `as_arrays()` and `summary()`
    move them to the CPU once at the end.
    """

    layer: str
    losses: List[torch.Tensor] = field(default_factory=list)
    outputs: List[torch.Tensor] = field(default_factory=list)  # top blob data (accuracy)
    grad_norms: List[torch.Tensor] = field(default_factory=list)
    batch_sizes: List[int] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def record(
        self,
        loss: torch.Tensor,
        batch_size: int,
        output: Optional[torch.Tensor] = None,
        grad_norm: Optional[torch.Tensor] = None,
    ) -> None:
        self.losses.append(loss.detach())
        self.batch_sizes.append(batch_size)
        if output is not None:
            self.outputs.append(output.detach().clone())
        if grad_norm is not None:
            self.grad_norms.append(grad_norm.detach())

    def __len__(self) -> int:
        return len(self.losses)

    def as_arrays(self) -> Dict[str, np.ndarray]:
        """Stack recorded values into numpy arrays (one row per batch)."""

        def stack(values: List[torch.Tensor]) -> np.ndarray:
            if not values:
                return np.empty((0,))
            return torch.stack(values).cpu().numpy()

        return {
            "loss": stack(self.losses),
            "output": stack([o.view(-1) for o in self.outputs]),
            "grad_norm": stack(self.grad_norms),
            "batch_size": np.asarray(self.batch_sizes, dtype=np.int64),
        }

    def summary(self) -> Dict[str, float]:
        """
        Sample-weighted means over all batches.

        Per-batch values are batch means, so weighting by batch size gives the
        value the layer would report for the whole dataset in one batch.
        For accuracy layers the keys 'accuracy' and 'nll' hold the two outputs.
        """
        arrays = self.as_arrays()
        weights = arrays["batch_size"].astype(np.float64)
        if weights.sum() == 0:
            return {}

        summary = {"loss": float(np.average(arrays["loss"], weights=weights))}
        if len(self.outputs) == len(self):
            outputs = arrays["output"]
            summary["accuracy"] = float(np.average(outputs[:, 0], weights=weights))
            summary["nll"] = float(np.average(outputs[:, 1], weights=weights))
        if self.grad_norms:
            summary["grad_norm"] = float(np.mean(arrays["grad_norm"]))
        return summary
