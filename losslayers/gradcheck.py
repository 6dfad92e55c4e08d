"""
Finite-difference gradient checking for differentiable layers.

For every element x_k of the prediction blob the checker estimates
    dL/dx_k ≈ (L(x_k + h) - L(x_k - h)) / 2h
and compares it with the analytic value written by backward(). The error of
one element is the scaled difference
    |analytic - estimated| / max(|analytic|, |estimated|, 1)
which is an absolute error for small gradients and a relative one for large
gradients.

Non-smooth losses (hinge) have kinks where the derivative jumps; elements
whose value lies within `kink_range` of a kink are skipped.
"""

from dataclasses import dataclass
from typing import Optional, Sequence
import torch

from .constants import GRADCHECK_STEPSIZE, GRADCHECK_THRESHOLD
from .layer import Layer, BlobList


@dataclass
class GradientCheckResult:
    layer: str
    max_abs_error: float
    max_scaled_error: float
    worst_index: int
    checked: int
    skipped: int
    threshold: float

    @property
    def passed(self) -> bool:
        return self.max_scaled_error <= self.threshold

    def __str__(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return (
            f"{self.layer}: {status} (max scaled error {self.max_scaled_error:.3e} "
            f"at element {self.worst_index}, threshold {self.threshold:.1e}, "
            f"{self.checked} checked, {self.skipped} skipped)"
        )


def check_gradient(
    layer: Layer,
    bottom: BlobList,
    top: Optional[BlobList] = None,
    stepsize: float = GRADCHECK_STEPSIZE,
    threshold: float = GRADCHECK_THRESHOLD,
    kinks: Sequence[float] = (),
    kink_range: float = 0.0,
) -> GradientCheckResult:
    """
    Compare backward() against central differences of forward().

    Sets the layer up on the given blobs if that has not happened yet.
    bottom[0].data is restored afterwards; bottom[0].diff holds the analytic
    gradient.

    Args:
        layer: A differentiable layer
        bottom: [prediction, label/target]
        top: Top blobs, if the layer takes any
        stepsize: Finite-difference step h
        threshold: Largest accepted scaled error
        kinks: Input values where the loss is not differentiable
        kink_range: Skip elements closer than this to any kink

    Returns:
        GradientCheckResult
    """
    if not layer.differentiable:
        raise ValueError(f"{layer.name}: cannot gradient-check a non-differentiable layer")
    top = list(top) if top is not None else []
    if not layer.is_setup:
        layer.setup(bottom, top)

    # 1. Analytic gradient
    layer.forward(bottom, top)
    layer.backward(top, bottom)
    analytic = bottom[0].diff.detach().clone().view(-1)

    # 2. Numerical gradient, one element at a time
    values = bottom[0].data.view(-1)
    max_abs = 0.0
    max_scaled = 0.0
    worst = -1
    checked = 0
    skipped = 0

    with torch.no_grad():
        for k in range(values.numel()):
            original = float(values[k])
            if any(abs(original - kink) < kink_range for kink in kinks):
                skipped += 1
                continue

            values[k] = original + stepsize
            positive = float(layer.forward(bottom, top))
            values[k] = original - stepsize
            negative = float(layer.forward(bottom, top))
            values[k] = original

            estimated = (positive - negative) / (2 * stepsize)
            computed = float(analytic[k])
            abs_error = abs(computed - estimated)
            scaled_error = abs_error / max(abs(computed), abs(estimated), 1.0)

            checked += 1
            max_abs = max(max_abs, abs_error)
            if scaled_error > max_scaled or worst < 0:
                max_scaled = max(max_scaled, scaled_error)
                worst = k

    return GradientCheckResult(
        layer=layer.name,
        max_abs_error=max_abs,
        max_scaled_error=max_scaled,
        worst_index=worst,
        checked=checked,
        skipped=skipped,
        threshold=threshold,
    )
