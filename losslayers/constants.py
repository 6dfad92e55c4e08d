"""
Central location for numerical stability constants.

These constants are used consistently across losses, metrics, and the
gradient checker.
"""

import torch

# Floor applied to probabilities before taking a logarithm.
# log(1e-20) ≈ -46.05, so a fully wrong prediction costs a large but finite loss
# and the matching gradient -1/(p*N) stays finite for any batch size.
LOG_THRESHOLD = 1e-20

# Hinge margin (one-vs-all): the true score must reach +1 and every other score
# stay at or below -1 for a sample to cost nothing
HINGE_MARGIN = 1.0

# Default storage for blobs (double precision, like the rest of the engine)
DEFAULT_DTYPE = torch.float64
DEFAULT_DEVICE = "cpu"

# Finite-difference defaults for the gradient checker.
# Central differences on -log(p) have relative truncation error ~h^2 / (3 p^2),
# so h = 1e-5 keeps it below 1e-6 for p >= 0.01 while float64 round-off stays
# around 1e-10.
GRADCHECK_STEPSIZE = 1e-5
GRADCHECK_THRESHOLD = 1e-4
