"""
Typed errors raised by loss and metric layers.

Every validation failure is fatal for the layer that raised it: these signal a
wrongly constructed network, not a transient condition, so nothing retries.
"""


class LayerError(Exception):
    """Base class for all layer errors."""


class LayerSetupError(LayerError, ValueError):
    """Blob lists or layer parameters are inconsistent with the layer."""


class ShapeMismatch(LayerSetupError):
    """Blob shapes disagree (batch size, label shape, per-sample shape)."""


class ArityMismatch(ShapeMismatch):
    """Wrong number of bottom or top blobs."""


class ConfigMismatch(LayerSetupError):
    """Weighting matrix is malformed or sized for a different class count."""


class LabelOutOfRange(LayerError, IndexError):
    """A label does not index a class of the prediction blob."""


class MisuseAsObjective(LayerError, RuntimeError):
    """Backward was requested from a layer that has no gradient."""
