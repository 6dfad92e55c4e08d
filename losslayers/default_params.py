"""Default configuration parameters for running layer evaluations.

This module centralizes the presets shared by run.py and the utils/ scripts.
"""

from typing import Any, Dict, List, Optional

from .types import LayerConfig, LayerKind


# ============================================================================
# Data
# ============================================================================


def default_classification_data(
    num: int = 256,
    classes: int = 10,
    concentration: float = 2.0,
    **kwargs,
) -> Dict[str, Any]:
    """Returns default synthetic classification batch parameters.

    Args:
        num: Number of samples
        classes: Number of classes
        concentration: Score boost for the true class
        **kwargs: Additional parameters

    Returns:
        Dictionary with batch parameters
    """
    params = {"num": num, "classes": classes, "concentration": concentration}
    params.update(kwargs)
    return params


def default_regression_data(
    num: int = 256, channels: int = 3, noise: float = 0.1, **kwargs
) -> Dict[str, Any]:
    """Returns default synthetic regression batch parameters."""
    params = {"num": num, "channels": channels, "noise": noise}
    params.update(kwargs)
    return params


# ============================================================================
# Layers
# ============================================================================


def default_classification_layers(**kwargs) -> List[LayerConfig]:
    """Multinomial logistic and hinge losses, plus accuracy."""
    return [
        LayerConfig(kind=LayerKind.MultinomialLogistic, **kwargs),
        LayerConfig(kind=LayerKind.Hinge, **kwargs),
        LayerConfig(kind=LayerKind.Accuracy, **kwargs),
    ]


def default_regression_layers(**kwargs) -> List[LayerConfig]:
    return [LayerConfig(kind=LayerKind.Euclidean, **kwargs)]


def default_infogain_layers(infogain_source: Optional[str] = None, **kwargs) -> List[LayerConfig]:
    """Infogain loss (matrix from infogain_source) plus accuracy.

    Args:
        infogain_source: Weighting matrix file. When None the caller must
            supply the matrix as a tensor when building the layer.
        **kwargs: Additional LayerConfig fields
    """
    return [
        LayerConfig(kind=LayerKind.Infogain, infogain_source=infogain_source, **kwargs),
        LayerConfig(kind=LayerKind.Accuracy, **kwargs),
    ]


# Preset name -> (task, layer factory)
PRESETS = {
    "classification": ("classification", default_classification_layers),
    "regression": ("regression", default_regression_layers),
    "infogain": ("classification", default_infogain_layers),
}
