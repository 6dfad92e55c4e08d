"""Build layers from their configuration."""

from typing import Dict, Iterable, Optional, Sequence, Type

from .layer import Layer
from .losses import (
    MultinomialLogisticLossLayer,
    InfogainLossLayer,
    EuclideanLossLayer,
    HingeLossLayer,
)
from .metrics import AccuracyLayer
from .types import LayerConfig, LayerKind

LAYER_CLASSES: Dict[LayerKind, Type[Layer]] = {
    LayerKind.MultinomialLogistic: MultinomialLogisticLossLayer,
    LayerKind.Infogain: InfogainLossLayer,
    LayerKind.Euclidean: EuclideanLossLayer,
    LayerKind.Hinge: HingeLossLayer,
    LayerKind.Accuracy: AccuracyLayer,
}


def make_layer(config: LayerConfig, sinks: Optional[Sequence] = None) -> Layer:
    """
    Create a layer for the given configuration.

    Args:
        config: Layer configuration (kind selects the class)
        sinks: Prediction sinks, only accepted by accuracy layers

    Returns:
        A layer that still needs setup()
    """
    layer_cls = LAYER_CLASSES[config.kind]
    if sinks:
        if layer_cls is not AccuracyLayer:
            raise ValueError(
                f"Prediction sinks are only supported by '{LayerKind.Accuracy.value}' layers, "
                f"got '{config.kind.value}'"
            )
        return AccuracyLayer(config, sinks=sinks)
    return layer_cls(config)


def make_layers(configs: Iterable[LayerConfig]) -> Dict[str, Layer]:
    """
    Create one layer per config, keyed by display name.

    Raises:
        ValueError: two configs share a display name
    """
    layers: Dict[str, Layer] = {}
    for config in configs:
        if config.display_name in layers:
            raise ValueError(
                f"Duplicate layer name '{config.display_name}'; set a distinct `name`"
            )
        layers[config.display_name] = make_layer(config)
    return layers
