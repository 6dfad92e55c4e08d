"""Loss and metric layers for a layer-based training engine"""

# Core types
from .types import (
    LayerKind,
    LayerConfig,
    AccuracyRecord,
)

# Errors
from .errors import (
    LayerError,
    LayerSetupError,
    ArityMismatch,
    ShapeMismatch,
    ConfigMismatch,
    LabelOutOfRange,
    MisuseAsObjective,
)

# Tensor buffer
from .blob import Blob

# Layers
from .layer import Layer
from .losses import (
    MultinomialLogisticLossLayer,
    InfogainLossLayer,
    EuclideanLossLayer,
    HingeLossLayer,
)
from .metrics import (
    AccuracyLayer,
    get_argmax,
    get_accuracy,
    get_mean_nll,
)
from .factory import make_layer, make_layers

# Weighting matrices
from .io import load_weight_matrix, save_weight_matrix

# Diagnostics
from .diagnostics import PredictionSink, PredictionLogWriter

# Configuration
from .config import load_layer_configs, parse_layer_configs

# Data management
from .data import (
    make_probability_batch,
    make_regression_batch,
    make_infogain_matrix,
    split_batches,
)

# Gradient checking
from .gradcheck import check_gradient, GradientCheckResult

# Batch driver
from .history import LayerHistory
from .runner import run_layers

__all__ = [
    # Types
    "LayerKind",
    "LayerConfig",
    "AccuracyRecord",
    # Errors
    "LayerError",
    "LayerSetupError",
    "ArityMismatch",
    "ShapeMismatch",
    "ConfigMismatch",
    "LabelOutOfRange",
    "MisuseAsObjective",
    # Tensor buffer
    "Blob",
    # Layers
    "Layer",
    "MultinomialLogisticLossLayer",
    "InfogainLossLayer",
    "EuclideanLossLayer",
    "HingeLossLayer",
    "AccuracyLayer",
    "get_argmax",
    "get_accuracy",
    "get_mean_nll",
    "make_layer",
    "make_layers",
    # Weighting matrices
    "load_weight_matrix",
    "save_weight_matrix",
    # Diagnostics
    "PredictionSink",
    "PredictionLogWriter",
    # Configuration
    "load_layer_configs",
    "parse_layer_configs",
    # Data
    "make_probability_batch",
    "make_regression_batch",
    "make_infogain_matrix",
    "split_batches",
    # Gradient checking
    "check_gradient",
    "GradientCheckResult",
    # Batch driver
    "LayerHistory",
    "run_layers",
]
