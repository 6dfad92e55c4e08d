"""
YAML layer configuration.

A config file lists the layers to build:

    layers:
      - kind: multinomial_logistic
      - kind: infogain
        name: weighted
        infogain_source: infogain.npy   # relative to this file
      - kind: accuracy
        log_threshold: 1.0e-20
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Union
import yaml

from .types import LayerConfig

logger = logging.getLogger(__name__)

_FIELDS = ("kind", "name", "infogain_source", "log_threshold")


def _parse_entry(entry: Any, index: int, base_dir: Path) -> LayerConfig:
    if not isinstance(entry, dict):
        raise ValueError(f"layers[{index}] must be a mapping, got {type(entry).__name__}")
    unknown = set(entry) - set(_FIELDS)
    if unknown:
        raise ValueError(f"layers[{index}] has unknown fields: {sorted(unknown)}")
    if "kind" not in entry:
        raise ValueError(f"layers[{index}] is missing 'kind'")

    params: Dict[str, Any] = {k: v for k, v in entry.items() if k != "kind"}
    source = params.get("infogain_source")
    if source is not None:
        source_path = Path(source)
        if not source_path.is_absolute():
            source_path = base_dir / source_path
        params["infogain_source"] = str(source_path)
    if "log_threshold" in params:
        params["log_threshold"] = float(params["log_threshold"])

    return LayerConfig.with_params(entry["kind"], **params)


def parse_layer_configs(document: Any, base_dir: Union[str, Path] = ".") -> List[LayerConfig]:
    """
    Turn a parsed YAML document into layer configs.

    Raises:
        ValueError: the document is not a mapping with a non-empty 'layers' list
    """
    if not isinstance(document, dict) or "layers" not in document:
        raise ValueError("Layer config must be a mapping with a 'layers' list")
    entries = document["layers"]
    if not isinstance(entries, list) or not entries:
        raise ValueError("'layers' must be a non-empty list")
    return [_parse_entry(entry, i, Path(base_dir)) for i, entry in enumerate(entries)]


def load_layer_configs(path: Union[str, Path]) -> List[LayerConfig]:
    """Load layer configs from a YAML file."""
    path = Path(path)
    with open(path) as f:
        document = yaml.safe_load(f)
    configs = parse_layer_configs(document, base_dir=path.parent)
    logger.info("Loaded %d layer configs from %s", len(configs), path)
    return configs
