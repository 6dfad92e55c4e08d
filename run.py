"""Configurable runner script that evaluates loss and metric layers on a batch.

Usage:
    # Using presets on synthetic data:
    python run.py --preset classification
    python run.py --preset regression --num 512 --batch-size 64
    python run.py --preset infogain --classes 5 --seed 7

    # Layers from a YAML file, data from a saved batch:
    python run.py --config layers.yaml --data experiments/generate_data/seed_42/batch.npz
    python run.py --preset classification --data batch.npz --prediction-log predictions.txt
"""

import argparse
import dataclasses
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import torch

from losslayers import (
    Blob,
    InfogainLossLayer,
    Layer,
    LayerConfig,
    LayerKind,
    PredictionLogWriter,
    load_layer_configs,
    make_layer,
    make_infogain_matrix,
    make_probability_batch,
    make_regression_batch,
    run_layers,
    split_batches,
)
from losslayers.default_params import (
    PRESETS,
    default_classification_data,
    default_regression_data,
)


def parse_args():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Evaluate loss/metric layers on a saved or synthetic batch"
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--preset",
        type=str,
        choices=list(PRESETS.keys()),
        help="Preset layer set: 'classification', 'regression', or 'infogain'",
    )
    source.add_argument(
        "--config",
        type=str,
        help="YAML file with a 'layers:' list",
    )

    parser.add_argument(
        "--data",
        type=str,
        help="npz file with 'predictions' and 'labels' (or 'targets' for regression). "
        "Synthetic data is generated when omitted.",
    )
    parser.add_argument("--num", type=int, help="Synthetic batch size (default: 256)")
    parser.add_argument("--classes", type=int, help="Synthetic class count (default: 10)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument(
        "--batch-size",
        type=int,
        help="Split the data into batches of this size (default: one batch)",
    )
    parser.add_argument(
        "--infogain",
        type=str,
        help="Weighting matrix file for infogain layers that do not name one",
    )
    parser.add_argument(
        "--prediction-log",
        type=str,
        help="Write per-sample predictions of accuracy layers to this file",
    )
    parser.add_argument(
        "--no-backward",
        action="store_true",
        help="Only run forward passes",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Disable progress output",
    )

    return parser.parse_args()


def fill_infogain_source(configs: List[LayerConfig], source: Optional[str]) -> List[LayerConfig]:
    """Give every infogain config without a matrix file the given one."""
    if source is None:
        return configs
    return [
        dataclasses.replace(config, infogain_source=source)
        if config.kind is LayerKind.Infogain and config.infogain_source is None
        else config
        for config in configs
    ]


def resolve_configs(args) -> Tuple[str, List[LayerConfig]]:
    """Return (task, layer configs) for a preset or a YAML file."""
    if args.preset:
        task, factory = PRESETS[args.preset]
        return task, fill_infogain_source(factory(), args.infogain)

    configs = fill_infogain_source(load_layer_configs(args.config), args.infogain)
    kinds = {config.kind for config in configs}
    if LayerKind.Euclidean in kinds:
        if len(kinds) > 1:
            raise ValueError(
                "Euclidean layers take dense targets and cannot share a batch with label-based layers"
            )
        return "regression", configs
    return "classification", configs


def load_batch(path: str, task: str) -> Tuple[Blob, Blob]:
    """Read (prediction, label/target) blobs from an npz file."""
    second = "targets" if task == "regression" else "labels"
    with np.load(path, allow_pickle=False) as data:
        missing = [k for k in ("predictions", second) if k not in data.files]
        if missing:
            raise KeyError(f"{path} is missing arrays {missing} (has {data.files})")
        return Blob.from_tensor(data["predictions"]), Blob.from_tensor(data[second])


def synthetic_batch(args, task: str, rng: np.random.Generator) -> Tuple[Blob, Blob]:
    overrides = {k: v for k, v in (("num", args.num),) if v is not None}
    if task == "regression":
        return make_regression_batch(**default_regression_data(**overrides), rng=rng)
    if args.classes is not None:
        overrides["classes"] = args.classes
    return make_probability_batch(**default_classification_data(**overrides), rng=rng)


def build_layers(
    configs: List[LayerConfig],
    classes: int,
    rng: np.random.Generator,
    prediction_log: Optional[PredictionLogWriter],
) -> Dict[str, Layer]:
    """Instantiate layers; infogain layers without a source get a random matrix."""
    layers: Dict[str, Layer] = {}
    for config in configs:
        if config.display_name in layers:
            raise ValueError(f"Duplicate layer name '{config.display_name}'")
        if config.kind is LayerKind.Infogain and config.infogain_source is None:
            matrix = make_infogain_matrix(classes, off_diagonal=0.5, rng=rng)
            print(f"{config.display_name}: no infogain matrix given, using a random {classes}x{classes} one")
            layers[config.display_name] = InfogainLossLayer(config, infogain=matrix)
        elif config.kind is LayerKind.Accuracy and prediction_log is not None:
            layers[config.display_name] = make_layer(config, sinks=[prediction_log])
        else:
            layers[config.display_name] = make_layer(config)
    return layers


def print_summary(results) -> None:
    print("\n" + "=" * 70)
    print("SUMMARY")
    print("=" * 70)
    for name, history in results.items():
        parts = [f"{key}={value:.6g}" for key, value in history.summary().items()]
        print(f"  {name:<24} {', '.join(parts)}")
    print("=" * 70)


def main():
    args = parse_args()
    logging.basicConfig(level=logging.WARNING if args.quiet else logging.INFO)

    torch.manual_seed(args.seed)
    rng = np.random.default_rng(args.seed)

    task, configs = resolve_configs(args)

    if args.data:
        prediction, label = load_batch(args.data, task)
    else:
        prediction, label = synthetic_batch(args, task, rng)

    batches = (
        split_batches(prediction, label, args.batch_size)
        if args.batch_size
        else [(prediction, label)]
    )

    prediction_log = PredictionLogWriter(args.prediction_log) if args.prediction_log else None
    try:
        layers = build_layers(configs, prediction.dim, rng, prediction_log)
        results = run_layers(
            layers,
            batches,
            backward=not args.no_backward,
            debug=not args.quiet,
        )
    finally:
        if prediction_log is not None:
            prediction_log.close()

    print_summary(results)
    if prediction_log is not None:
        print(f"Predictions written to: {Path(args.prediction_log).absolute()}")


if __name__ == "__main__":
    main()
