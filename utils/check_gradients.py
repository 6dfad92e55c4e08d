#!/usr/bin/env python
"""
Gradient check for every differentiable layer kind on a seeded batch.
Compares each backward pass with central differences of the forward pass.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import argparse
import numpy as np
import torch

from losslayers import (
    LayerConfig,
    LayerKind,
    InfogainLossLayer,
    make_layer,
    make_probability_batch,
    make_regression_batch,
    make_infogain_matrix,
    check_gradient,
)
from losslayers.constants import GRADCHECK_STEPSIZE, GRADCHECK_THRESHOLD, HINGE_MARGIN

NUM_SAMPLES = 8
NUM_CLASSES = 5
SEED = 1701


def make_test_rng(seed=SEED) -> np.random.Generator:
    # Fresh rng
    return np.random.default_rng(seed)


def check_kind(kind: LayerKind, seed: int, stepsize: float, threshold: float):
    rng = make_test_rng(seed)
    kinks = ()
    kink_range = 0.0

    if kind is LayerKind.Euclidean:
        bottom = list(make_regression_batch(num=NUM_SAMPLES, channels=3, height=2, width=2, rng=rng))
    else:
        bottom = list(make_probability_batch(num=NUM_SAMPLES, classes=NUM_CLASSES, rng=rng))

    if kind is LayerKind.Infogain:
        matrix = make_infogain_matrix(NUM_CLASSES, off_diagonal=0.5, rng=rng)
        layer = InfogainLossLayer(LayerConfig(kind=kind), infogain=matrix)
    else:
        layer = make_layer(LayerConfig(kind=kind))

    if kind is LayerKind.Hinge:
        # Scores in [-2, 2] so that both active and clamped margins are exercised
        bottom[0].data.copy_(torch.from_numpy(rng.uniform(-2.0, 2.0, size=bottom[0].shape)))
        kinks = (-HINGE_MARGIN, HINGE_MARGIN)
        kink_range = 10 * stepsize

    return check_gradient(
        layer,
        bottom,
        stepsize=stepsize,
        threshold=threshold,
        kinks=kinks,
        kink_range=kink_range,
    )


def main():
    parser = argparse.ArgumentParser(description="Gradient-check every differentiable layer")
    parser.add_argument("--seed", type=int, default=SEED, help=f"Random seed (default: {SEED})")
    parser.add_argument("--stepsize", type=float, default=GRADCHECK_STEPSIZE,
                        help=f"Finite-difference step (default: {GRADCHECK_STEPSIZE})")
    parser.add_argument("--threshold", type=float, default=GRADCHECK_THRESHOLD,
                        help=f"Largest accepted scaled error (default: {GRADCHECK_THRESHOLD})")
    args = parser.parse_args()

    print("🔍 GRADIENT CHECK")
    print("=" * 70)

    results = {}
    for kind in LayerKind:
        if not kind.differentiable:
            continue
        try:
            result = check_kind(kind, args.seed, args.stepsize, args.threshold)
            results[kind] = result
            mark = "✓" if result.passed else "✗"
            print(f"  {mark} {result}")
        except Exception as e:
            print(f"  ✗ {kind.value}: {e}")
            results[kind] = None

    failures = [kind for kind, result in results.items() if result is None or not result.passed]

    print("\n" + "=" * 70)
    print(f"Total: {len(results) - len(failures)}/{len(results)} passed")
    if failures:
        print("\n❌ FAILURES:")
        for kind in failures:
            print(f"   {kind.value}")
    else:
        print("\n✅ ALL GRADIENT CHECKS PASSED!")
    print("=" * 70)

    return not failures


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
