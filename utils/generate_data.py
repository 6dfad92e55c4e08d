#!/usr/bin/env python3
"""
Generate reproducible loss-layer batches from a seed and save them in structured directories.

Usage:
    python utils/generate_data.py --seed 42
    python utils/generate_data.py --seed 42 --num 512 --classes 5
    python utils/generate_data.py --load experiments/generate_data/seed_42
"""

import sys
from pathlib import Path

# Add project root to Python path so imports work from anywhere
script_dir = Path(__file__).resolve().parent  # utils/
project_root = script_dir.parent              # project root
sys.path.insert(0, str(project_root))

import argparse
import numpy as np
import torch

from losslayers import (
    make_probability_batch,
    make_regression_batch,
    make_infogain_matrix,
    save_weight_matrix,
)


def generate_data(
    seed: int,
    num: int = 256,
    classes: int = 10,
    concentration: float = 2.0,
    channels: int = 3,
    noise: float = 0.1,
    off_diagonal: float = 0.5,
    base_dir: str = None,
    verbose: bool = True
):
    """
    Generate a classification batch, a regression batch and an infogain matrix from one seed.

    Args:
        seed: Random seed for reproducibility
        num: Number of samples per batch
        classes: Number of classes of the classification batch
        concentration: Score boost for the true class
        channels: Channels of the regression batch
        noise: Prediction noise of the regression batch
        off_diagonal: Upper bound of the random off-diagonal infogain weights
        base_dir: Base directory for saving data (default: project_root/experiments/generate_data)
        verbose: Print information about generated data
    """
    # Set default base_dir relative to project root
    if base_dir is None:
        base_dir = str(project_root / "experiments" / "generate_data")

    if verbose:
        print(f"Generating data with seed: {seed}")
        print(f"Parameters: num={num}, classes={classes}, concentration={concentration}")
        print(f"Regression: channels={channels}, noise={noise}")

    # Seed PyTorch
    torch.manual_seed(seed)

    # Create NumPy RNG from seed; draw order is fixed: classification, regression, infogain
    rng = np.random.default_rng(seed)

    prediction, label = make_probability_batch(
        num=num, classes=classes, concentration=concentration, rng=rng
    )
    reg_prediction, reg_target = make_regression_batch(
        num=num, channels=channels, noise=noise, rng=rng
    )
    infogain = make_infogain_matrix(classes, off_diagonal=off_diagonal, rng=rng)

    # Create output directory
    output_dir = Path(base_dir) / f"seed_{seed}"
    output_dir.mkdir(parents=True, exist_ok=True)

    # Save classification batch (2-d predictions, 1-d labels)
    batch_path = output_dir / "batch.npz"
    np.savez(
        batch_path,
        predictions=prediction.as_matrix().cpu().numpy(),
        labels=label.data.view(-1).cpu().numpy(),
    )

    # Save regression batch (4-d predictions and targets)
    regression_path = output_dir / "regression.npz"
    np.savez(
        regression_path,
        predictions=reg_prediction.data.cpu().numpy(),
        targets=reg_target.data.cpu().numpy(),
    )

    # Save infogain matrix
    infogain_path = save_weight_matrix(output_dir / "infogain.npy", infogain)

    # Save metadata (all generation parameters)
    metadata_path = output_dir / "metadata.npz"
    np.savez(
        metadata_path,
        seed=seed,
        num=num,
        classes=classes,
        concentration=concentration,
        channels=channels,
        noise=noise,
        off_diagonal=off_diagonal,
    )

    if verbose:
        print(f"\nData saved to: {output_dir.absolute()}")
        for path in (batch_path, regression_path, infogain_path, metadata_path):
            print(f"  - {path.name:<16} {path.stat().st_size / 1024:.2f} KB")
        print(f"\nShapes:")
        print(f"  Classification: predictions {prediction.shape}, labels {label.shape}")
        print(f"  Regression:     predictions {reg_prediction.shape}, targets {reg_target.shape}")
        print(f"  Infogain:       {infogain.shape}")

    return output_dir


def load_data(directory: str, verbose: bool = True):
    """
    Load previously generated data from directory.

    Args:
        directory: Path to data directory (e.g., experiments/generate_data/seed_42)
        verbose: Print information about loaded data

    Returns:
        Dictionary containing batch, regression, infogain and metadata
    """
    data_dir = Path(directory)

    if not data_dir.exists():
        raise ValueError(f"Directory does not exist: {data_dir}")

    # Load files
    batch = np.load(data_dir / "batch.npz")
    regression = np.load(data_dir / "regression.npz")
    infogain = np.load(data_dir / "infogain.npy")
    metadata = np.load(data_dir / "metadata.npz")

    if verbose:
        print(f"Loaded data from: {data_dir.absolute()}")
        print(f"Seed: {metadata['seed']}")
        print(f"Parameters: num={metadata['num']}, classes={metadata['classes']}, "
              f"concentration={metadata['concentration']}")
        print(f"\nShapes:")
        print(f"  Classification: predictions {batch['predictions'].shape}, labels {batch['labels'].shape}")
        print(f"  Regression:     predictions {regression['predictions'].shape}, "
              f"targets {regression['targets'].shape}")
        print(f"  Infogain:       {infogain.shape}")

    return {
        'batch': {key: batch[key] for key in batch.files},
        'regression': {key: regression[key] for key in regression.files},
        'infogain': infogain,
        'metadata': {key: metadata[key] for key in metadata.files}
    }


def main():
    parser = argparse.ArgumentParser(
        description="Generate reproducible loss-layer batches from seeds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate data with seed 42
  python generate_data.py --seed 42

  # Generate with custom parameters
  python generate_data.py --seed 123 --num 512 --classes 5

  # Load previously generated data
  python generate_data.py --load experiments/generate_data/seed_42

Output structure:
  experiments/generate_data/seed_{seed}/
    - batch.npz       (predictions, labels)
    - regression.npz  (predictions, targets)
    - infogain.npy    (classes x classes weighting matrix)
    - metadata.npz    (generation parameters)
        """
    )

    # Action group
    action_group = parser.add_mutually_exclusive_group(required=True)
    action_group.add_argument('--seed', type=int, help='Random seed for data generation')
    action_group.add_argument('--load', type=str, help='Load and display data from directory')

    # Generation parameters
    parser.add_argument('--num', type=int, default=256, help='Samples per batch (default: 256)')
    parser.add_argument('--classes', type=int, default=10, help='Number of classes (default: 10)')
    parser.add_argument('--concentration', type=float, default=2.0,
                        help='Score boost for the true class (default: 2.0)')
    parser.add_argument('--channels', type=int, default=3, help='Regression channels (default: 3)')
    parser.add_argument('--noise', type=float, default=0.1, help='Regression noise (default: 0.1)')
    parser.add_argument('--off-diagonal', type=float, default=0.5,
                        help='Upper bound of off-diagonal infogain weights (default: 0.5)')
    parser.add_argument('--base-dir', type=str, default='experiments/generate_data',
                        help='Base directory for saving data (default: experiments/generate_data)')
    parser.add_argument('--quiet', action='store_true', help='Suppress output messages')

    args = parser.parse_args()

    verbose = not args.quiet

    if args.load:
        # Load existing data
        load_data(args.load, verbose=verbose)
    else:
        # Generate new data
        generate_data(
            seed=args.seed,
            num=args.num,
            classes=args.classes,
            concentration=args.concentration,
            channels=args.channels,
            noise=args.noise,
            off_diagonal=args.off_diagonal,
            base_dir=args.base_dir,
            verbose=verbose
        )


if __name__ == "__main__":
    main()
