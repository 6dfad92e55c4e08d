import numpy as np
import torch
from typing import List, Optional, Tuple

from .blob import Blob
from .constants import DEFAULT_DTYPE, DEFAULT_DEVICE


def _softmax(scores: np.ndarray) -> np.ndarray:
    shifted = scores - scores.max(axis=1, keepdims=True)
    e = np.exp(shifted)
    return e / e.sum(axis=1, keepdims=True)


def make_probability_batch(
    num: int = 64,
    classes: int = 10,
    concentration: float = 2.0,
    dtype: torch.dtype = DEFAULT_DTYPE,
    device: str = DEFAULT_DEVICE,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[Blob, Blob]:
    """Generate a batch of class probabilities and labels using a specific RNG.

    The true class receives a `concentration` boost in score space, so most
    (but not all) samples are classified correctly.

    Args:
        num: Batch size N
        classes: Number of classes C
        concentration: Score boost for the true class (0 = uninformative)
        dtype: Blob storage dtype
        device: PyTorch device
        rng: numpy.random.Generator instance (optional). If None, creates a new default_rng.

    Returns:
        (prediction, label) blobs of shape (N, C, 1, 1) and (N, 1, 1, 1)
    """
    if rng is None:
        rng = np.random.default_rng()
    if classes < 1:
        raise ValueError(f"classes must be >= 1, got {classes}")

    labels = rng.integers(0, classes, size=num)
    scores = rng.standard_normal((num, classes))
    scores[np.arange(num), labels] += concentration
    probs = _softmax(scores)

    prediction = Blob.from_tensor(probs, dtype=dtype, device=device)
    label = Blob.from_tensor(labels.astype(np.float64), dtype=dtype, device=device)
    return prediction, label


def make_regression_batch(
    num: int = 64,
    channels: int = 3,
    height: int = 1,
    width: int = 1,
    noise: float = 0.1,
    dtype: torch.dtype = DEFAULT_DTYPE,
    device: str = DEFAULT_DEVICE,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[Blob, Blob]:
    """Generate (prediction, target) blobs that differ by Gaussian noise.

    Args:
        num, channels, height, width: Blob shape
        noise: Standard deviation of prediction - target
        dtype: Blob storage dtype
        device: PyTorch device
        rng: numpy.random.Generator instance (optional)
    """
    if rng is None:
        rng = np.random.default_rng()

    shape = (num, channels, height, width)
    target = rng.standard_normal(shape)
    prediction = target + noise * rng.standard_normal(shape)
    return (
        Blob.from_tensor(prediction, dtype=dtype, device=device),
        Blob.from_tensor(target, dtype=dtype, device=device),
    )


def make_infogain_matrix(
    classes: int,
    off_diagonal: float = 0.0,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Build a (C, C) weighting matrix with a unit diagonal.

    Args:
        classes: Number of classes C
        off_diagonal: Upper bound of the off-diagonal weights. 0 gives the
            identity, which reduces infogain loss to multinomial logistic loss.
        rng: Draws off-diagonal weights uniformly in [0, off_diagonal) when given;
            otherwise every off-diagonal entry equals off_diagonal.
    """
    if off_diagonal < 0:
        raise ValueError(f"off_diagonal must be non-negative, got {off_diagonal}")
    if rng is None:
        matrix = np.full((classes, classes), off_diagonal, dtype=np.float64)
    else:
        matrix = rng.uniform(0.0, off_diagonal, size=(classes, classes))
    np.fill_diagonal(matrix, 1.0)
    return matrix


def split_batches(
    prediction: Blob,
    label: Blob,
    batch_size: int,
    drop_last: bool = False,
) -> List[Tuple[Blob, Blob]]:
    """
    Slice a (prediction, label/target) pair into consecutive batches along N.

    Args:
        prediction: Blob with N samples
        label: Blob with the same N
        batch_size: Samples per batch
        drop_last: If True, drop the incomplete final batch (PyTorch DataLoader convention)
    """
    n = prediction.num
    assert label.num == n, (
        f"prediction and label must have the same number of samples, got {n} and {label.num}"
    )
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    batches = []
    for start in range(0, n, batch_size):
        end = min(start + batch_size, n)
        if drop_last and end - start < batch_size:
            break
        # Copies: each batch owns its data and diff, like a freshly allocated engine blob
        batches.append(
            (
                Blob.from_tensor(prediction.data[start:end], dtype=prediction.dtype, device=prediction.device),
                Blob.from_tensor(label.data[start:end], dtype=label.dtype, device=label.device),
            )
        )

    if not batches:
        raise ValueError(f"batch_size ({batch_size}) is larger than n_samples ({n})")
    return batches
