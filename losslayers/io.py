"""
Reading and writing weighting matrices for the infogain loss.

Supported formats, chosen by file suffix:
- .npy: a single numpy array
- .npz: a numpy archive holding the array under 'infogain' (or as its only entry)
- .pt / .pth: a tensor written with torch.save
"""

import logging
from pathlib import Path
from typing import Union
import numpy as np
import torch

from .constants import DEFAULT_DTYPE, DEFAULT_DEVICE
from .errors import ConfigMismatch

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

NPZ_KEY = "infogain"


def _read_array(path: Path) -> torch.Tensor:
    suffix = path.suffix.lower()
    if suffix == ".npy":
        return torch.from_numpy(np.load(path, allow_pickle=False))
    if suffix == ".npz":
        with np.load(path, allow_pickle=False) as archive:
            if NPZ_KEY in archive.files:
                return torch.from_numpy(archive[NPZ_KEY])
            if len(archive.files) == 1:
                return torch.from_numpy(archive[archive.files[0]])
            raise ConfigMismatch(
                f"{path}: archive holds {archive.files}, expected a '{NPZ_KEY}' entry"
            )
    if suffix in (".pt", ".pth"):
        value = torch.load(path, map_location="cpu", weights_only=True)
        if not isinstance(value, torch.Tensor):
            raise ConfigMismatch(f"{path}: expected a saved tensor, got {type(value).__name__}")
        return value
    raise ConfigMismatch(f"{path}: unsupported weighting matrix format '{suffix}'")


def as_weight_matrix(
    values: Union[torch.Tensor, np.ndarray],
    dtype: torch.dtype = DEFAULT_DTYPE,
    device: Union[str, torch.device] = DEFAULT_DEVICE,
) -> torch.Tensor:
    """
    Validate and normalize a weighting matrix to a square 2-d tensor.

    Accepts (K, K) or the blob form (1, 1, K, K).

    Raises:
        ConfigMismatch: values are not square or not in one of the accepted forms
    """
    matrix = torch.as_tensor(values, dtype=dtype, device=device)
    if matrix.ndim == 4:
        if matrix.shape[0] != 1 or matrix.shape[1] != 1:
            raise ConfigMismatch(
                f"Weighting matrix blob must have num == channels == 1, got shape {tuple(matrix.shape)}"
            )
        matrix = matrix[0, 0]
    if matrix.ndim != 2:
        raise ConfigMismatch(
            f"Weighting matrix must be 2-d or (1, 1, K, K), got shape {tuple(matrix.shape)}"
        )
    if matrix.shape[0] != matrix.shape[1]:
        raise ConfigMismatch(
            f"Weighting matrix must be square, got {matrix.shape[0]}x{matrix.shape[1]}"
        )
    return matrix.contiguous()


def load_weight_matrix(
    path: PathLike,
    dtype: torch.dtype = DEFAULT_DTYPE,
    device: Union[str, torch.device] = DEFAULT_DEVICE,
) -> torch.Tensor:
    """
    Load a square weighting matrix from disk.

    Args:
        path: .npy, .npz, .pt or .pth file
        dtype: Storage dtype of the returned tensor
        device: PyTorch device of the returned tensor

    Returns:
        (K, K) tensor

    Raises:
        FileNotFoundError: path does not exist
        ConfigMismatch: unsupported format or non-square contents
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Weighting matrix file not found: {path}")
    matrix = as_weight_matrix(_read_array(path), dtype=dtype, device=device)
    logger.debug("Loaded %dx%d weighting matrix from %s", matrix.shape[0], matrix.shape[1], path)
    return matrix


def save_weight_matrix(path: PathLike, matrix: Union[torch.Tensor, np.ndarray]) -> Path:
    """Write a square weighting matrix in the format implied by the suffix."""
    path = Path(path)
    matrix = as_weight_matrix(matrix)
    path.parent.mkdir(parents=True, exist_ok=True)

    suffix = path.suffix.lower()
    if suffix == ".npy":
        np.save(path, matrix.cpu().numpy())
    elif suffix == ".npz":
        np.savez(path, **{NPZ_KEY: matrix.cpu().numpy()})
    elif suffix in (".pt", ".pth"):
        torch.save(matrix.cpu(), path)
    else:
        raise ConfigMismatch(f"{path}: unsupported weighting matrix format '{suffix}'")
    return path
