"""
Blob: the 4-d tensor buffer exchanged between layers.

A blob holds two tensors of identical shape (N, C, H, W):
- data: the values computed by the forward pass
- diff: the gradient of the loss w.r.t. data, written by the backward pass

Layers never own the blobs they are handed; they only read `data` and write
`diff` (or, for top blobs, `data`) through the views below. Both tensors are
contiguous, so the flat row-major layout ((n*C + c)*H + h)*W + w holds and
`as_matrix()` can return a view instead of a copy.
"""

from typing import Optional, Sequence, Tuple, Union
import numpy as np
import torch

from .constants import DEFAULT_DTYPE, DEFAULT_DEVICE

Shape4 = Tuple[int, int, int, int]


class Blob:
    def __init__(
        self,
        num: int = 0,
        channels: int = 0,
        height: int = 0,
        width: int = 0,
        dtype: torch.dtype = DEFAULT_DTYPE,
        device: Union[str, torch.device] = DEFAULT_DEVICE,
    ):
        self.dtype = dtype
        self.device = torch.device(device)
        self.data = torch.zeros((0, 0, 0, 0), dtype=dtype, device=self.device)
        self.diff = torch.zeros_like(self.data)
        self.reshape(num, channels, height, width)

    @classmethod
    def from_tensor(
        cls,
        values: Union[torch.Tensor, np.ndarray, Sequence],
        dtype: Optional[torch.dtype] = None,
        device: Optional[Union[str, torch.device]] = None,
    ) -> "Blob":
        """
        Build a blob around existing values.

        Args:
            values: 1-d (N,), 2-d (N, D) or 4-d (N, C, H, W) array-like.
                1-d becomes (N, 1, 1, 1), as for label vectors.
                2-d becomes (N, D, 1, 1), as for class scores.
            dtype: Storage dtype (default: float64)
            device: PyTorch device (default: cpu)

        Returns:
            Blob whose data is a contiguous copy of values and whose diff is zero
        """
        tensor = torch.as_tensor(
            np.asarray(values) if not isinstance(values, torch.Tensor) else values,
            dtype=dtype or DEFAULT_DTYPE,
            device=device or DEFAULT_DEVICE,
        )
        if tensor.ndim == 1:
            tensor = tensor.reshape(-1, 1, 1, 1)
        elif tensor.ndim == 2:
            tensor = tensor.reshape(tensor.shape[0], tensor.shape[1], 1, 1)
        elif tensor.ndim != 4:
            raise ValueError(
                f"Blob values must be 1-d, 2-d or 4-d, got shape {tuple(tensor.shape)}"
            )

        blob = cls(*tensor.shape, dtype=tensor.dtype, device=tensor.device)
        blob.data.copy_(tensor)
        return blob

    def reshape(self, num: int, channels: int, height: int, width: int) -> None:
        """
        Resize to (num, channels, height, width).

        Storage is reallocated only when the shape changes; the new contents
        are zero. Reshaping to the current shape keeps the existing values.
        """
        shape = (num, channels, height, width)
        if any(s < 0 for s in shape):
            raise ValueError(f"Blob dimensions must be non-negative, got {shape}")
        if shape == self.shape:
            return
        self.data = torch.zeros(shape, dtype=self.dtype, device=self.device)
        self.diff = torch.zeros_like(self.data)

    def reshape_like(self, other: "Blob") -> None:
        self.reshape(*other.shape)

    # -------------------------------------------------------------------------
    # Shape accessors
    # -------------------------------------------------------------------------

    @property
    def shape(self) -> Shape4:
        return tuple(self.data.shape)  # type: ignore[return-value]

    @property
    def num(self) -> int:
        return self.data.shape[0]

    @property
    def channels(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[2]

    @property
    def width(self) -> int:
        return self.data.shape[3]

    @property
    def count(self) -> int:
        """Total element count N*C*H*W."""
        return self.data.numel()

    @property
    def dim(self) -> int:
        """Per-sample element count C*H*W (number of classes for score blobs)."""
        return self.count // self.num if self.num > 0 else 0

    def offset(self, n: int, c: int = 0, h: int = 0, w: int = 0) -> int:
        """Flat row-major index of element (n, c, h, w)."""
        return ((n * self.channels + c) * self.height + h) * self.width + w

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def as_matrix(self) -> torch.Tensor:
        """(N, dim) view of data; writes go through to the blob."""
        return self.data.view(self.num, self.dim)

    def diff_matrix(self) -> torch.Tensor:
        """(N, dim) view of diff; writes go through to the blob."""
        return self.diff.view(self.num, self.dim)

    def zero_diff(self) -> None:
        self.diff.zero_()

    def __repr__(self) -> str:
        return f"Blob(shape={self.shape}, dtype={self.dtype}, device={self.device})"
