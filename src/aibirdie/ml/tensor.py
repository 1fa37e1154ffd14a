"""Fixed-shape numeric buffers exchanged with the inference engine."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from aibirdie.errors import ShapeMismatchError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, DTypeLike, NDArray


@dataclass(frozen=True)
class TensorBuffer:
    """A contiguous numpy array with a fixed shape and element type.

    The dtype is part of the buffer's identity: operations that change the
    element type return a new buffer instead of converting in place.
    """

    shape: tuple[int, ...]
    dtype: np.dtype
    data: NDArray

    def __post_init__(self) -> None:
        if not self.shape or any(dim <= 0 for dim in self.shape):
            raise ValueError(f"Tensor shape must be non-empty and positive, got {self.shape}")
        if self.data.size != math.prod(self.shape):
            raise ValueError(f"Tensor data has {self.data.size} elements, shape {self.shape} needs {math.prod(self.shape)}")
        if tuple(self.data.shape) != self.shape:
            raise ShapeMismatchError(f"Tensor data has shape {self.data.shape}, declared shape is {self.shape}")
        if self.data.dtype != self.dtype:
            raise ValueError(f"Tensor data is {self.data.dtype}, expected {self.dtype}")

    @classmethod
    def from_array(cls, array: ArrayLike, dtype: DTypeLike | None = None) -> TensorBuffer:
        """Wrap an array, copying it into C-contiguous storage of the given dtype."""
        data = np.ascontiguousarray(array, dtype=dtype)
        return cls(shape=tuple(int(dim) for dim in data.shape), dtype=data.dtype, data=data)

    @property
    def size(self) -> int:
        """Total number of elements."""
        return int(self.data.size)

    def flat(self) -> NDArray:
        """Return the elements as a one-dimensional view."""
        return self.data.reshape(-1)
