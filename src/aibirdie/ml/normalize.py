"""Affine normalization shared by preprocessing and output dequantization."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from aibirdie.ml.tensor import TensorBuffer


@dataclass(frozen=True)
class NormalizeOp:
    """Elementwise ``y = (x - mean) / std``.

    Float models use ``mean=0.0, std=1.0`` on their output, which makes the
    operator an identity; quantized models substitute their zero point and
    scale to dequantize through the same code path.
    """

    mean: float
    std: float

    def __post_init__(self) -> None:
        if self.std == 0:
            raise ValueError("NormalizeOp std must be non-zero")

    @property
    def is_identity(self) -> bool:
        return self.mean == 0.0 and self.std == 1.0

    def __call__(self, tensor: TensorBuffer) -> TensorBuffer:
        values = tensor.data.astype(np.float32)
        if not self.is_identity:
            values = (values - np.float32(self.mean)) / np.float32(self.std)
        return TensorBuffer.from_array(values, dtype=np.float32)
