"""Image decoding and model input preparation.

Preprocessing runs in a fixed order: crop-or-pad to a canonical square,
nearest-neighbour resize to the model input size, then normalization.
Changing the order changes the resulting tensor.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, UnidentifiedImageError

from aibirdie.errors import ImageLoadError
from aibirdie.ml.tensor import TensorBuffer

if TYPE_CHECKING:
    from numpy.typing import DTypeLike, NDArray

    from aibirdie.ml.normalize import NormalizeOp

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_SIZE = 512

_ROTATIONS = {0: 0, 90: 1, 180: 2, 270: 3}


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _to_rgb_array(image: Image.Image, max_pixels: int | None) -> NDArray[np.uint8]:
    width, height = image.size
    if max_pixels is not None and width * height > max_pixels:
        raise ImageLoadError(f"Image is {width}x{height}, exceeds limit of {max_pixels} pixels")
    return np.asarray(image.convert("RGB"), dtype=np.uint8)


def decode_image(image_bytes: bytes, max_pixels: int | None = None) -> NDArray[np.uint8]:
    """Decode raw file bytes into an HxWx3 RGB uint8 array.

    Raises:
        ImageLoadError: If the bytes are not a supported image or exceed ``max_pixels``.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            return _to_rgb_array(image, max_pixels)
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ImageLoadError(f"Failed to decode image: {e}") from e


def load_image(path: str | Path, max_pixels: int | None = None) -> NDArray[np.uint8]:
    """Read and decode an image file into an HxWx3 RGB uint8 array."""
    try:
        with Image.open(Path(path)) as image:
            return _to_rgb_array(image, max_pixels)
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ImageLoadError(f"Failed to load image {path}: {e}") from e


def rotate(image: NDArray[np.uint8], degrees: int) -> NDArray[np.uint8]:
    """Rotate an image counter-clockwise by a multiple of 90 degrees."""
    try:
        turns = _ROTATIONS[degrees]
    except KeyError:
        raise ValueError(f"Orientation must be one of 0, 90, 180, 270, got {degrees}") from None
    if turns == 0:
        return image
    return np.ascontiguousarray(np.rot90(image, k=turns))


# ---------------------------------------------------------------------------
# Geometric transforms
# ---------------------------------------------------------------------------


def canonical_side(width: int, height: int, reference_size: int = DEFAULT_REFERENCE_SIZE) -> int:
    """Side length of the square produced by :func:`crop_or_pad`.

    The shorter image edge, but never less than ``reference_size``; smaller
    images are padded up to the reference square instead of being cropped.
    """
    return max(min(width, height), reference_size)


def crop_or_pad(image: NDArray[np.uint8], side: int) -> NDArray[np.uint8]:
    """Center-crop or center-pad an HxWxC image to ``side`` x ``side``.

    Each axis is handled independently: longer axes are cropped around the
    center, shorter axes are padded with black on both sides.
    """
    height, width = image.shape[:2]

    def _span(length: int) -> tuple[int, int, int]:
        # (source offset, destination offset, copied length)
        if length >= side:
            return (length - side) // 2, 0, side
        return 0, (side - length) // 2, length

    src_y, dst_y, copy_h = _span(height)
    src_x, dst_x, copy_w = _span(width)

    canvas = np.zeros((side, side, *image.shape[2:]), dtype=image.dtype)
    canvas[dst_y : dst_y + copy_h, dst_x : dst_x + copy_w] = image[src_y : src_y + copy_h, src_x : src_x + copy_w]
    return canvas


def resize_nearest(image: NDArray[np.uint8], width: int, height: int) -> NDArray[np.uint8]:
    """Resize with nearest-neighbour sampling."""
    if image.shape[1] == width and image.shape[0] == height:
        return image
    resized = Image.fromarray(image).resize((width, height), resample=Image.Resampling.NEAREST)
    return np.asarray(resized, dtype=np.uint8)


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------


def _cast(values: NDArray[np.float32], dtype: np.dtype) -> NDArray:
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(values), info.min, info.max).astype(dtype)
    return values.astype(dtype)


def preprocess(
    image: NDArray[np.uint8],
    target_width: int,
    target_height: int,
    normalize: NormalizeOp,
    dtype: DTypeLike = np.float32,
    reference_size: int = DEFAULT_REFERENCE_SIZE,
) -> TensorBuffer:
    """Convert an HxWx3 RGB image into a ``(1, target_height, target_width, 3)`` tensor.

    Args:
        image: Decoded RGB uint8 image of any size.
        target_width: Model input width.
        target_height: Model input height.
        normalize: Operator mapping raw pixel values into the model's input range.
        dtype: Element type declared by the model input.
        reference_size: Minimum side of the canonical square.

    Returns:
        Tensor buffer ready to feed to the model session.
    """
    if image.ndim != 3 or image.shape[2] != 3:
        raise ImageLoadError(f"Expected an HxWx3 RGB image, got shape {image.shape}")

    height, width = image.shape[:2]
    side = canonical_side(width, height, reference_size)
    square = crop_or_pad(image, side)
    resized = resize_nearest(square, target_width, target_height)

    normalized = normalize(TensorBuffer.from_array(resized[np.newaxis, ...]))
    logger.debug("Preprocessed %dx%d image via %dx%d square to %dx%d", width, height, side, side, target_width, target_height)
    return TensorBuffer.from_array(_cast(normalized.data, np.dtype(dtype)))
