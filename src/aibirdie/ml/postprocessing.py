"""Output tensor post-processing: dequantize and join with labels."""

from __future__ import annotations

from typing import TYPE_CHECKING

from aibirdie.errors import LabelCountMismatchError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from aibirdie.ml.normalize import NormalizeOp
    from aibirdie.ml.tensor import TensorBuffer


def check_label_count(num_classes: int, labels: Sequence[str]) -> None:
    if num_classes != len(labels):
        raise LabelCountMismatchError(f"Model has {num_classes} output classes but {len(labels)} labels were loaded")


def postprocess(output: TensorBuffer, labels: Sequence[str], normalize: NormalizeOp) -> dict[str, float]:
    """Map each label to its normalized output value.

    The returned dict preserves output slot order, so position ``i`` is
    class id ``i``.
    """
    values = normalize(output).flat()
    check_label_count(values.size, labels)
    return {label: float(value) for label, value in zip(labels, values.tolist(), strict=True)}
