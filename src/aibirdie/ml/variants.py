"""Model variant registry.

A variant is the complete set of per-model constants: which files to load
and how to normalize the input and output tensors.
"""

from __future__ import annotations

from dataclasses import dataclass

from aibirdie.ml.normalize import NormalizeOp
from aibirdie.ml.preprocessing import DEFAULT_REFERENCE_SIZE


@dataclass(frozen=True)
class ModelVariant:
    """Static configuration for one classification model."""

    name: str
    model_file: str
    label_file: str
    input_norm: NormalizeOp
    output_norm: NormalizeOp
    reference_size: int = DEFAULT_REFERENCE_SIZE


# Float EfficientNet-B4: pixels map from [0, 255] to [-1, 1], output needs no dequantization.
EFFICIENTNET_B4 = ModelVariant(
    name="efficientnet_b4",
    model_file="model-ENB4.onnx",
    label_file="labels-ENB4.txt",
    input_norm=NormalizeOp(mean=127.5, std=127.5),
    output_norm=NormalizeOp(mean=0.0, std=1.0),
)

MODEL_VARIANTS: dict[str, ModelVariant] = {
    EFFICIENTNET_B4.name: EFFICIENTNET_B4,
}

DEFAULT_VARIANT = EFFICIENTNET_B4.name


def get_variant(name: str) -> ModelVariant:
    try:
        return MODEL_VARIANTS[name]
    except KeyError:
        raise KeyError(f"Unknown model variant: {name}") from None
