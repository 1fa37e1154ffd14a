"""Shared fixtures: tiny ONNX graphs and an in-memory asset store."""

from __future__ import annotations

import io
from dataclasses import dataclass, field

import numpy as np
import pytest
from onnx import TensorProto, helper, numpy_helper
from PIL import Image

from aibirdie.ml.normalize import NormalizeOp
from aibirdie.ml.variants import ModelVariant

BIRD_LABELS = ("sparrow", "robin", "hawk", "heron", "finch")


def make_classifier_model(
    height: int = 8,
    width: int = 8,
    num_classes: int = len(BIRD_LABELS),
    batch_dim: int | str = 1,
) -> bytes:
    """Build a softmax classifier over the mean RGB value of an NHWC image."""
    weights = (np.arange(3 * num_classes, dtype=np.float32).reshape(3, num_classes) - num_classes) / 4.0
    graph = helper.make_graph(
        nodes=[
            helper.make_node("ReduceMean", ["image"], ["pooled"], axes=[1, 2], keepdims=0),
            helper.make_node("MatMul", ["pooled", "weights"], ["logits"]),
            helper.make_node("Softmax", ["logits"], ["probabilities"], axis=1),
        ],
        name="tiny_classifier",
        inputs=[helper.make_tensor_value_info("image", TensorProto.FLOAT, [batch_dim, height, width, 3])],
        outputs=[helper.make_tensor_value_info("probabilities", TensorProto.FLOAT, [1, num_classes])],
        initializer=[numpy_helper.from_array(weights, name="weights")],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    return model.SerializeToString()


def make_identity_model(shape: list[int]) -> bytes:
    """Build a model whose single input and output share ``shape``."""
    graph = helper.make_graph(
        nodes=[helper.make_node("Identity", ["x"], ["y"])],
        name="identity",
        inputs=[helper.make_tensor_value_info("x", TensorProto.FLOAT, shape)],
        outputs=[helper.make_tensor_value_info("y", TensorProto.FLOAT, shape)],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    return model.SerializeToString()


def make_png(width: int, height: int, seed: int = 0) -> bytes:
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


TEST_VARIANT = ModelVariant(
    name="tiny_test",
    model_file="tiny.onnx",
    label_file="tiny.txt",
    input_norm=NormalizeOp(mean=127.5, std=127.5),
    output_norm=NormalizeOp(mean=0.0, std=1.0),
    reference_size=32,
)


@dataclass
class InMemoryStore:
    """Asset store serving a fixed model and label table."""

    model: bytes
    labels: tuple[str, ...] = BIRD_LABELS
    reads: list[str] = field(default_factory=list)

    def read_model(self, variant: ModelVariant) -> bytes:
        self.reads.append(variant.model_file)
        return self.model

    def read_labels(self, variant: ModelVariant) -> tuple[str, ...]:
        self.reads.append(variant.label_file)
        return self.labels


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore(model=make_classifier_model())


@pytest.fixture()
def png_path(tmp_path):
    path = tmp_path / "bird.png"
    path.write_bytes(make_png(40, 24))
    return path
