"""Single-model ONNX Runtime session with explicit lifecycle.

The session owns the serialized model, the runtime session built from it,
and the execution provider used as accelerator handle. ``close()`` drops
them in that order (accelerator first) and is safe to call repeatedly.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import numpy as np
from onnxruntime import ExecutionMode, InferenceSession, SessionOptions, get_available_providers

from aibirdie.errors import (
    AcceleratorError,
    InferenceError,
    ModelLoadError,
    SessionClosedError,
    ShapeMismatchError,
)
from aibirdie.ml.tensor import TensorBuffer

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

GPU_PROVIDER = "CUDAExecutionProvider"
CPU_PROVIDER = "CPUExecutionProvider"

_ORT_DTYPES: dict[str, np.dtype] = {
    "tensor(float)": np.dtype(np.float32),
    "tensor(float16)": np.dtype(np.float16),
    "tensor(uint8)": np.dtype(np.uint8),
    "tensor(int8)": np.dtype(np.int8),
}


class Device(StrEnum):
    CPU = "cpu"
    GPU = "gpu"


# ---------------------------------------------------------------------------
# Signature helpers
# ---------------------------------------------------------------------------


def _resolve_dtype(ort_type: str, what: str) -> np.dtype:
    try:
        return _ORT_DTYPES[ort_type]
    except KeyError:
        raise ModelLoadError(f"Unsupported {what} tensor type: {ort_type}") from None


def _resolve_shape(shape: list[Any], rank: int, what: str) -> tuple[int, ...]:
    """Turn an ORT shape into concrete ints; a symbolic batch dimension counts as 1."""
    if len(shape) != rank:
        raise ModelLoadError(f"Expected rank-{rank} {what} tensor, got shape {shape}")
    dims: list[int] = []
    for axis, dim in enumerate(shape):
        if axis == 0 and not isinstance(dim, int):
            dims.append(1)
        elif isinstance(dim, int) and dim > 0:
            dims.append(dim)
        else:
            raise ModelLoadError(f"{what.capitalize()} tensor has non-concrete dimension {dim!r} in shape {shape}")
    if dims[0] != 1:
        raise ModelLoadError(f"{what.capitalize()} tensor batch size must be 1, got {dims[0]}")
    return tuple(dims)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class ModelSession:
    """A loaded classification model that maps ``{1,H,W,3}`` input to ``{1,C}`` output."""

    def __init__(
        self,
        model_bytes: bytes,
        session: InferenceSession,
        accelerator: str | None,
    ) -> None:
        self._model_bytes: bytes | None = model_bytes
        self._session: InferenceSession | None = session
        self._accelerator = accelerator
        self._closed = False

        inputs = session.get_inputs()
        outputs = session.get_outputs()
        if len(inputs) != 1 or len(outputs) != 1:
            raise ModelLoadError(f"Expected exactly one input and one output, got {len(inputs)} and {len(outputs)}")

        self._input_name: str = inputs[0].name
        self._output_name: str = outputs[0].name
        self.input_shape = _resolve_shape(inputs[0].shape, 4, "input")
        self.input_dtype = _resolve_dtype(inputs[0].type, "input")
        self.output_shape = _resolve_shape(outputs[0].shape, 2, "output")
        self.output_dtype = _resolve_dtype(outputs[0].type, "output")

        if self.input_shape[3] != 3:
            raise ModelLoadError(f"Input tensor must have 3 channels (NHWC), got shape {self.input_shape}")

    # -- Construction -------------------------------------------------------

    @classmethod
    def open(cls, model_bytes: bytes, device: Device | str = Device.CPU, num_threads: int = 1) -> ModelSession:
        """Parse a serialized model and prepare it for inference.

        Raises:
            ModelLoadError: If the model cannot be parsed or has an unsupported signature.
            AcceleratorError: If ``device`` is GPU and CUDA cannot be attached.
        """
        device = Device(device)
        if num_threads < 1:
            raise ValueError(f"num_threads must be >= 1, got {num_threads}")

        accelerator: str | None = None
        options = _build_session_options(device, num_threads)
        if device == Device.GPU:
            if GPU_PROVIDER not in get_available_providers():
                raise AcceleratorError(f"{GPU_PROVIDER} is not available in this onnxruntime build")
            accelerator = GPU_PROVIDER
            providers = [GPU_PROVIDER, CPU_PROVIDER]
        else:
            providers = [CPU_PROVIDER]

        try:
            session = InferenceSession(model_bytes, sess_options=options, providers=providers)
        except Exception as e:
            raise ModelLoadError(f"Failed to load model: {e}") from e

        # ORT silently drops a provider that fails to initialize.
        if accelerator is not None and accelerator not in session.get_providers():
            raise AcceleratorError(f"{accelerator} could not be attached to the session")

        instance = cls(model_bytes, session, accelerator)
        logger.info(
            "Opened model session (device=%s, threads=%s, input=%s %s, output=%s %s)",
            device,
            num_threads if accelerator is None else "accelerator",
            instance.input_shape,
            instance.input_dtype,
            instance.output_shape,
            instance.output_dtype,
        )
        return instance

    # -- Public API ---------------------------------------------------------

    @property
    def input_height(self) -> int:
        return self.input_shape[1]

    @property
    def input_width(self) -> int:
        return self.input_shape[2]

    @property
    def num_classes(self) -> int:
        return self.output_shape[1]

    @property
    def accelerator(self) -> str | None:
        return self._accelerator

    @property
    def closed(self) -> bool:
        return self._closed

    def run(self, tensor: TensorBuffer) -> TensorBuffer:
        """Run one synchronous forward pass.

        Raises:
            SessionClosedError: If the session was closed.
            ShapeMismatchError: If the tensor does not match the input signature.
            InferenceError: If the runtime fails.
        """
        session = self._session
        if self._closed or session is None:
            raise SessionClosedError("Model session is closed")
        if tensor.data.shape != self.input_shape or tensor.dtype != self.input_dtype:
            raise ShapeMismatchError(
                f"Input tensor {tensor.data.shape} {tensor.dtype} does not match model input {self.input_shape} {self.input_dtype}"
            )

        try:
            (output,) = session.run([self._output_name], {self._input_name: tensor.data})
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e

        result = TensorBuffer.from_array(output)
        if result.shape != self.output_shape:
            raise InferenceError(f"Model produced output shape {result.shape}, expected {self.output_shape}")
        return result

    def close(self) -> None:
        """Release the accelerator handle, then the model. Repeated calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        self._accelerator = None
        self._session = None
        self._model_bytes = None
        logger.info("Model session closed")

    def __enter__(self) -> ModelSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def _build_session_options(device: Device, num_threads: int) -> SessionOptions:
    opts = SessionOptions()
    if device == Device.CPU:
        opts.intra_op_num_threads = num_threads
    opts.inter_op_num_threads = 1
    opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
    opts.enable_mem_pattern = True
    opts.enable_mem_reuse = True
    return opts
