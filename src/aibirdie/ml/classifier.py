"""Image classifier: wires preprocessing, the model session, and top-k selection.

A ``Classifier`` is either open and ready or closed for good; construction
is all-or-nothing. Calls are synchronous and not reentrant, so callers that
share one instance across threads must serialize access (see
``aibirdie.ml.inference.InferencePool``).
"""

from __future__ import annotations

import logging
import time
from enum import StrEnum
from typing import TYPE_CHECKING

from aibirdie.errors import SessionClosedError
from aibirdie.ml.model_manager import ModelStore
from aibirdie.ml.postprocessing import check_label_count, postprocess
from aibirdie.ml.preprocessing import load_image, preprocess, rotate
from aibirdie.ml.session import Device, ModelSession
from aibirdie.ml.topk import MAX_RESULTS, select_top_k
from aibirdie.ml.variants import get_variant

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path
    from types import TracebackType

    import numpy as np
    from numpy.typing import NDArray

    from aibirdie.config import Settings
    from aibirdie.ml.model_manager import AssetStore
    from aibirdie.ml.topk import Recognition
    from aibirdie.ml.variants import ModelVariant

logger = logging.getLogger(__name__)


class ClassifierState(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


class Classifier:
    """Classifies photographs with a single model variant."""

    def __init__(
        self,
        variant: ModelVariant,
        device: Device | str = Device.CPU,
        num_threads: int = 1,
        *,
        store: AssetStore,
        max_results: int = MAX_RESULTS,
        orientation: Callable[[], int] | None = None,
        max_image_pixels: int | None = None,
    ) -> None:
        if not 1 <= max_results <= MAX_RESULTS:
            raise ValueError(f"max_results must be between 1 and {MAX_RESULTS}, got {max_results}")

        self._variant = variant
        self._max_results = max_results
        self._orientation = orientation
        self._max_image_pixels = max_image_pixels

        model_bytes = store.read_model(variant)
        labels = store.read_labels(variant)
        session = ModelSession.open(model_bytes, device, num_threads)
        try:
            check_label_count(session.num_classes, labels)
        except Exception:
            session.close()
            raise

        self._labels = labels
        self._session = session
        self._state = ClassifierState.OPEN
        logger.info(
            "Created %s classifier (%d labels, input %dx%d)",
            variant.name,
            len(labels),
            session.input_width,
            session.input_height,
        )

    # -- Properties ---------------------------------------------------------

    @property
    def variant(self) -> ModelVariant:
        return self._variant

    @property
    def state(self) -> ClassifierState:
        return self._state

    @property
    def labels(self) -> tuple[str, ...]:
        return self._labels

    @property
    def input_width(self) -> int:
        return self._session.input_width

    @property
    def input_height(self) -> int:
        return self._session.input_height

    @property
    def uses_accelerator(self) -> bool:
        return self._session.accelerator is not None

    # -- Classification -----------------------------------------------------

    def classify(self, path: str | Path) -> list[Recognition]:
        """Decode the image at ``path`` and return the ranked recognitions.

        Raises:
            SessionClosedError: If the classifier was closed.
            ImageLoadError: If the file cannot be decoded.
            InferenceError: If the forward pass fails.
        """
        self._ensure_open()
        start = time.perf_counter()
        image = load_image(path, self._max_image_pixels)
        logger.debug("Loaded %s in %.1f ms", path, (time.perf_counter() - start) * 1000)
        return self.classify_image(image)

    def classify_image(self, image: NDArray[np.uint8]) -> list[Recognition]:
        """Classify an already decoded HxWx3 RGB uint8 image."""
        self._ensure_open()
        if self._orientation is not None:
            image = rotate(image, self._orientation())

        tensor = preprocess(
            image,
            self._session.input_width,
            self._session.input_height,
            self._variant.input_norm,
            dtype=self._session.input_dtype,
            reference_size=self._variant.reference_size,
        )

        start = time.perf_counter()
        output = self._session.run(tensor)
        logger.debug("Model inference took %.1f ms", (time.perf_counter() - start) * 1000)

        probabilities = postprocess(output, self._labels, self._variant.output_norm)
        return select_top_k(probabilities, self._max_results)

    # -- Lifecycle ----------------------------------------------------------

    def close(self) -> None:
        """Release the model session. Safe to call more than once."""
        if self._state is ClassifierState.CLOSED:
            return
        self._state = ClassifierState.CLOSED
        self._session.close()
        logger.info("Closed %s classifier", self._variant.name)

    def _ensure_open(self) -> None:
        if self._state is not ClassifierState.OPEN:
            raise SessionClosedError("Classifier is closed")

    def __enter__(self) -> Classifier:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def create_classifier(settings: Settings, orientation: Callable[[], int] | None = None) -> Classifier:
    """Build a classifier for the configured model variant."""
    return Classifier(
        get_variant(settings.model_variant),
        device=settings.device,
        num_threads=settings.num_threads,
        store=ModelStore.from_settings(settings),
        max_results=settings.max_results,
        orientation=orientation,
        max_image_pixels=settings.max_image_pixels,
    )
