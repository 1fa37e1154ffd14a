"""Ranked recognition results and bounded top-k selection."""

from __future__ import annotations

import heapq
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

MAX_RESULTS = 20


@dataclass(frozen=True)
class BoundingBox:
    """Relative location of a recognition within the source image (0.0-1.0)."""

    left: float
    top: float
    right: float
    bottom: float


@dataclass(frozen=True)
class Recognition:
    """One ranked classification result.

    ``id`` is the output slot index of the class, ``title`` its label.
    ``location`` is reserved for detectors and is always ``None`` for
    whole-image classification.
    """

    id: str | None
    title: str | None
    confidence: float | None
    location: BoundingBox | None = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.id is not None:
            parts.append(f"[{self.id}]")
        if self.title is not None:
            parts.append(self.title)
        if self.confidence is not None:
            parts.append(f"({self.confidence * 100.0:.1f}%)")
        if self.location is not None:
            parts.append(str(self.location))
        return " ".join(parts)


def _rank_key(item: tuple[int, str, float]) -> tuple[float, int]:
    index, _, confidence = item
    # NaN sorts below every real confidence; lower slot index wins ties.
    return (-math.inf if math.isnan(confidence) else confidence, -index)


def select_top_k(probabilities: Mapping[str, float], k: int = MAX_RESULTS) -> list[Recognition]:
    """Return the ``k`` most confident labels, highest first.

    Keeps a heap of at most ``k`` candidates, so the cost is O(n log k).
    Equal confidences are ordered by ascending slot index, i.e. the
    insertion order of ``probabilities``.

    Raises:
        ValueError: If ``k`` is negative.
    """
    if k < 0:
        raise ValueError(f"k must be >= 0, got {k}")
    if k == 0:
        return []

    entries = ((index, label, confidence) for index, (label, confidence) in enumerate(probabilities.items()))
    best = heapq.nlargest(k, entries, key=_rank_key)
    return [Recognition(id=str(index), title=label, confidence=confidence) for index, label, confidence in best]


def to_response(recognitions: Iterable[Recognition]) -> dict[str, list[int] | list[float]]:
    """Build the index-aligned ``{"id": [...], "probabilities": [...]}`` payload."""
    ids: list[int] = []
    probabilities: list[float] = []
    for recognition in recognitions:
        ids.append(int(recognition.id) if recognition.id is not None else -1)
        probabilities.append(recognition.confidence if recognition.confidence is not None else 0.0)
    return {"id": ids, "probabilities": probabilities}
