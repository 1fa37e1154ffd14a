"""Label table loading."""

from __future__ import annotations

from pathlib import Path

from aibirdie.errors import LabelLoadError


def parse_labels(text: str) -> tuple[str, ...]:
    """Parse one label per line, trimming whitespace and skipping blank lines.

    Raises:
        LabelLoadError: If no labels are present or a label appears twice.
    """
    labels = tuple(line.strip() for line in text.splitlines() if line.strip())
    if not labels:
        raise LabelLoadError("Label file contains no labels")

    seen: set[str] = set()
    for index, label in enumerate(labels):
        if label in seen:
            raise LabelLoadError(f"Duplicate label {label!r} at line index {index}")
        seen.add(label)
    return labels


def load_labels(path: str | Path) -> tuple[str, ...]:
    """Read a UTF-8 label file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise LabelLoadError(f"Failed to read labels from {path}: {e}") from e
    return parse_labels(text)
