"""Model asset provider: locate or download model and label files.

Files are looked up in the local models directory first. When a Hugging
Face repository is configured, missing files are downloaded into that
directory on first use.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from huggingface_hub.utils import HfHubHTTPError

from aibirdie.errors import LabelLoadError, ModelLoadError
from aibirdie.ml.labels import load_labels

if TYPE_CHECKING:
    from aibirdie.config import Settings
    from aibirdie.ml.variants import ModelVariant

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class AssetStore(Protocol):
    """Supplies model bytes and label tables for a variant."""

    def read_model(self, variant: ModelVariant) -> bytes:
        """Return the serialized model for a variant."""
        ...

    def read_labels(self, variant: ModelVariant) -> tuple[str, ...]:
        """Return the ordered label table for a variant."""
        ...


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class ModelStore:
    """Resolves variant assets from a local directory or a Hugging Face repo."""

    def __init__(self, models_dir: str | Path, repo_id: str | None = None) -> None:
        self._models_dir = Path(models_dir)
        self._repo_id = repo_id
        self._lock = threading.Lock()
        self._paths: dict[str, Path] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> ModelStore:
        return cls(settings.models_dir, settings.model_repo)

    # -- Public API ---------------------------------------------------------

    def ensure_available(self, filename: str) -> Path:
        """Return a local path for ``filename``, downloading it if needed.

        Raises:
            FileNotFoundError: If the file is not present locally and cannot be downloaded,
                including when the repository id or filename is malformed.
        """
        with self._lock:
            cached = self._paths.get(filename)
        if cached is not None and cached.exists():
            return cached

        local = self._models_dir / filename
        if local.is_file():
            path = local
        elif self._repo_id is None:
            raise FileNotFoundError(f"{filename} not found in {self._models_dir} and no model repository configured")
        else:
            self._models_dir.mkdir(parents=True, exist_ok=True)
            try:
                path = Path(
                    hf_hub_download(
                        repo_id=self._repo_id,
                        filename=filename,
                        local_dir=str(self._models_dir),
                    )
                )
            except (HfHubHTTPError, ValueError) as e:
                raise FileNotFoundError(f"Failed to download {filename} from {self._repo_id}: {e}") from e
            logger.info("Downloaded %s to %s", filename, path)

        with self._lock:
            self._paths[filename] = path
        return path

    def read_model(self, variant: ModelVariant) -> bytes:
        try:
            return self.ensure_available(variant.model_file).read_bytes()
        except OSError as e:
            raise ModelLoadError(f"Cannot read model for variant '{variant.name}': {e}") from e

    def read_labels(self, variant: ModelVariant) -> tuple[str, ...]:
        try:
            path = self.ensure_available(variant.label_file)
        except OSError as e:
            raise LabelLoadError(f"Cannot read labels for variant '{variant.name}': {e}") from e
        return load_labels(path)
