"""Tests for the classifier orchestration and lifecycle."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from aibirdie.config import Settings
from aibirdie.errors import (
    ImageLoadError,
    InferenceError,
    LabelCountMismatchError,
    ModelLoadError,
    SessionClosedError,
    ShapeMismatchError,
)
from aibirdie.ml.classifier import Classifier, ClassifierState, create_classifier
from aibirdie.ml.preprocessing import load_image, preprocess
from aibirdie.ml.session import ModelSession
from aibirdie.ml.topk import to_response
from conftest import BIRD_LABELS, TEST_VARIANT, InMemoryStore, make_classifier_model, make_png


def _classifier(store: InMemoryStore, **kwargs: object) -> Classifier:
    return Classifier(TEST_VARIANT, store=store, **kwargs)  # type: ignore[arg-type]


class TestConstruction:
    def test_opens_with_model_and_labels(self, store: InMemoryStore) -> None:
        with _classifier(store) as classifier:
            assert classifier.state is ClassifierState.OPEN
            assert classifier.labels == BIRD_LABELS
            assert classifier.input_width == 8
            assert classifier.input_height == 8
            assert classifier.uses_accelerator is False
        assert store.reads == ["tiny.onnx", "tiny.txt"]

    def test_label_count_mismatch_fails_and_closes_session(self) -> None:
        store = InMemoryStore(model=make_classifier_model(num_classes=4))
        with patch.object(ModelSession, "close", autospec=True) as mock_close:
            with pytest.raises(LabelCountMismatchError):
                _classifier(store)
        mock_close.assert_called_once()

    def test_model_load_error_propagates(self) -> None:
        store = InMemoryStore(model=b"garbage")
        with pytest.raises(ModelLoadError):
            _classifier(store)

    def test_store_failure_propagates(self) -> None:
        store = MagicMock()
        store.read_model.side_effect = ModelLoadError("missing")
        with pytest.raises(ModelLoadError, match="missing"):
            _classifier(store)

    @pytest.mark.parametrize("max_results", [0, 21])
    def test_invalid_max_results(self, store: InMemoryStore, max_results: int) -> None:
        with pytest.raises(ValueError, match="max_results"):
            _classifier(store, max_results=max_results)


class TestClassify:
    def test_classify_path_returns_ranked_labels(self, store: InMemoryStore, png_path: Path) -> None:
        with _classifier(store) as classifier:
            results = classifier.classify(png_path)

        assert len(results) == len(BIRD_LABELS)
        assert {r.title for r in results} == set(BIRD_LABELS)
        confidences = [r.confidence for r in results]
        assert confidences == sorted(confidences, reverse=True)
        assert sum(confidences) == pytest.approx(1.0, abs=1e-5)
        for r in results:
            assert BIRD_LABELS[int(r.id)] == r.title

    def test_max_results_limits_output(self, store: InMemoryStore, png_path: Path) -> None:
        with _classifier(store, max_results=2) as classifier:
            assert len(classifier.classify(png_path)) == 2

    def test_identical_inputs_give_identical_results(self, store: InMemoryStore, png_path: Path) -> None:
        with _classifier(store) as first, _classifier(store) as second:
            a = first.classify(png_path)
            b = second.classify(png_path)
        assert [(r.id, r.confidence) for r in a] == [(r.id, r.confidence) for r in b]

    def test_classify_image_matches_classify(self, store: InMemoryStore, png_path: Path) -> None:
        with _classifier(store) as classifier:
            assert classifier.classify(png_path) == classifier.classify_image(load_image(png_path))

    def test_response_payload(self, store: InMemoryStore, png_path: Path) -> None:
        with _classifier(store) as classifier:
            payload = to_response(classifier.classify(png_path))
        assert len(payload["id"]) == len(payload["probabilities"]) == len(BIRD_LABELS)
        assert sorted(payload["id"]) == list(range(len(BIRD_LABELS)))

    def test_bad_image_leaves_classifier_open(self, store: InMemoryStore, tmp_path: Path, png_path: Path) -> None:
        broken = tmp_path / "broken.jpg"
        broken.write_bytes(b"\xff\xd8 not really a jpeg")
        with _classifier(store) as classifier:
            with pytest.raises(ImageLoadError):
                classifier.classify(broken)
            assert classifier.state is ClassifierState.OPEN
            assert classifier.classify(png_path)

    @pytest.mark.parametrize(
        "error",
        [InferenceError("transient runtime failure"), ShapeMismatchError("input does not match model")],
        ids=["inference", "shape"],
    )
    def test_failed_forward_pass_leaves_classifier_open(
        self, store: InMemoryStore, png_path: Path, error: Exception
    ) -> None:
        with _classifier(store) as classifier:
            expected = classifier.classify(png_path)
            with patch.object(classifier._session, "run", side_effect=error):
                with pytest.raises(type(error)):
                    classifier.classify(png_path)
            assert classifier.state is ClassifierState.OPEN
            assert classifier.classify(png_path) == expected

    def test_orientation_hook_rotates_before_crop(self, store: InMemoryStore) -> None:
        orientation = MagicMock(return_value=90)
        image = np.zeros((10, 40, 3), dtype=np.uint8)
        with _classifier(store, orientation=orientation) as classifier:
            with patch("aibirdie.ml.classifier.preprocess", wraps=preprocess) as spy:
                classifier.classify_image(image)
        orientation.assert_called_once_with()
        assert spy.call_args.args[0].shape == (40, 10, 3)


class TestLifecycle:
    def test_classify_after_close_fails(self, store: InMemoryStore, png_path: Path) -> None:
        classifier = _classifier(store)
        classifier.close()
        assert classifier.state is ClassifierState.CLOSED
        with pytest.raises(SessionClosedError):
            classifier.classify(png_path)
        with pytest.raises(SessionClosedError):
            classifier.classify_image(np.zeros((4, 4, 3), dtype=np.uint8))

    def test_close_twice_is_safe(self, store: InMemoryStore) -> None:
        classifier = _classifier(store)
        classifier.close()
        classifier.close()
        assert classifier.state is ClassifierState.CLOSED

    def test_context_manager_closes(self, store: InMemoryStore) -> None:
        with _classifier(store) as classifier:
            pass
        assert classifier.state is ClassifierState.CLOSED


class TestCreateClassifier:
    def test_builds_from_settings(self, tmp_path: Path) -> None:
        (tmp_path / "model-ENB4.onnx").write_bytes(make_classifier_model(height=16, width=16))
        (tmp_path / "labels-ENB4.txt").write_text("\n".join(BIRD_LABELS) + "\n", encoding="utf-8")
        image_path = tmp_path / "photo.png"
        image_path.write_bytes(make_png(1024, 768))
        settings = Settings(models_dir=str(tmp_path), max_results=3, num_threads=2)

        with create_classifier(settings) as classifier:
            assert classifier.variant.name == "efficientnet_b4"
            assert classifier.input_width == 16
            results = classifier.classify(image_path)

        assert len(results) == 3

    def test_missing_assets_fail_construction(self, tmp_path: Path) -> None:
        with pytest.raises(ModelLoadError):
            create_classifier(Settings(models_dir=str(tmp_path)))
