"""Exception types raised by the classification pipeline."""

from __future__ import annotations


class ClassifierError(Exception):
    """Base class for all classification pipeline failures."""


class ModelLoadError(ClassifierError):
    """The model bytes are missing, unparsable, or have an unsupported signature."""


class LabelLoadError(ClassifierError):
    """The label file is missing, empty, or malformed."""


class AcceleratorError(ClassifierError):
    """A hardware accelerator was requested but could not be attached."""


class ShapeMismatchError(ClassifierError, ValueError):
    """An input tensor does not match the model's declared input signature."""


class LabelCountMismatchError(ClassifierError):
    """The label table length differs from the model's output class count."""


class ImageLoadError(ClassifierError):
    """An image could not be read or decoded."""


class SessionClosedError(ClassifierError):
    """An operation was attempted after the session or classifier was closed."""


class InferenceError(ClassifierError):
    """The forward pass failed inside the inference engine."""
