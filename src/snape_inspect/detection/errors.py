"""Error taxonomy for the on-device detection pipeline."""


class DetectionError(RuntimeError):
    """Base class for detection pipeline failures."""


class ModelLoadError(DetectionError):
    """The runtime or the model could not be loaded.

    Not retried automatically; callers may invoke the loader again.
    """


class InferenceShapeError(DetectionError):
    """The runtime output cannot be coerced to the expected [1, C, A] shape."""


class SuppressionError(DetectionError):
    """Non-max suppression failed; callers fall back to the unsuppressed list."""
