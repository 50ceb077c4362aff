"""
Error taxonomy for the qualifying lap time models.

Input-level errors (``InvalidInput``, ``UnknownFeature``) are recoverable and
surfaced to the caller. Artifact-integrity errors (``MissingArtifact``,
``CorruptArtifact``) and ``TrainingDegeneracy`` are fatal to the process or
batch job that raised them.
"""

from pathlib import Path
from typing import Optional, Union


class QualifyingModelError(Exception):
    """Base class for all errors raised by the qualifying model package."""


class InvalidInput(QualifyingModelError):
    """A user-supplied feature vector is malformed or out of domain."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Invalid value for '{field}': {message}")


class UnknownFeature(QualifyingModelError):
    """A lookup referenced a feature outside the deployed feature set."""

    def __init__(self, feature: str, valid: Optional[list] = None):
        self.feature = feature
        self.valid = list(valid or [])
        message = f"Unknown feature: {feature!r}"
        if self.valid:
            message += f" (expected one of {self.valid})"
        super().__init__(message)


class MissingArtifact(QualifyingModelError):
    """An expected artifact file or entry is absent or unreadable."""

    def __init__(self, path: Union[str, Path], reason: str = "artifact not found"):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Missing artifact {self.path}: {reason}")


class CorruptArtifact(QualifyingModelError):
    """An artifact exists but cannot be deserialized or is incompatible."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Corrupt artifact {self.path}: {reason}")


class TrainingDegeneracy(QualifyingModelError):
    """The offline procedure hit an unusable partition or non-finite metric."""


class InvalidDataset(QualifyingModelError):
    """The observation dataset handed to the batch job is malformed."""
