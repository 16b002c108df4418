"""Exception taxonomy for the transcription pipeline.

Every stage raises one of these; the Transcriber turns them into a
TranscriptionResult instead of letting them escape.
"""

from dataclasses import dataclass
from typing import Any


class SpeechError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        """Initialize the error.

        Args:
            message: Technical error message for logging.
            context: Additional details (paths, states, shapes).
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class LoadError(SpeechError):
    """Vocabulary/filter-bank or model resource is missing or corrupt."""


class FeatureError(SpeechError):
    """Audio could not be decoded, or features requested before load."""


class NotReadyError(SpeechError):
    """Pipeline invoked while the engine lifecycle is not READY."""


class InferenceError(SpeechError):
    """Inference engine failed or produced an unusable output."""


@dataclass(frozen=True)
class DecodeAnomaly:
    """A non-fatal oddity found while decoding (logged and skipped)."""

    position: int
    token: int
    reason: str
