"""Offline speech-to-text package."""

from offline_stt.constants import (
    MAX_DECODER_TOKENS,
    N_FRAMES,
    N_MEL,
    N_SAMPLES,
    SAMPLE_RATE,
)
from offline_stt.lifecycle import EngineState
from offline_stt.transcriber import Transcriber, TranscriptionResult

__all__ = [
    "SAMPLE_RATE",
    "N_SAMPLES",
    "N_MEL",
    "N_FRAMES",
    "MAX_DECODER_TOKENS",
    "EngineState",
    "Transcriber",
    "TranscriptionResult",
]
