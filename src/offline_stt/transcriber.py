"""Transcription pipeline facade.

waveform -> FeatureExtractor -> InferenceOrchestrator -> decoder -> text

Both entry points return a TranscriptionResult; pipeline errors are reported
in ``result.error`` instead of being raised.
"""

import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from loguru import logger

from offline_stt.audio import load_audio_file, samples_to_seconds
from offline_stt.config import Settings
from offline_stt.decoder import decode_tokens
from offline_stt.engine.protocol import Runtime
from offline_stt.errors import DecodeAnomaly, NotReadyError, SpeechError
from offline_stt.features import FeatureExtractor
from offline_stt.inference import InferenceOrchestrator
from offline_stt.lifecycle import EngineLifecycle, EngineState


@dataclass
class TranscriptionResult:
    """Result of a transcription call."""

    text: str
    latency_ms: float
    error: SpeechError | None = None
    anomalies: list[DecodeAnomaly] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


def _default_runtime() -> Runtime:
    from offline_stt.engine.onnx import OnnxRuntime

    return OnnxRuntime()


class Transcriber:
    """Offline speech-to-text over a single engine instance.

    Safe to call from many threads: feature extraction runs in parallel,
    inference runs one call at a time.
    """

    def __init__(
        self,
        lifecycle: EngineLifecycle | None = None,
        runtime_factory: Callable[[], Runtime] | None = None,
        num_threads: int | None = None,
        num_workers: int | None = None,
    ):
        """Initialize the transcriber.

        Args:
            lifecycle: Existing engine lifecycle to use.
            runtime_factory: Runtime factory for a new lifecycle, defaults to
                onnxruntime. Ignored when ``lifecycle`` is given.
            num_threads: Inference threads for a new lifecycle.
            num_workers: Feature extraction threads.
        """
        self._lifecycle = lifecycle or EngineLifecycle(
            runtime_factory or _default_runtime, num_threads=num_threads
        )
        self._orchestrator = InferenceOrchestrator(self._lifecycle)
        self._num_workers = num_workers

    @classmethod
    def from_settings(cls, settings: Settings) -> "Transcriber":
        return cls(num_threads=settings.num_threads, num_workers=settings.num_threads)

    @property
    def lifecycle(self) -> EngineLifecycle:
        return self._lifecycle

    @property
    def state(self) -> EngineState:
        return self._lifecycle.state

    def initialize(
        self, model_path: str | Path, vocab_path: str | Path, multilingual: bool
    ) -> "Future[EngineState]":
        return self._lifecycle.initialize(model_path, vocab_path, multilingual)

    def deinitialize(self) -> None:
        self._lifecycle.deinitialize()

    def is_ready(self) -> bool:
        return self._lifecycle.is_ready()

    def wait_ready(self, timeout: float | None = None) -> bool:
        return self._lifecycle.wait_ready(timeout)

    def transcribe_buffer(self, samples: np.ndarray) -> TranscriptionResult:
        """Transcribe an in-memory 16kHz mono waveform."""
        start = time.perf_counter()
        try:
            return self._run_pipeline(samples, start)
        except SpeechError as e:
            return self._failed(e, start)

    def transcribe_file(self, path: str | Path) -> TranscriptionResult:
        """Decode an audio file and transcribe it."""
        start = time.perf_counter()
        try:
            samples = load_audio_file(path)
            return self._run_pipeline(samples, start)
        except SpeechError as e:
            return self._failed(e, start)

    def _run_pipeline(self, samples: np.ndarray, start: float) -> TranscriptionResult:
        vocabulary = self._lifecycle.vocabulary
        if vocabulary is None or not self._lifecycle.is_ready():
            raise NotReadyError(
                f"Engine not ready (state={self._lifecycle.state.value})",
                context={"state": self._lifecycle.state.value},
            )

        features = FeatureExtractor(vocabulary.filters, self._num_workers).extract(samples)
        raw = self._orchestrator.run(features, vocabulary)
        decoded = decode_tokens(raw, vocabulary)

        latency_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Transcribed {samples_to_seconds(len(samples)):.2f}s of audio "
            f"in {latency_ms:.1f}ms: {len(decoded.text)} chars, "
            f"{len(decoded.anomalies)} anomalies"
        )
        return TranscriptionResult(
            text=decoded.text, latency_ms=latency_ms, anomalies=decoded.anomalies
        )

    @staticmethod
    def _failed(error: SpeechError, start: float) -> TranscriptionResult:
        logger.error(f"Transcription failed ({type(error).__name__}): {error.message}")
        return TranscriptionResult(
            text="", latency_ms=(time.perf_counter() - start) * 1000, error=error
        )
