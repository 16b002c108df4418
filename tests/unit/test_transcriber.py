"""Unit tests for the transcription pipeline facade."""

import numpy as np
import pytest
import soundfile as sf

from offline_stt import transcriber as transcriber_module
from offline_stt.config import Settings
from offline_stt.constants import SAMPLE_RATE
from offline_stt.errors import FeatureError, InferenceError, NotReadyError
from offline_stt.features import FeatureExtractor
from offline_stt.lifecycle import EngineState
from offline_stt.transcriber import Transcriber

# multilingual layout
SOT, TRANSCRIBE, EOT = 50258, 50359, 50257


@pytest.fixture
def speech() -> np.ndarray:
    t = np.arange(SAMPLE_RATE) / SAMPLE_RATE
    return (0.3 * np.sin(2 * np.pi * 220.0 * t)).astype(np.float32)


@pytest.fixture
def transcriber(ready_lifecycle, runtime):
    runtime.tokens = [SOT, TRANSCRIBE, 9, 9, EOT, 42]
    return Transcriber(lifecycle=ready_lifecycle, num_workers=2)


class TestTranscribeBuffer:
    """Tests for in-memory transcription."""

    def test_transcribe(self, transcriber, speech):
        result = transcriber.transcribe_buffer(speech)

        assert result.ok
        assert result.text == " w9 w9"
        assert result.anomalies == []
        assert result.latency_ms >= 0

    def test_empty_transcript_is_success(self, transcriber, runtime, speech):
        runtime.tokens = [EOT]
        result = transcriber.transcribe_buffer(speech)

        assert result.ok
        assert result.text == ""

    def test_silence_and_empty_input(self, transcriber):
        """Any length is accepted, zero included."""
        assert transcriber.transcribe_buffer(np.zeros(0, dtype=np.float32)).ok
        assert transcriber.transcribe_buffer(np.zeros(SAMPLE_RATE * 45, dtype=np.float32)).ok

    def test_anomalies_reported(self, transcriber, runtime, speech):
        runtime.tokens = [1, 999_999, 2, EOT]
        result = transcriber.transcribe_buffer(speech)

        assert result.ok
        assert result.text == " w1 w2"
        assert [a.token for a in result.anomalies] == [999_999]

    def test_not_ready(self, runtime, speech):
        transcriber = Transcriber(runtime_factory=lambda: runtime)
        result = transcriber.transcribe_buffer(speech)

        assert not result.ok
        assert isinstance(result.error, NotReadyError)
        assert result.text == ""
        assert runtime.call_count == 0
        transcriber.lifecycle.shutdown()

    def test_after_deinitialize(self, transcriber, speech):
        transcriber.deinitialize()
        result = transcriber.transcribe_buffer(speech)

        assert isinstance(result.error, NotReadyError)
        assert transcriber.state is EngineState.UNINITIALIZED

    def test_bad_samples(self, transcriber):
        result = transcriber.transcribe_buffer(np.zeros((2, 10), dtype=np.float32))
        assert isinstance(result.error, FeatureError)

    def test_inference_failure(self, transcriber, runtime, speech):
        runtime.error = RuntimeError("interpreter crashed")
        result = transcriber.transcribe_buffer(speech)

        assert isinstance(result.error, InferenceError)
        assert transcriber.is_ready()

    def test_reinitialized_during_extraction(
        self, transcriber, ready_lifecycle, runtime, model_path, vocab_path, speech, monkeypatch
    ):
        """Tokens are never decoded against a vocabulary swapped in mid-call."""

        class SwappingExtractor(FeatureExtractor):
            def extract(self, samples):
                ready_lifecycle.deinitialize()
                ready_lifecycle.initialize(model_path, vocab_path, False).result(timeout=5.0)
                return super().extract(samples)

        monkeypatch.setattr(transcriber_module, "FeatureExtractor", SwappingExtractor)
        result = transcriber.transcribe_buffer(speech)

        assert isinstance(result.error, NotReadyError)
        assert result.text == ""
        assert runtime.call_count == 0
        assert transcriber.is_ready()


class TestTranscribeFile:
    """Tests for file transcription."""

    def test_transcribe_wav(self, transcriber, speech, tmp_path):
        path = tmp_path / "speech.wav"
        sf.write(path, speech, SAMPLE_RATE, subtype="PCM_16")

        result = transcriber.transcribe_file(path)
        assert result.ok
        assert result.text == " w9 w9"

    def test_wrong_sample_rate(self, transcriber, speech, tmp_path):
        path = tmp_path / "speech_8k.wav"
        sf.write(path, speech, 8000)

        result = transcriber.transcribe_file(path)
        assert isinstance(result.error, FeatureError)

    def test_missing_file(self, transcriber, tmp_path):
        result = transcriber.transcribe_file(tmp_path / "missing.wav")
        assert isinstance(result.error, FeatureError)

    def test_headerless_raw_file(self, transcriber, runtime, tmp_path):
        """A .raw file is reported in the result, never raised."""
        path = tmp_path / "clip.raw"
        path.write_bytes(bytes(3200))

        result = transcriber.transcribe_file(path)
        assert isinstance(result.error, FeatureError)
        assert runtime.call_count == 0


class TestLifecycleFacade:
    """The transcriber drives its own lifecycle when none is given."""

    def test_initialize_and_transcribe(self, runtime, model_path, vocab_path, speech):
        runtime.tokens = [4, 5, EOT]
        transcriber = Transcriber(runtime_factory=lambda: runtime, num_threads=1)

        assert transcriber.initialize(model_path, vocab_path, True).result(timeout=5.0) is (
            EngineState.READY
        )
        assert transcriber.wait_ready(timeout=1.0)
        assert transcriber.transcribe_buffer(speech).text == " w4 w5"

        transcriber.deinitialize()
        assert not transcriber.is_ready()
        transcriber.lifecycle.shutdown()

    def test_from_settings(self):
        settings = Settings(num_threads=3)
        transcriber = Transcriber.from_settings(settings)

        assert transcriber.state is EngineState.UNINITIALIZED
        transcriber.lifecycle.shutdown()
