"""Audio conversion, windowing and file loading.

All functions work with 16kHz mono audio as PCM16 bytes or float32 numpy arrays.
"""

import io
from pathlib import Path

import numpy as np
import soundfile as sf
from loguru import logger

from offline_stt.constants import BYTES_PER_SAMPLE, N_SAMPLES, SAMPLE_RATE
from offline_stt.errors import FeatureError


def pcm16_to_float32(data: bytes) -> np.ndarray:
    """Convert PCM16 bytes to float32 array normalized to [-1, 1].

    Args:
        data: Raw PCM16 little-endian audio bytes.

    Returns:
        Float32 numpy array with values in [-1, 1].
    """
    audio = np.frombuffer(data, dtype="<i2").astype(np.float32)
    audio /= 32768.0
    return audio


def validate_audio_format(data: bytes) -> bool:
    """Check if audio data has valid PCM16 format.

    Args:
        data: Raw audio bytes to validate.

    Returns:
        True if data length is even (valid PCM16), False otherwise.
    """
    return len(data) % BYTES_PER_SAMPLE == 0


def samples_to_seconds(num_samples: int) -> float:
    """Convert sample count to seconds at the model sample rate."""
    return num_samples / SAMPLE_RATE


def fit_to_window(samples: np.ndarray, size: int = N_SAMPLES) -> np.ndarray:
    """Build the fixed audio window the model expects.

    Copies ``min(len(samples), size)`` samples into a zero buffer of exactly
    ``size`` samples, left-aligned. Short audio is zero-padded on the right,
    long audio is truncated. The input array is never modified.

    Args:
        samples: 1-D float audio.
        size: Window length in samples.

    Returns:
        New float32 array of length ``size``.
    """
    window = np.zeros(size, dtype=np.float32)
    count = min(len(samples), size)
    window[:count] = samples[:count]
    return window


def _to_mono(data: np.ndarray) -> np.ndarray:
    """Average all channels of a (frames, channels) array."""
    if data.shape[1] == 1:
        return data[:, 0]
    return data.mean(axis=1, dtype=np.float32)


def load_audio_file(path: str | Path) -> np.ndarray:
    """Decode an audio file into a mono float32 waveform.

    Any container libsndfile understands (WAV, FLAC, OGG) is accepted.
    Multi-channel audio is averaged down to mono.

    Args:
        path: Path to the audio file.

    Returns:
        Float32 numpy array at SAMPLE_RATE.

    Raises:
        FeatureError: If the file cannot be read or is not 16kHz.
    """
    path = Path(path)
    try:
        data, sample_rate = sf.read(path, dtype="float32", always_2d=True)
    except (OSError, RuntimeError, TypeError) as e:
        # LibsndfileError derives from RuntimeError; headerless RAW (.raw) raises TypeError
        raise FeatureError(
            f"Cannot decode audio file: {path}", context={"path": str(path)}
        ) from e

    return _checked_waveform(data, sample_rate, source=str(path))


def decode_audio_bytes(data: bytes) -> np.ndarray:
    """Decode an in-memory audio container (e.g. an uploaded WAV) to mono float32."""
    try:
        audio, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    except (OSError, RuntimeError, TypeError) as e:
        raise FeatureError(
            "Cannot decode audio payload", context={"bytes": len(data)}
        ) from e

    return _checked_waveform(audio, sample_rate, source="<memory>")


def _checked_waveform(data: np.ndarray, sample_rate: int, source: str) -> np.ndarray:
    if sample_rate != SAMPLE_RATE:
        raise FeatureError(
            f"Unsupported sample rate {sample_rate} Hz (expected {SAMPLE_RATE} Hz)",
            context={"source": source, "sample_rate": sample_rate},
        )

    samples = _to_mono(data)
    logger.debug(
        f"Decoded {source}: {data.shape[1]} channel(s), "
        f"{samples_to_seconds(len(samples)):.2f}s"
    )
    return samples
