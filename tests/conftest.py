"""Shared fixtures: synthetic vocabulary files and ready engines."""

from pathlib import Path

import numpy as np
import pytest
from loguru import logger

from offline_stt.constants import N_MEL, VOCAB_MAGIC
from offline_stt.engine.fake import FakeRuntime
from offline_stt.lifecycle import EngineLifecycle

N_FFT_BINS = 201
N_TEST_WORDS = 100


def build_filters(n_mel: int = N_MEL, n_fft: int = N_FFT_BINS) -> np.ndarray:
    """Non-overlapping rectangular bands, enough to exercise the mel projection."""
    filters = np.zeros((n_mel, n_fft), dtype=np.float32)
    for j in range(n_mel):
        filters[j, 2 * j : 2 * j + 3] = 1.0 / 3.0
    return filters


def build_vocab_bytes(
    words: list[bytes] | None = None,
    filters: np.ndarray | None = None,
    magic: int = VOCAB_MAGIC,
) -> bytes:
    if words is None:
        words = [f" w{i}".encode() for i in range(N_TEST_WORDS)]
    if filters is None:
        filters = build_filters()

    parts = [np.array([magic, filters.shape[0], filters.shape[1]], dtype="=u4").tobytes()]
    parts.append(filters.astype("=f4").tobytes())
    parts.append(np.array([len(words)], dtype="=i4").tobytes())
    for word in words:
        parts.append(np.array([len(word)], dtype="=i4").tobytes())
        parts.append(word)
    return b"".join(parts)


@pytest.fixture(autouse=True)
def reset_log_sinks():
    """Drop sinks added by configure_logging() so they don't outlive the test's stderr."""
    yield
    logger.remove()


@pytest.fixture
def make_vocab_file(tmp_path: Path):
    """Factory writing a vocabulary file and returning its path."""

    def _make(name: str = "vocab.bin", **kwargs) -> Path:
        path = tmp_path / name
        path.write_bytes(build_vocab_bytes(**kwargs))
        return path

    return _make


@pytest.fixture
def vocab_path(make_vocab_file) -> Path:
    return make_vocab_file()


@pytest.fixture
def model_path(tmp_path: Path) -> Path:
    path = tmp_path / "model.onnx"
    path.write_bytes(b"fake-model-bytes")
    return path


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def ready_lifecycle(runtime, model_path, vocab_path):
    """A lifecycle brought up on the fake runtime (multilingual layout)."""
    lifecycle = EngineLifecycle(lambda: runtime, num_threads=2)
    lifecycle.initialize(model_path, vocab_path, multilingual=True)
    assert lifecycle.wait_ready(timeout=5.0)
    yield lifecycle
    lifecycle.shutdown()


@pytest.fixture
def make_filters():
    """Factory for synthetic filter banks."""
    return build_filters
