"""Log-mel feature extraction.

Turns a waveform into the fixed (n_mel, N_FRAMES) spectrogram the model was
trained on: 30s window, periodic Hann, 400-point FFT every 160 samples,
log10 mel energies clamped to 8 decades below the peak and rescaled.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np
from loguru import logger

from offline_stt.audio import fit_to_window, load_audio_file
from offline_stt.constants import HOP_LENGTH, N_FFT, N_SAMPLES
from offline_stt.errors import FeatureError
from offline_stt.vocab import FilterBank

_HANN = (0.5 * (1.0 - np.cos(2.0 * np.pi * np.arange(N_FFT) / N_FFT))).astype(np.float64)


def frame_count(n_samples: int = N_SAMPLES, hop_length: int = HOP_LENGTH) -> int:
    """Number of analysis frames for a window of ``n_samples``."""
    return n_samples // hop_length


class FeatureExtractor:
    """Computes mel feature buffers from waveforms.

    Stateless apart from the shared filter bank, so one instance can serve
    concurrent callers.
    """

    def __init__(self, filters: FilterBank | None, num_workers: int | None = None):
        """Initialize the extractor.

        Args:
            filters: Mel filter bank from the loaded vocabulary file, or None
                if it has not been loaded yet.
            num_workers: Threads used to process frame blocks. Defaults to the
                CPU count. Never changes the result.
        """
        self._filters = filters
        self._num_workers = max(1, num_workers or os.cpu_count() or 1)

    @property
    def num_workers(self) -> int:
        return self._num_workers

    def extract(self, samples: np.ndarray) -> np.ndarray:
        """Compute the log-mel feature buffer for a waveform.

        Args:
            samples: 1-D float waveform at SAMPLE_RATE, any length.

        Returns:
            Read-only float32 array of shape (n_mel, N_FRAMES).

        Raises:
            FeatureError: If the filter bank is unavailable or the samples are
                not a 1-D numeric buffer.
        """
        if self._filters is None:
            raise FeatureError("Filter bank not loaded; initialize the engine first")
        if self._filters.n_fft != N_FFT // 2 + 1:
            raise FeatureError(
                f"Filter bank has {self._filters.n_fft} bins, expected {N_FFT // 2 + 1}",
                context={"n_mel": self._filters.n_mel, "n_fft": self._filters.n_fft},
            )

        samples = np.asarray(samples)
        if samples.ndim != 1 or not np.issubdtype(samples.dtype, np.number):
            raise FeatureError(
                "Samples must be a 1-D numeric array",
                context={"shape": samples.shape, "dtype": str(samples.dtype)},
            )

        window = fit_to_window(samples)
        n_frames = frame_count(len(window))

        mel = np.empty((self._filters.n_mel, n_frames), dtype=np.float64)
        blocks = np.array_split(np.arange(n_frames), self._num_workers)
        blocks = [b for b in blocks if len(b)]

        if len(blocks) == 1:
            self._compute_block(window, blocks[0], mel)
        else:
            with ThreadPoolExecutor(max_workers=len(blocks)) as pool:
                # numpy releases the GIL inside FFT and matmul
                for future in [pool.submit(self._compute_block, window, b, mel) for b in blocks]:
                    future.result()

        features = self._normalize(mel)
        logger.debug(
            f"Extracted features {features.shape} from {len(samples)} samples "
            f"({self._num_workers} workers)"
        )
        return features

    def extract_file(self, path: str | Path) -> np.ndarray:
        """Decode an audio file and extract its features."""
        return self.extract(load_audio_file(path))

    def _compute_block(self, window: np.ndarray, frames: np.ndarray, out: np.ndarray) -> None:
        """Fill ``out[:, frames]`` with log10 mel energies."""
        n_fft_bins = self._filters.n_fft
        offsets = frames[:, None] * HOP_LENGTH + np.arange(N_FFT)[None, :]
        # frames near the end read past the window: those samples are zero
        valid = offsets < len(window)
        segment = np.where(valid, window[np.minimum(offsets, len(window) - 1)], 0.0)

        spectrum = np.fft.fft(segment * _HANN, n=N_FFT, axis=1)
        power = spectrum.real**2 + spectrum.imag**2
        # fold the mirrored half onto bins 1..N_FFT/2-1
        folded = power[:, :n_fft_bins].copy()
        half = N_FFT // 2
        folded[:, 1:half] += power[:, N_FFT - 1 : N_FFT - half : -1]

        energies = folded @ self._filters.data.T.astype(np.float64)
        out[:, frames] = np.log10(np.maximum(energies, 1e-10)).T

    @staticmethod
    def _normalize(mel: np.ndarray) -> np.ndarray:
        floor = mel.max() - 8.0
        mel = (np.maximum(mel, floor) + 4.0) / 4.0
        features = mel.astype(np.float32)
        features.setflags(write=False)
        return features
