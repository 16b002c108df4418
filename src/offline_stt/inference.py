"""Inference orchestration: pack features, run the engine, collect tokens."""

import time
from dataclasses import dataclass

import numpy as np
from loguru import logger

from offline_stt.constants import MAX_DECODER_TOKENS, TOKEN_BYTES
from offline_stt.engine.protocol import SessionInvalidatedError
from offline_stt.errors import InferenceError, NotReadyError
from offline_stt.lifecycle import EngineLifecycle
from offline_stt.vocab import Vocabulary

_TOKEN_DTYPE = np.dtype("=i4")


@dataclass(frozen=True)
class RawTokenBuffer:
    """Tokens the engine wrote, in order."""

    tokens: np.ndarray
    capacity: int = MAX_DECODER_TOKENS

    @property
    def count(self) -> int:
        return len(self.tokens)


def pack_features(features: np.ndarray) -> bytes:
    """Flatten a (n_mel, n_frames) buffer to native-endian float32 bytes, row-major."""
    return np.ascontiguousarray(features, dtype=np.float32).tobytes()


def unpack_tokens(buffer: bytearray | bytes, capacity: int = MAX_DECODER_TOKENS) -> np.ndarray:
    """Read whole int32 tokens from an output buffer.

    A trailing partial token is the natural end of output, not an error.
    """
    count = min(len(buffer) // TOKEN_BYTES, capacity)
    return np.frombuffer(bytes(buffer[: count * TOKEN_BYTES]), dtype=_TOKEN_DTYPE).copy()


class InferenceOrchestrator:
    """Runs one feature buffer through the engine held by a lifecycle."""

    def __init__(self, lifecycle: EngineLifecycle, max_tokens: int = MAX_DECODER_TOKENS):
        self._lifecycle = lifecycle
        self._max_tokens = max_tokens

    def run(
        self, features: np.ndarray, vocabulary: Vocabulary | None = None
    ) -> RawTokenBuffer:
        """Run inference on a mel feature buffer.

        Blocks while another run holds the engine, then for the duration of
        the engine call.

        Args:
            features: Mel feature buffer.
            vocabulary: The vocabulary whose filter bank produced ``features``.
                If given, it must still be the loaded one when the run starts.

        Raises:
            NotReadyError: If the engine is not READY, or was re-initialized
                since ``vocabulary`` was read. The engine is not touched.
            InferenceError: If the engine fails or returns an unusable output.
        """
        with self._lifecycle.session() as session:
            if vocabulary is not None and self._lifecycle.vocabulary is not vocabulary:
                raise NotReadyError("Engine was re-initialized during the call")

            inputs = {0: pack_features(features)}
            output = bytearray(self._max_tokens * TOKEN_BYTES)
            outputs = {0: output}

            start = time.perf_counter()
            try:
                session.run(inputs, outputs)
            except SessionInvalidatedError as e:
                error = InferenceError("Inference session invalidated", context={"cause": str(e)})
                self._lifecycle.invalidate(session, error)
                raise error from e
            except Exception as e:
                logger.exception("Error running inference")
                raise InferenceError(
                    "Inference execution failed", context={"cause": repr(e)}
                ) from e
            elapsed_ms = (time.perf_counter() - start) * 1000

            result = outputs.get(0)
            if not isinstance(result, (bytes, bytearray, memoryview)):
                raise InferenceError(
                    "Inference engine produced no usable token output",
                    context={"output_type": type(result).__name__},
                )
            if len(result) > self._max_tokens * TOKEN_BYTES:
                logger.warning(
                    f"Engine output exceeds {self._max_tokens} tokens; extra tokens dropped"
                )

        tokens = unpack_tokens(result, self._max_tokens)
        if len(tokens) < self._max_tokens:
            logger.debug(f"Engine output ended after {len(tokens)} tokens")
        logger.info(f"Inference completed in {elapsed_ms:.1f}ms, {len(tokens)} tokens")
        return RawTokenBuffer(tokens=tokens, capacity=self._max_tokens)
