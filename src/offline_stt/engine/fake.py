"""Fake engine for CPU-based testing.

Returns a scripted token stream, allowing reliable unit tests of the
lifecycle, orchestration and decoding without a model file.
"""

import threading
import time

import numpy as np


class FakeSession:
    """Session that writes scripted tokens into output 0."""

    def __init__(self, runtime: "FakeRuntime", model: bytes, num_threads: int):
        self._runtime = runtime
        self.model = model
        self.num_threads = num_threads
        self.closed = False

    def run(self, inputs: dict[int, bytes], outputs: dict[int, bytearray]) -> None:
        runtime = self._runtime
        with runtime._stats_lock:
            runtime._active_runs += 1
            runtime._max_concurrent_runs = max(
                runtime._max_concurrent_runs, runtime._active_runs
            )
            runtime._call_count += 1
            runtime.last_input = inputs.get(0)

        try:
            if runtime.latency_ms > 0:
                time.sleep(runtime.latency_ms / 1000.0)
            if runtime.error is not None:
                raise runtime.error

            data = np.asarray(runtime.tokens, dtype="=i4").tobytes()
            buffer = outputs[0]
            written = min(len(data), len(buffer))
            buffer[:written] = data[:written]
            if runtime.shrink_output:
                del buffer[written:]
        finally:
            with runtime._stats_lock:
                runtime._active_runs -= 1

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        with self._runtime._stats_lock:
            self._runtime._live_sessions -= 1


class FakeRuntime:
    """Deterministic runtime for testing.

    Counts opened/live sessions and concurrent runs so tests can check the
    lifecycle and serialization guarantees.
    """

    def __init__(
        self,
        tokens: list[int] | None = None,
        latency_ms: float = 0.0,
        shrink_output: bool = True,
        error: Exception | None = None,
        open_error: Exception | None = None,
    ):
        """Initialize the fake runtime.

        Args:
            tokens: Token stream each run writes to output 0.
            latency_ms: Simulated inference latency in milliseconds.
            shrink_output: Truncate the output buffer to the tokens written.
                When False the remainder of the buffer is left as zeros.
            error: Exception raised by every run.
            open_error: Exception raised by open().
        """
        self.tokens = list(tokens or [])
        self.latency_ms = latency_ms
        self.shrink_output = shrink_output
        self.error = error
        self.open_error = open_error
        self.last_input: bytes | None = None
        self.sessions: list[FakeSession] = []

        self._stats_lock = threading.Lock()
        self._call_count = 0
        self._active_runs = 0
        self._max_concurrent_runs = 0
        self._live_sessions = 0
        self._max_live_sessions = 0

    def open(self, model: bytes, num_threads: int) -> FakeSession:
        if self.open_error is not None:
            raise self.open_error
        session = FakeSession(self, model, num_threads)
        with self._stats_lock:
            self._live_sessions += 1
            self._max_live_sessions = max(self._max_live_sessions, self._live_sessions)
            self.sessions.append(session)
        return session

    @property
    def call_count(self) -> int:
        """Number of session runs made."""
        return self._call_count

    @property
    def max_concurrent_runs(self) -> int:
        """Highest number of runs observed in flight at once."""
        return self._max_concurrent_runs

    @property
    def live_sessions(self) -> int:
        return self._live_sessions

    @property
    def max_live_sessions(self) -> int:
        """Highest number of simultaneously open sessions."""
        return self._max_live_sessions

