"""Engine lifecycle: runtime acquisition, model + vocabulary loading, teardown.

Bring-up happens in two stages on a background worker:

    UNINITIALIZED --initialize()--> RUNTIME_ACQUIRING --> MODEL_LOADING --> READY

Any stage can end in FAILED, which stays until the next initialize().
Callers observe completion through the returned future, ``wait_ready()`` or
``is_ready()``; initialize() itself never blocks.

Two locks guard the engine:

- ``_state_lock`` protects state, session, vocabulary and generation, which
  always change together.
- ``_run_lock`` serializes inference runs and teardown, since the native
  session is not reentrant.
"""

import enum
import os
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

from offline_stt.engine.protocol import Runtime, Session
from offline_stt.errors import LoadError, NotReadyError, SpeechError
from offline_stt.vocab import Vocabulary, load_vocabulary


class EngineState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    RUNTIME_ACQUIRING = "runtime_acquiring"
    MODEL_LOADING = "model_loading"
    READY = "ready"
    FAILED = "failed"


_IN_FLIGHT = (EngineState.RUNTIME_ACQUIRING, EngineState.MODEL_LOADING)


class _Superseded(Exception):
    """The bring-up was cancelled by deinitialize() while it ran."""


class EngineLifecycle:
    """Owns the inference session and vocabulary for one engine instance."""

    def __init__(
        self,
        runtime_factory: Callable[[], Runtime],
        num_threads: int | None = None,
    ):
        """Initialize the lifecycle.

        Args:
            runtime_factory: Acquires the inference runtime. Called on the
                background worker, may block.
            num_threads: Threads handed to the runtime when opening a model.
                Defaults to the CPU count.
        """
        self._runtime_factory = runtime_factory
        self._num_threads = max(1, num_threads or os.cpu_count() or 1)

        self._state_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="engine-init")

        self._state = EngineState.UNINITIALIZED
        self._session: Session | None = None
        self._vocabulary: Vocabulary | None = None
        self._runtime: Runtime | None = None
        self._generation = 0
        self._pending: Future | None = None
        self._last_error: SpeechError | None = None

    @property
    def state(self) -> EngineState:
        with self._state_lock:
            return self._state

    @property
    def vocabulary(self) -> Vocabulary | None:
        """The loaded vocabulary, or None unless READY."""
        with self._state_lock:
            return self._vocabulary

    @property
    def last_error(self) -> SpeechError | None:
        """Why the last bring-up or session failed, if it did."""
        with self._state_lock:
            return self._last_error

    def is_ready(self) -> bool:
        with self._state_lock:
            return self._state is EngineState.READY

    def initialize(
        self, model_path: str | Path, vocab_path: str | Path, multilingual: bool
    ) -> "Future[EngineState]":
        """Start bringing the engine up without blocking.

        From UNINITIALIZED or FAILED this schedules a new bring-up. While a
        bring-up is in flight the same future is returned, so at most one
        runtime acquisition runs per instance. When already READY a resolved
        future is returned and nothing is reloaded.

        Returns:
            Future resolving to the state the attempt settled in
            (READY, FAILED, or UNINITIALIZED if torn down meanwhile).
        """
        with self._state_lock:
            if self._state in _IN_FLIGHT and self._pending is not None:
                logger.debug("initialize() joined the in-flight bring-up")
                return self._pending

            if self._state is EngineState.READY:
                done: Future = Future()
                done.set_result(EngineState.READY)
                return done

            self._generation += 1
            generation = self._generation
            self._state = EngineState.RUNTIME_ACQUIRING
            self._last_error = None
            pending: Future = Future()
            self._pending = pending

        logger.info(f"Engine initializing: model={model_path}, vocab={vocab_path}")
        try:
            self._executor.submit(
                self._bring_up,
                generation,
                pending,
                Path(model_path),
                Path(vocab_path),
                multilingual,
            )
        except RuntimeError as e:
            # the worker is gone after shutdown()
            error = LoadError("Engine lifecycle is shut down")
            error.__cause__ = e
            logger.error(f"Engine initialization failed: {error.message}")
            self._fail(generation, error)
            pending.set_result(self.state)
        return pending

    def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait for the in-flight bring-up to settle.

        Returns:
            True if the engine is READY afterwards.
        """
        with self._state_lock:
            pending = self._pending
        if pending is not None:
            try:
                pending.result(timeout=timeout)
            except FutureTimeoutError:
                return False
        return self.is_ready()

    def add_done_callback(self, callback: Callable[[EngineState], None]) -> None:
        """Notify ``callback`` with the settled state of the current bring-up."""
        with self._state_lock:
            pending = self._pending
            state = self._state
        if pending is None or pending.done():
            callback(state)
            return
        pending.add_done_callback(lambda f: callback(f.result()))

    def deinitialize(self) -> None:
        """Release the session and return to UNINITIALIZED.

        Safe from any state. New runs fail with NotReadyError as soon as this
        starts; an in-flight run finishes before the session is closed. An
        in-flight bring-up is superseded and discards what it opened.
        """
        with self._state_lock:
            if self._state is EngineState.UNINITIALIZED and self._session is None:
                return
            self._generation += 1
            session = self._session
            self._session = None
            self._vocabulary = None
            self._state = EngineState.UNINITIALIZED

        if session is not None:
            with self._run_lock:
                session.close()
        logger.info("Engine de-initialized")

    def shutdown(self) -> None:
        """Deinitialize and stop the background worker."""
        self.deinitialize()
        self._executor.shutdown(wait=True)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Hold the engine for one run.

        Runs are serialized; later callers block until the current one
        finishes.

        Raises:
            NotReadyError: If the engine is not READY when the run starts.
        """
        with self._run_lock:
            with self._state_lock:
                if self._state is not EngineState.READY or self._session is None:
                    raise NotReadyError(
                        f"Engine not ready (state={self._state.value})",
                        context={"state": self._state.value},
                    )
                session = self._session
            yield session

    def invalidate(self, session: Session, error: SpeechError) -> None:
        """Drop a session the engine reported as unusable.

        Must be called from inside ``session()`` by the holder of the run.
        """
        with self._state_lock:
            if self._session is not session:
                return
            self._session = None
            self._vocabulary = None
            self._state = EngineState.FAILED
            self._last_error = error
        session.close()
        logger.error(f"Engine session invalidated: {error.message}")

    def _bring_up(
        self,
        generation: int,
        pending: Future,
        model_path: Path,
        vocab_path: Path,
        multilingual: bool,
    ) -> None:
        session: Session | None = None
        try:
            runtime = self._runtime
            if runtime is None:
                try:
                    runtime = self._runtime_factory()
                except Exception as e:
                    raise LoadError("Inference runtime unavailable") from e
            self._advance(generation, EngineState.MODEL_LOADING, runtime=runtime)
            logger.info("Inference runtime ready, loading model")

            try:
                model = model_path.read_bytes()
            except OSError as e:
                raise LoadError(
                    f"Cannot read model file: {model_path}", context={"path": str(model_path)}
                ) from e

            try:
                session = runtime.open(model, self._num_threads)
            except Exception as e:
                raise LoadError(
                    f"Inference runtime rejected model: {model_path}",
                    context={"path": str(model_path)},
                ) from e
            logger.info(f"Model loaded: {model_path}")

            vocabulary = load_vocabulary(vocab_path, multilingual)
            self._publish(generation, session, vocabulary)
            session = None
            logger.info("Engine ready")
            pending.set_result(EngineState.READY)
        except _Superseded:
            logger.info("Engine bring-up superseded by deinitialize()")
            pending.set_result(self.state)
        except LoadError as e:
            logger.error(f"Engine initialization failed: {e.message}")
            self._fail(generation, e)
            pending.set_result(self.state)
        except Exception as e:
            logger.exception("Unexpected error during engine initialization")
            self._fail(generation, LoadError(f"Engine initialization failed: {e}"))
            pending.set_result(self.state)
        finally:
            if session is not None:
                session.close()

    def _advance(self, generation: int, state: EngineState, runtime: Runtime) -> None:
        with self._state_lock:
            if generation != self._generation:
                raise _Superseded()
            self._runtime = runtime
            self._state = state

    def _publish(self, generation: int, session: Session, vocabulary: Vocabulary) -> None:
        with self._state_lock:
            if generation != self._generation:
                raise _Superseded()
            self._session = session
            self._vocabulary = vocabulary
            self._state = EngineState.READY

    def _fail(self, generation: int, error: LoadError) -> None:
        with self._state_lock:
            if generation != self._generation:
                return
            self._state = EngineState.FAILED
            self._last_error = error
