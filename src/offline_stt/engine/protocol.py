"""Engine protocol defining the interface for inference backends.

This is the "sealed boundary" that isolates the native runtime from the rest
of the system (lifecycle, orchestration, tests). Buffers cross it as raw
native-endian bytes keyed by tensor index.
"""

from typing import Protocol


class SessionInvalidatedError(RuntimeError):
    """Raised by a session whose native state is no longer usable.

    Ordinary failures leave the session usable; this one tells the lifecycle
    to drop the session and re-initialize.
    """


class Session(Protocol):
    """An opened model, ready to run."""

    def run(self, inputs: dict[int, bytes], outputs: dict[int, bytearray]) -> None:
        """Run the model once, synchronously.

        Args:
            inputs: Input tensors by index. Index 0 is the flattened mel
                feature buffer as native-endian float32.
            outputs: Preallocated output buffers by index. Index 0 receives
                native-endian int32 tokens. An engine that stops early may
                shrink the buffer to the bytes it actually wrote.
        """
        ...

    def close(self) -> None:
        """Release native resources. Safe to call once."""
        ...


class Runtime(Protocol):
    """An acquired inference runtime that can open models."""

    def open(self, model: bytes, num_threads: int) -> Session:
        """Open a model from its serialized bytes.

        Args:
            model: Serialized model file contents.
            num_threads: CPU threads the runtime may use.

        Returns:
            An opened session.
        """
        ...
