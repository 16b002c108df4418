"""ONNX Runtime engine for end-to-end Whisper exports.

Expects a model that takes the log-mel spectrogram as its first input and
returns generated token IDs as its first output (e.g. a Whisper export with
the decoder loop folded into the graph). onnxruntime is imported lazily so
the rest of the package works without it.
"""

import numpy as np
from loguru import logger

from offline_stt.constants import N_FRAMES


class OnnxSession:
    """Adapts an ``onnxruntime.InferenceSession`` to the index-keyed protocol."""

    def __init__(self, session, input_shape: tuple[int, ...] = (1, -1, N_FRAMES)):
        """Wrap an opened session.

        Args:
            session: An onnxruntime InferenceSession.
            input_shape: Shape the flat float32 input 0 is reshaped to. The
                mel axis is inferred, so it follows the filter bank.
        """
        self._session = session
        self._input_shape = input_shape
        self._input_names = [i.name for i in session.get_inputs()]
        self._output_names = [o.name for o in session.get_outputs()]

    @property
    def input_names(self) -> list[str]:
        return self._input_names

    @property
    def output_names(self) -> list[str]:
        return self._output_names

    def run(self, inputs: dict[int, bytes], outputs: dict[int, bytearray]) -> None:
        if self._session is None:
            raise RuntimeError("ONNX session is closed")

        feed = {}
        for index, data in inputs.items():
            array = np.frombuffer(data, dtype="=f4")
            if index == 0:
                array = array.reshape(self._input_shape)
            feed[self._input_names[index]] = array

        names = [self._output_names[index] for index in sorted(outputs)]
        results = self._session.run(names, feed)

        for index, result in zip(sorted(outputs), results):
            tokens = np.asarray(result).astype("=i4").ravel().tobytes()
            buffer = outputs[index]
            written = min(len(tokens), len(buffer))
            buffer[:written] = tokens[:written]
            # signal the real length by shrinking the buffer
            del buffer[written:]

    def close(self) -> None:
        self._session = None


class OnnxRuntime:
    """Runtime that opens models with onnxruntime on CPU."""

    def __init__(self, providers: list[str] | None = None):
        """Acquire onnxruntime.

        Args:
            providers: Execution providers, defaults to CPU only.
        """
        import onnxruntime as ort

        self._ort = ort
        self._providers = providers or ["CPUExecutionProvider"]
        logger.info(f"onnxruntime {ort.__version__} acquired, providers={self._providers}")

    def open(self, model: bytes, num_threads: int) -> OnnxSession:
        options = self._ort.SessionOptions()
        options.intra_op_num_threads = num_threads
        options.inter_op_num_threads = 1
        session = self._ort.InferenceSession(
            model, sess_options=options, providers=self._providers
        )
        logger.info(
            f"ONNX model opened: inputs={[i.name for i in session.get_inputs()]}, "
            f"outputs={[o.name for o in session.get_outputs()]}, threads={num_threads}"
        )
        return OnnxSession(session)
