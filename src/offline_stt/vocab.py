"""Vocabulary and mel filter-bank store.

Both live in one binary resource shipped with the pretrained model
(native-endian, 32-bit fields):

    int32   magic (0x5553454E, "USEN")
    int32   n_mel
    int32   n_fft
    float32 filters[n_mel * n_fft]
    int32   n_vocab
    n_vocab x (int32 length, bytes word)

The file only carries the ordinary BPE words. Control tokens live above them
and their IDs depend on whether the model is English-only or multilingual.
"""

import enum
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from loguru import logger

from offline_stt.constants import N_VOCAB_ENGLISH, N_VOCAB_MULTILINGUAL, VOCAB_MAGIC
from offline_stt.errors import LoadError

_INT32 = np.dtype("=i4")
_FLOAT32 = np.dtype("=f4")


@dataclass(frozen=True)
class SpecialTokens:
    """Control-token IDs for one vocabulary layout."""

    eot: int
    sot: int
    translate: int
    transcribe: int
    solm: int
    prev: int
    no_speech: int
    no_timestamps: int
    beg: int

    @classmethod
    def for_layout(cls, multilingual: bool) -> "SpecialTokens":
        """IDs used by English-only models, shifted by one for multilingual ones."""
        shift = 1 if multilingual else 0
        return cls(
            eot=50256 + shift,
            sot=50257 + shift,
            translate=50357 + shift,
            transcribe=50358 + shift,
            solm=50359 + shift,
            prev=50360 + shift,
            no_speech=50361 + shift,
            no_timestamps=50362 + shift,
            beg=50363 + shift,
        )


class TokenKind(enum.Enum):
    WORD = "word"
    EOT = "eot"
    TRANSCRIBE = "transcribe"
    TRANSLATE = "translate"
    LANGUAGE = "language"
    OTHER_SPECIAL = "other_special"

    @property
    def is_structural(self) -> bool:
        return self is not TokenKind.WORD


def classify(token: int, special: SpecialTokens) -> TokenKind:
    """Classify a token ID by range membership.

    Everything in ``[sot, no_speech]`` is structural and never reaches the
    transcript. EOT sits just below that range and ends decoding.
    """
    if token == special.eot:
        return TokenKind.EOT
    if token < special.sot or token > special.no_speech:
        return TokenKind.WORD
    if token == special.transcribe:
        return TokenKind.TRANSCRIBE
    if token == special.translate:
        return TokenKind.TRANSLATE
    if special.sot < token < special.translate:
        return TokenKind.LANGUAGE
    return TokenKind.OTHER_SPECIAL


@dataclass(frozen=True)
class FilterBank:
    """Mel filter-bank coefficients, shape (n_mel, n_fft)."""

    data: np.ndarray

    @property
    def n_mel(self) -> int:
        return self.data.shape[0]

    @property
    def n_fft(self) -> int:
        return self.data.shape[1]


class Vocabulary:
    """Read-only token table plus the filter bank it was shipped with."""

    def __init__(
        self,
        words: list[bytes],
        filters: FilterBank,
        multilingual: bool,
    ):
        self._words = words
        self._filters = filters
        self._multilingual = multilingual
        self._special = SpecialTokens.for_layout(multilingual)
        layout_size = N_VOCAB_MULTILINGUAL if multilingual else N_VOCAB_ENGLISH
        self._vocab_size = max(layout_size, len(words))

    @property
    def filters(self) -> FilterBank:
        return self._filters

    @property
    def special(self) -> SpecialTokens:
        return self._special

    @property
    def multilingual(self) -> bool:
        return self._multilingual

    @property
    def vocab_size(self) -> int:
        """Number of token IDs in the layout, including control tokens."""
        return self._vocab_size

    @property
    def n_words(self) -> int:
        """Number of literal words carried by the resource file."""
        return len(self._words)

    def bytes_for(self, token: int) -> bytes | None:
        """Raw word bytes, or None for IDs without a literal word."""
        if 0 <= token < len(self._words):
            return self._words[token]
        return None

    def word_for(self, token: int) -> str | None:
        """Literal text for a token, or None for IDs without a literal word."""
        data = self.bytes_for(token)
        if data is None:
            return None
        return data.decode("utf-8", errors="replace")

    def label_for(self, token: int) -> str:
        """Human-readable label for logs; placeholders for control tokens."""
        word = self.word_for(token)
        if word is not None:
            return word

        special = self._special
        if token > special.beg:
            return f"[_TT_{token - special.beg}]"
        names = {
            special.eot: "[_EOT_]",
            special.sot: "[_SOT_]",
            special.prev: "[_PREV_]",
            special.no_timestamps: "[_NOT_]",
            special.beg: "[_BEG_]",
        }
        return names.get(token, f"[_extra_token_{token}]")


class _Reader:
    """Sequential reader over the resource bytes that fails on truncation."""

    def __init__(self, data: bytes, path: Path):
        self._data = data
        self._pos = 0
        self._path = path

    def take(self, size: int, what: str) -> bytes:
        end = self._pos + size
        if size < 0 or end > len(self._data):
            raise LoadError(
                f"Vocabulary file truncated while reading {what}",
                context={"path": str(self._path), "offset": self._pos, "needed": size},
            )
        chunk = self._data[self._pos : end]
        self._pos = end
        return chunk

    def int32(self, what: str) -> int:
        return int(np.frombuffer(self.take(_INT32.itemsize, what), dtype=_INT32)[0])


def load_vocabulary(path: str | Path, multilingual: bool) -> Vocabulary:
    """Load filters and vocabulary from a resource file.

    Args:
        path: Path to the filters+vocab binary.
        multilingual: Select the multilingual special-token layout.

    Returns:
        Loaded Vocabulary.

    Raises:
        LoadError: If the file is missing, truncated or malformed.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise LoadError(f"Cannot read vocabulary file: {path}", context={"path": str(path)}) from e

    reader = _Reader(data, path)

    magic = reader.int32("magic")
    if magic != VOCAB_MAGIC:
        raise LoadError(
            f"Bad vocabulary magic 0x{magic & 0xFFFFFFFF:08X}",
            context={"path": str(path), "expected": f"0x{VOCAB_MAGIC:08X}"},
        )

    n_mel = reader.int32("n_mel")
    n_fft = reader.int32("n_fft")
    if n_mel <= 0 or n_fft <= 0:
        raise LoadError(
            f"Invalid filter-bank dimensions {n_mel}x{n_fft}",
            context={"path": str(path)},
        )
    raw = reader.take(n_mel * n_fft * _FLOAT32.itemsize, "filters")
    coefficients = np.frombuffer(raw, dtype=_FLOAT32).astype(np.float32).reshape(n_mel, n_fft)
    coefficients.setflags(write=False)

    n_vocab = reader.int32("n_vocab")
    if n_vocab < 0:
        raise LoadError(f"Invalid vocabulary size {n_vocab}", context={"path": str(path)})

    words = []
    for i in range(n_vocab):
        length = reader.int32(f"length of word {i}")
        words.append(reader.take(length, f"word {i}"))

    vocab = Vocabulary(words, FilterBank(coefficients), multilingual)
    logger.info(
        f"Loaded vocabulary {path.name}: {n_vocab} words, "
        f"filters {n_mel}x{n_fft}, multilingual={multilingual}"
    )
    return vocab
