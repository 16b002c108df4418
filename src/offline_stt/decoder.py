"""Token decoding: turn the engine's raw token stream into text."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from offline_stt.errors import DecodeAnomaly
from offline_stt.inference import RawTokenBuffer
from offline_stt.vocab import TokenKind, Vocabulary, classify


@dataclass
class DecodeResult:
    """Decoded text plus anything odd seen on the way."""

    text: str
    anomalies: list[DecodeAnomaly] = field(default_factory=list)
    tokens_read: int = 0


def decode_tokens(tokens: RawTokenBuffer | Iterable[int], vocab: Vocabulary) -> DecodeResult:
    """Decode a token stream in a single forward pass.

    Stops at EOT or at the end of the buffer. Structural tokens never reach
    the text. Word pieces carry their own spacing, so fragments are joined
    as-is; bytes are joined before UTF-8 decoding so characters split across
    tokens survive.

    Args:
        tokens: Raw token buffer from the engine, or any int sequence.
        vocab: Loaded vocabulary.

    Returns:
        DecodeResult with the transcript and any out-of-range anomalies.
    """
    if isinstance(tokens, RawTokenBuffer):
        tokens = tokens.tokens

    pieces: list[bytes] = []
    anomalies: list[DecodeAnomaly] = []
    special = vocab.special
    read = 0

    for position, token in enumerate(tokens):
        token = int(token)
        read += 1
        kind = classify(token, special)

        if kind is TokenKind.EOT:
            logger.debug(f"EOT at position {position}")
            break

        if kind is TokenKind.WORD:
            if 0 <= token < vocab.vocab_size:
                piece = vocab.bytes_for(token)
                if piece is not None:
                    pieces.append(piece)
                else:
                    logger.debug(f"No literal word for token {token} ({vocab.label_for(token)})")
            else:
                logger.warning(f"Token out of vocabulary range at {position}: {token}")
                anomalies.append(DecodeAnomaly(position, token, "out of vocabulary range"))
            continue

        logger.debug(f"Special token {kind.value}: {token} ({vocab.label_for(token)})")

    text = b"".join(pieces).decode("utf-8", errors="replace")
    return DecodeResult(text=text, anomalies=anomalies, tokens_read=read)


def decode(tokens: RawTokenBuffer | Iterable[int], vocab: Vocabulary) -> str:
    """Decode a token stream to text, see ``decode_tokens``."""
    return decode_tokens(tokens, vocab).text
