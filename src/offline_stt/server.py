"""FastAPI server for offline transcription.

This server accepts whole utterances over HTTP and returns transcriptions.
It depends only on the Transcriber, allowing use with real or fake engines.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from loguru import logger

from offline_stt.audio import decode_audio_bytes, pcm16_to_float32, validate_audio_format
from offline_stt.config import get_settings
from offline_stt.constants import MAX_DECODER_TOKENS, N_SAMPLES, SAMPLE_RATE
from offline_stt.errors import FeatureError, NotReadyError
from offline_stt.logging_config import configure_logging
from offline_stt.transcriber import Transcriber, TranscriptionResult


def _status_for(result: TranscriptionResult) -> int:
    if isinstance(result.error, NotReadyError):
        return 503
    if isinstance(result.error, FeatureError):
        return 400
    return 500


def _respond(result: TranscriptionResult) -> dict:
    if not result.ok:
        raise HTTPException(status_code=_status_for(result), detail=result.error.message)
    return {
        "text": result.text,
        "latency_ms": round(result.latency_ms, 2),
        "anomalies": len(result.anomalies),
    }


def create_app(transcriber: Transcriber) -> FastAPI:
    """Create a FastAPI application around a transcriber.

    Args:
        transcriber: Transcriber with a real or fake engine.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        transcriber.deinitialize()

    app = FastAPI(title="Offline STT Service", lifespan=lifespan)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok" if transcriber.is_ready() else "unavailable",
            "state": transcriber.state.value,
            "sample_rate": SAMPLE_RATE,
            "n_samples": N_SAMPLES,
            "max_decoder_tokens": MAX_DECODER_TOKENS,
        }

    @app.post("/v1/transcribe")
    async def transcribe_pcm(request: Request):
        """Transcribe a raw PCM16 little-endian 16kHz mono body."""
        data = await request.body()
        if not validate_audio_format(data):
            raise HTTPException(status_code=400, detail="Invalid audio format (must be PCM16)")

        audio = pcm16_to_float32(data)
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, transcriber.transcribe_buffer, audio)
        return _respond(result)

    @app.post("/v1/transcribe/file")
    async def transcribe_file(request: Request):
        """Transcribe an audio container body (WAV, FLAC, OGG) at 16kHz."""
        data = await request.body()
        try:
            audio = decode_audio_bytes(data)
        except FeatureError as e:
            raise HTTPException(status_code=400, detail=e.message) from e

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, transcriber.transcribe_buffer, audio)
        return _respond(result)

    return app


def create_app_from_settings() -> FastAPI:
    """ASGI factory: configure logging, start engine bring-up, build the app.

    Run with: uvicorn --factory offline_stt.server:create_app_from_settings
    """
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    transcriber = Transcriber.from_settings(settings)
    transcriber.initialize(settings.model_path, settings.vocab_path, settings.multilingual)
    logger.info(f"Serving on {settings.host}:{settings.port}, engine initializing in background")
    return create_app(transcriber)
