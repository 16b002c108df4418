"""Transcribe audio files from the command line.

Usage:
    offline-stt speech.wav [more.wav ...] [--model PATH] [--vocab PATH] [--english]

Unset options fall back to OFFLINE_STT_* environment variables (see Settings).
"""

import argparse
import json
import sys

from loguru import logger

from offline_stt.config import Settings
from offline_stt.lifecycle import EngineState
from offline_stt.logging_config import configure_logging
from offline_stt.transcriber import Transcriber


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="offline-stt", description="Offline Whisper transcription")
    ap.add_argument("files", nargs="+", help="16kHz audio files (WAV, FLAC, OGG)")
    ap.add_argument("--model", help="Model file (default: OFFLINE_STT_MODEL_PATH)")
    ap.add_argument("--vocab", help="Filters+vocab file (default: OFFLINE_STT_VOCAB_PATH)")
    ap.add_argument(
        "--english",
        action="store_true",
        help="English-only model (monolingual special token layout)",
    )
    ap.add_argument("--threads", type=int, help="Inference and feature threads")
    ap.add_argument("--jsonl", action="store_true", help="Print one JSON record per file")
    ap.add_argument("--log-level", help="Log level (default: OFFLINE_STT_LOG_LEVEL)")
    return ap


def settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.model:
        overrides["model_path"] = args.model
    if args.vocab:
        overrides["vocab_path"] = args.vocab
    if args.english:
        overrides["multilingual"] = False
    if args.threads is not None:
        overrides["num_threads"] = args.threads
    return Settings(**overrides)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = settings_from_args(args)
    configure_logging(settings.log_level, "simple")

    transcriber = Transcriber.from_settings(settings)
    try:
        future = transcriber.initialize(
            settings.model_path, settings.vocab_path, settings.multilingual
        )
        if future.result() is not EngineState.READY:
            error = transcriber.lifecycle.last_error
            reason = error.message if error else "unknown error"
            print(f"Engine failed to load: {reason}", file=sys.stderr)
            return 2

        failures = 0
        for path in args.files:
            result = transcriber.transcribe_file(path)
            if not result.ok:
                failures += 1

            if args.jsonl:
                record = {
                    "file": path,
                    "text": result.text,
                    "latency_ms": round(result.latency_ms, 2),
                    "error": result.error.message if result.error else None,
                }
                print(json.dumps(record, ensure_ascii=False))
            elif result.ok:
                print(f"{path}: {result.text.strip()}")
            else:
                print(f"{path}: ERROR {result.error.message}", file=sys.stderr)

        logger.info(f"Transcribed {len(args.files) - failures}/{len(args.files)} files")
        return 1 if failures else 0
    finally:
        transcriber.lifecycle.shutdown()


if __name__ == "__main__":
    sys.exit(main())
