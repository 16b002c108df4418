"""Unit tests for settings and logging configuration."""

from pathlib import Path

import pytest
from loguru import logger

from offline_stt.config import Settings, get_settings
from offline_stt.logging_config import configure_logging


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the developer's environment and .env file."""
    for name in ("MODEL_PATH", "VOCAB_PATH", "MULTILINGUAL", "NUM_THREADS", "LOG_LEVEL", "PORT"):
        monkeypatch.delenv(f"OFFLINE_STT_{name}", raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        settings = Settings()

        assert settings.model_path == Path("models/whisper.onnx")
        assert settings.multilingual is True
        assert settings.num_threads >= 1
        assert settings.log_level == "INFO"
        assert settings.port == 8000

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("OFFLINE_STT_MODEL_PATH", "/opt/models/tiny.en.onnx")
        monkeypatch.setenv("OFFLINE_STT_MULTILINGUAL", "false")
        monkeypatch.setenv("OFFLINE_STT_NUM_THREADS", "6")

        settings = Settings()
        assert settings.model_path == Path("/opt/models/tiny.en.onnx")
        assert settings.multilingual is False
        assert settings.num_threads == 6

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("OFFLINE_STT_PORT=9001\n")
        assert Settings().port == 9001

    @pytest.mark.parametrize(
        "value,expected", [("debug", "DEBUG"), ("Warning", "WARNING"), ("loud", "INFO")]
    )
    def test_log_level_normalized(self, value, expected):
        assert Settings(log_level=value).log_level == expected

    @pytest.mark.parametrize("value", [0, -4])
    def test_num_threads_at_least_one(self, value):
        assert Settings(num_threads=value).num_threads == 1

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()


class TestLogging:
    """Tests for loguru sink setup."""

    @pytest.mark.parametrize("format_type", ["simple", "detailed", "json"])
    def test_configure_logging(self, format_type):
        configure_logging("DEBUG", format_type)

        messages = []
        sink_id = logger.add(messages.append, level="DEBUG", format="{message}")
        logger.debug("engine state changed")
        logger.remove(sink_id)

        assert [m.strip() for m in messages] == ["engine state changed"]
