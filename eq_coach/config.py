"""Configuration management for API keys and settings."""

import logging
import os
from typing import Optional
from pathlib import Path

from dotenv import load_dotenv

# config.py is in eq_coach/, .env is in project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration from environment variables."""

    # Mock mode bypasses every oracle and returns the canned result
    MOCK_MODE: bool = _env_bool("MOCK_MODE")
    MOCK_DELAY_SECONDS: float = float(os.getenv("MOCK_DELAY_SECONDS", "1.5"))

    # Guardrails
    MIN_TEXT_LENGTH: int = int(os.getenv("MIN_TEXT_LENGTH", "5"))
    MIN_RECORDING_MS: int = int(os.getenv("MIN_RECORDING_MS", "2000"))
    MAX_RECORDING_SECONDS: int = int(os.getenv("MAX_RECORDING_SECONDS", "120"))
    THINKING_SECONDS: int = int(os.getenv("THINKING_SECONDS", "30"))

    # LLM oracle: "minimax", "gemini" or "ollama"
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "minimax").strip().lower()

    MINIMAX_API_KEY: Optional[str] = os.getenv("MINIMAX_API_KEY")
    MINIMAX_API_URL: str = os.getenv(
        "MINIMAX_API_URL", "https://api.minimax.chat/v1/text/chatcompletion_v2"
    )
    MINIMAX_MODEL: str = os.getenv("MINIMAX_MODEL", "MiniMax-Text-01")

    GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY")
    GEMINI_BASE_URL: str = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

    # Ollama settings (no API key needed, it's local)
    OLLAMA_URL: str = os.getenv("OLLAMA_URL", "http://127.0.0.1:11434")
    OLLAMA_MODEL: str = os.getenv("OLLAMA_MODEL", "qwen2.5:7b")

    ANALYSIS_TIMEOUT_SECONDS: float = float(os.getenv("ANALYSIS_TIMEOUT_SECONDS", "60"))
    SCENARIO_TIMEOUT_SECONDS: float = float(os.getenv("SCENARIO_TIMEOUT_SECONDS", "8"))

    # Speech-to-text oracle: "whisper" (local faster-whisper server) or "deepgram"
    STT_PROVIDER: str = os.getenv("STT_PROVIDER", "whisper").strip().lower()
    WHISPER_URL: str = os.getenv("WHISPER_URL", "http://localhost:5000/transcribe")
    DEEPGRAM_API_KEY: Optional[str] = os.getenv("DEEPGRAM_API_KEY")
    DEEPGRAM_MODEL: str = os.getenv("DEEPGRAM_MODEL", "nova-2")
    DEEPGRAM_LANGUAGE: str = os.getenv("DEEPGRAM_LANGUAGE", "zh-CN")

    # Client-side persisted result (last analysis only)
    RESULT_STORE_PATH: str = os.getenv(
        "RESULT_STORE_PATH", str(Path.home() / ".eq_coach" / "analysisResult.json")
    )

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def llm_api_key(cls, provider: Optional[str] = None) -> Optional[str]:
        """Credential for the given (default: configured) LLM provider; ollama needs none."""
        provider = provider or cls.LLM_PROVIDER
        if provider == "minimax":
            return cls.MINIMAX_API_KEY
        if provider == "gemini":
            return cls.GEMINI_API_KEY
        return None

    @classmethod
    def validate(cls) -> list[str]:
        """Validate configuration and return list of missing required settings."""
        missing = []

        if cls.MOCK_MODE:
            return missing

        if cls.LLM_PROVIDER == "minimax" and not cls.MINIMAX_API_KEY:
            missing.append("MINIMAX_API_KEY (required when LLM_PROVIDER=minimax)")
        elif cls.LLM_PROVIDER == "gemini" and not cls.GEMINI_API_KEY:
            missing.append("GEMINI_API_KEY (required when LLM_PROVIDER=gemini)")

        if cls.STT_PROVIDER == "deepgram" and not cls.DEEPGRAM_API_KEY:
            missing.append("DEEPGRAM_API_KEY (required when STT_PROVIDER=deepgram)")

        return missing


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once for CLI and server entry points."""
    logging.basicConfig(
        level=(level or Config.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
