"""Transcriber abstraction for audio-to-text conversion."""

from abc import ABC, abstractmethod
import logging
from typing import Optional

import httpx

from eq_coach.config import Config
from eq_coach.errors import ConfigurationError, OracleTransportError

logger = logging.getLogger(__name__)

DEEPGRAM_LISTEN_URL = "https://api.deepgram.com/v1/listen"


class Transcriber(ABC):
    """Abstract interface for speech-to-text providers."""

    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str = "audio.webm",
                         content_type: str = "audio/webm") -> str:
        """Transcribe one uploaded recording.

        Args:
            audio: Raw bytes of the uploaded file
            filename: Original file name
            content_type: MIME type of the recording

        Returns:
            Recognized text (may be empty)
        """
        pass


class WhisperTranscriber(Transcriber):
    """Local Faster-Whisper HTTP server: multipart upload, replies {"text": ...}."""

    def __init__(self, url: Optional[str] = None, timeout: float = 120,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url or Config.WHISPER_URL
        self.timeout = timeout
        self.transport = transport

    async def transcribe(self, audio: bytes, filename: str = "audio.webm",
                         content_type: str = "audio/webm") -> str:
        logger.info(f"[STT] Transcribing {filename} ({len(audio)} bytes, {content_type}) with local Whisper")
        files = {"file": (filename, audio, content_type)}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.post(self.url, files=files)
                r.raise_for_status()
                data = r.json()
        except httpx.ConnectError as e:
            logger.error(f"[STT] Cannot reach Whisper at {self.url}: {e!r}")
            raise OracleTransportError(
                f"本地 Whisper 服务未启动 ({self.url})，请先启动语音识别服务"
            ) from e
        except httpx.HTTPStatusError as e:
            text = e.response.text[:300]
            logger.error(f"[STT] Transcription failed: HTTP {e.response.status_code} {text}")
            raise OracleTransportError(f"STT 错误: {e.response.status_code} - {text}") from e
        except httpx.HTTPError as e:
            raise OracleTransportError(f"STT 网络错误: {e}") from e
        except ValueError as e:
            raise OracleTransportError("STT 返回了非 JSON 响应") from e

        text = str(data.get("text") or "")
        logger.info(f"[STT] Result: {text[:100]}")
        return text


class DeepgramTranscriber(Transcriber):
    """Deepgram pre-recorded transcription over REST."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 language: Optional[str] = None, timeout: float = 120,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key if api_key is not None else Config.DEEPGRAM_API_KEY
        self.model = model or Config.DEEPGRAM_MODEL
        self.language = language or Config.DEEPGRAM_LANGUAGE
        self.timeout = timeout
        self.transport = transport

    async def transcribe(self, audio: bytes, filename: str = "audio.webm",
                         content_type: str = "audio/webm") -> str:
        if not self.api_key:
            raise ConfigurationError("语音识别服务未配置 (缺少 DEEPGRAM_API_KEY)")

        logger.info(f"[STT] Transcribing {filename} ({len(audio)} bytes) with Deepgram {self.model}")
        params = {"model": self.model, "language": self.language, "smart_format": "true", "punctuate": "true"}
        headers = {"Authorization": f"Token {self.api_key}", "Content-Type": content_type}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.post(DEEPGRAM_LISTEN_URL, params=params, headers=headers, content=audio)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            text = e.response.text[:300]
            logger.error(f"[STT] Deepgram HTTP {e.response.status_code}: {text}")
            raise OracleTransportError(f"STT 错误: {e.response.status_code} - {text}") from e
        except httpx.HTTPError as e:
            raise OracleTransportError(f"STT 网络错误: {e}") from e
        except ValueError as e:
            raise OracleTransportError("STT 返回了非 JSON 响应") from e

        transcript = ""
        channels = (data.get("results") or {}).get("channels") or []
        if channels and isinstance(channels[0], dict):
            alts = channels[0].get("alternatives") or []
            if alts and isinstance(alts[0], dict):
                transcript = (alts[0].get("transcript") or "").strip()
        logger.info(f"[STT] Result: {transcript[:100]}")
        return transcript


def create_transcriber(provider: Optional[str] = None) -> Transcriber:
    """Factory function to create a transcriber based on type."""
    provider = (provider or Config.STT_PROVIDER).lower()
    if provider == "whisper":
        return WhisperTranscriber()
    elif provider == "deepgram":
        return DeepgramTranscriber()
    else:
        raise ConfigurationError(
            f"Unsupported STT provider: '{provider}'. Supported types are: 'whisper', 'deepgram'"
        )
