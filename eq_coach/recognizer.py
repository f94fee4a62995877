"""Streaming speech recognition feeding the transcript accumulator."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

import aiohttp

from eq_coach.accumulator import RecognitionEvent
from eq_coach.config import Config
from eq_coach.errors import ConfigurationError

logger = logging.getLogger(__name__)

EventCallback = Callable[[RecognitionEvent], None]

DEEPGRAM_URL_BASE = (
    "wss://api.deepgram.com/v1/listen"
    "?punctuate=true"
    "&smart_format=true"
    "&encoding=linear16"
    "&channels=1"
    "&interim_results=true"
)

MAX_BATCH = 32
_CJK_LANGS = ("zh", "ja", "ko")


def build_deepgram_url(sample_rate: int, model: str, language: str) -> str:
    sr = int(sample_rate) if sample_rate else 16000
    return f"{DEEPGRAM_URL_BASE}&sample_rate={sr}&model={model}&language={language}"


def parse_deepgram_message(data: dict, separator: str = "") -> Optional[RecognitionEvent]:
    """Turn one Deepgram Results message into a RecognitionEvent (None if it carries no text)."""
    if not isinstance(data, dict) or str(data.get("type") or "Results") != "Results":
        return None
    transcript = ""
    chan = data.get("channel")
    if isinstance(chan, dict):
        alts = chan.get("alternatives")
        if isinstance(alts, list) and alts and isinstance(alts[0], dict):
            transcript = (alts[0].get("transcript") or "").strip()
    if not transcript:
        return None
    if data.get("is_final"):
        return RecognitionEvent(finals=[transcript + separator])
    return RecognitionEvent(interim=transcript)


class Recognizer(ABC):
    """One recognition session at a time; `run` returns when it ends passively."""

    @abstractmethod
    async def run(self, on_event: EventCallback) -> None:
        pass

    @abstractmethod
    def feed(self, pcm: bytes) -> None:
        """Queue PCM16 audio for recognition."""

    @abstractmethod
    def stop(self) -> None:
        """Request the current run to end."""


class DeepgramRecognizer(Recognizer):
    """Deepgram live transcription over a websocket (aiohttp)."""

    def __init__(self, api_key: Optional[str] = None, sample_rate: int = 16000,
                 model: Optional[str] = None, language: Optional[str] = None):
        self.api_key = api_key if api_key is not None else Config.DEEPGRAM_API_KEY
        if not self.api_key:
            raise ConfigurationError("DEEPGRAM_API_KEY is required for live recognition")
        self.sample_rate = sample_rate
        self.model = model or Config.DEEPGRAM_MODEL
        self.language = language or Config.DEEPGRAM_LANGUAGE
        self.separator = "" if self.language.lower().startswith(_CJK_LANGS) else " "
        self._queue: "asyncio.Queue[bytes]" = asyncio.Queue(maxsize=2000)
        self._stop = asyncio.Event()

    def feed(self, pcm: bytes) -> None:
        # drop oldest if behind to keep audio current
        if self._queue.full():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
        self._queue.put_nowait(pcm)

    def stop(self) -> None:
        self._stop.set()

    async def run(self, on_event: EventCallback) -> None:
        self._stop.clear()
        url = build_deepgram_url(self.sample_rate, self.model, self.language)
        headers = {"Authorization": f"Token {self.api_key}"}

        timeout = aiohttp.ClientTimeout(total=None)
        async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
            async with session.ws_connect(url, heartbeat=20) as ws:

                async def sender():
                    while not self._stop.is_set():
                        batch = []
                        for _ in range(MAX_BATCH):
                            try:
                                batch.append(self._queue.get_nowait())
                            except asyncio.QueueEmpty:
                                break

                        if not batch:
                            await asyncio.sleep(0.01)
                            continue

                        for chunk in batch:
                            await ws.send_bytes(chunk)
                    await ws.send_str(json.dumps({"type": "CloseStream"}))

                async def receiver():
                    while True:
                        msg = await ws.receive()
                        if msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED,
                                        aiohttp.WSMsgType.CLOSING):
                            logger.info("[RECOGNIZER] Deepgram connection closed")
                            return
                        if msg.type == aiohttp.WSMsgType.ERROR:
                            raise RuntimeError(f"WebSocket error: {ws.exception()}")
                        if msg.type != aiohttp.WSMsgType.TEXT:
                            continue
                        try:
                            data = json.loads(msg.data)
                        except ValueError:
                            continue
                        event = parse_deepgram_message(data, self.separator)
                        if event is not None:
                            on_event(event)

                send_task = asyncio.create_task(sender())
                try:
                    await receiver()
                finally:
                    send_task.cancel()
