"""Transcript accumulation over a stream of interim/final recognition results."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from eq_coach.errors import RecognitionUnavailable

logger = logging.getLogger(__name__)


@dataclass
class RecognitionEvent:
    """One delivery from the recognizer: finalized chunks plus at most one interim chunk."""
    finals: List[str] = field(default_factory=list)
    interim: str = ""
    ts: float = field(default_factory=time.time)

    @classmethod
    def from_results(cls, results: Sequence[Tuple[str, bool]], result_index: int = 0) -> "RecognitionEvent":
        """Build from a cumulative result list of (text, is_final), reading from result_index on."""
        finals, interim = [], ""
        for text, is_final in results[result_index:]:
            if is_final:
                finals.append(text)
            else:
                interim += text
        return cls(finals=finals, interim=interim)


class TranscriptAccumulator:
    """
    Confirmed text only grows, by appending final chunks in delivery order;
    the interim preview is replaced wholesale on every event.
    """

    def __init__(self):
        self._chunks: List[str] = []
        self.interim = ""
        self.preview = ""
        self.frozen = False
        self.events = 0

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    def apply(self, event: RecognitionEvent) -> None:
        if self.frozen:
            return
        self.events += 1
        self._chunks.extend(chunk for chunk in event.finals if chunk)
        self.interim = event.interim
        last_final = event.finals[-1] if event.finals else ""
        self.preview = event.interim or last_final or self.preview

    def freeze(self) -> str:
        """Stop accepting events; the interim preview is discarded."""
        self.frozen = True
        self.interim = ""
        return self.text

    def reset(self) -> None:
        self._chunks = []
        self.interim = ""
        self.preview = ""
        self.frozen = False
        self.events = 0


@dataclass
class RestartPolicy:
    """
    Passive recognizer termination is healed by restarting. A run that ended
    without delivering any event counts as an immediate failure; too many in a
    row surface as RecognitionUnavailable.
    """
    max_consecutive_failures: int = 5
    base_delay: float = 0.25
    max_delay: float = 4.0
    failures: int = 0

    def record_run(self, delivered_events: bool) -> float:
        """Register the end of one recognizer run and return the delay before restarting."""
        if delivered_events:
            self.failures = 0
            return 0.0
        self.failures += 1
        if self.failures >= self.max_consecutive_failures:
            raise RecognitionUnavailable(
                f"speech recognition ended {self.failures} times in a row without results"
            )
        return min(self.max_delay, self.base_delay * (2 ** (self.failures - 1)))


class AccumulatingRecognition:
    """
    Drives one Recognizer into a TranscriptAccumulator, restarting it while
    `keep_running()` says the session is still recording.
    """

    def __init__(self, recognizer, accumulator: TranscriptAccumulator,
                 keep_running: Callable[[], bool],
                 policy: Optional[RestartPolicy] = None,
                 on_update: Optional[Callable[[TranscriptAccumulator], None]] = None,
                 sleep=asyncio.sleep):
        self.recognizer = recognizer
        self.accumulator = accumulator
        self.keep_running = keep_running
        self.policy = policy or RestartPolicy()
        self.on_update = on_update
        self.restarts = 0
        self._sleep = sleep

    def _handle(self, event: RecognitionEvent) -> None:
        self.accumulator.apply(event)
        if self.on_update:
            self.on_update(self.accumulator)

    async def run(self) -> None:
        while True:
            before = self.accumulator.events
            try:
                await self.recognizer.run(self._handle)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[RECOGNIZER] Run ended with error: {e!r}")
            if not self.keep_running():
                return
            delay = self.policy.record_run(self.accumulator.events > before)
            self.restarts += 1
            logger.info(f"[RECOGNIZER] Ended while recording, restarting (#{self.restarts}, delay={delay:.2f}s)")
            if delay:
                await self._sleep(delay)
            if not self.keep_running():
                return
