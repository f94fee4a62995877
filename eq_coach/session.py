"""Practice-session state machine: idle -> (thinking) -> recording -> analyzing -> completed."""

from __future__ import annotations

import asyncio
import io
import logging
import time
import wave
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set

from eq_coach.accumulator import AccumulatingRecognition, RestartPolicy, TranscriptAccumulator
from eq_coach.audio import Microphone
from eq_coach.config import Config
from eq_coach.errors import (
    TOO_SHORT,
    CoachError,
    InvalidTransition,
    MicrophoneError,
    RecognitionUnavailable,
)
from eq_coach.models import AnalysisRequest, AnalysisResult, Mode, Scenario, normalize_mode

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    RECORDING = "recording"
    ANALYZING = "analyzing"
    COMPLETED = "completed"


TRANSITIONS: Dict[SessionState, Set[SessionState]] = {
    SessionState.IDLE: {SessionState.THINKING, SessionState.RECORDING},
    SessionState.THINKING: {SessionState.RECORDING, SessionState.IDLE},
    SessionState.RECORDING: {SessionState.ANALYZING, SessionState.IDLE},
    # back to RECORDING when nothing was heard
    SessionState.ANALYZING: {SessionState.IDLE, SessionState.RECORDING, SessionState.COMPLETED},
    SessionState.COMPLETED: set(),
}

MIC_MESSAGES = {
    "denied": "麦克风权限被拒绝，请在系统设置中允许访问麦克风",
    "not_found": "未找到麦克风，请确保您的设备有可用的麦克风",
    "other": "无法访问麦克风",
}
TOO_BRIEF_MESSAGE = "说话时间太短啦，请至少说 2 秒哦！"
NO_INPUT_MESSAGE = "未检测到有效输入，似乎没有识别到任何说话内容，请大声一点哦。"
TOO_SHORT_MESSAGE = "听不太清，或者内容太短了，请再试一次吧！"
RECOGNITION_UNAVAILABLE_MESSAGE = "语音识别暂时不可用，请稍后重试"
SAVE_FAILED_MESSAGE = "分析完成，但结果保存失败"

Submitter = Callable[[AnalysisRequest], Awaitable[AnalysisResult]]
NoticeCallback = Callable[[str, str], None]


@dataclass
class PracticeSession:
    """One attempt, held only in memory."""
    mode: Mode
    scenario: Optional[Scenario] = None
    state: SessionState = SessionState.IDLE
    start_ts: Optional[float] = None
    accumulator: TranscriptAccumulator = field(default_factory=TranscriptAccumulator)
    audio_chunks: List[bytes] = field(default_factory=list)

    @property
    def transcript(self) -> str:
        return self.accumulator.text

    @property
    def interim(self) -> str:
        return self.accumulator.interim


def pcm_to_wav(chunks: List[bytes], sample_rate: int) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(b"".join(chunks))
    return buf.getvalue()


class SessionController:
    """
    Owns the microphone and the recognition run of one practice session.

    Every state change goes through `_transition`, which rejects anything not in
    TRANSITIONS. Capture resources are released on every exit path.
    """

    def __init__(
        self,
        mode: Optional[str] = None,
        *,
        microphone_factory: Callable[[], Microphone],
        submit: Submitter,
        recognizer_factory: Optional[Callable[[], object]] = None,
        store=None,
        scenario: Optional[Scenario] = None,
        clock: Callable[[], float] = time.monotonic,
        min_recording_ms: Optional[int] = None,
        max_recording_seconds: Optional[float] = None,
        thinking_seconds: Optional[float] = None,
        restart_policy: Optional[RestartPolicy] = None,
        audio_fallback: bool = False,
        sample_rate: int = 16000,
        on_notice: Optional[NoticeCallback] = None,
        on_state: Optional[Callable[[SessionState], None]] = None,
        on_transcript: Optional[Callable[[TranscriptAccumulator], None]] = None,
    ):
        self.session = PracticeSession(mode=normalize_mode(mode), scenario=scenario)
        self.microphone_factory = microphone_factory
        self.recognizer_factory = recognizer_factory
        self.submit = submit
        self.store = store
        self.clock = clock
        self.min_recording_ms = Config.MIN_RECORDING_MS if min_recording_ms is None else min_recording_ms
        self.max_recording_seconds = (
            Config.MAX_RECORDING_SECONDS if max_recording_seconds is None else max_recording_seconds
        )
        self.thinking_seconds = Config.THINKING_SECONDS if thinking_seconds is None else thinking_seconds
        self.restart_policy = restart_policy
        self.audio_fallback = audio_fallback
        self.sample_rate = sample_rate
        self.on_notice = on_notice
        self.on_state = on_state
        self.on_transcript = on_transcript

        self.mic_error: Optional[str] = None  # "denied" | "not_found" | "other"
        self.recognition_unavailable = False
        self.last_error: Optional[BaseException] = None
        self.result: Optional[AnalysisResult] = None

        self._microphone: Optional[Microphone] = None
        self._recognizer = None
        self._recognition_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def capturing(self) -> bool:
        return self._microphone is not None

    def _transition(self, target: SessionState) -> None:
        current = self.session.state
        if target not in TRANSITIONS[current]:
            raise InvalidTransition(f"{current.value} -> {target.value}")
        logger.info(f"[SESSION] {current.value} -> {target.value}")
        self.session.state = target
        if self.on_state:
            self.on_state(target)

    def _notify(self, level: str, message: str) -> None:
        logger.info(f"[SESSION] notice ({level}): {message}")
        if self.on_notice:
            self.on_notice(level, message)

    # -- capture -------------------------------------------------------

    def _on_frame(self, pcm: bytes) -> None:
        if self.audio_fallback:
            self.session.audio_chunks.append(pcm)
        if self._recognizer is not None:
            self._recognizer.feed(pcm)

    async def _begin_capture(self) -> bool:
        """Acquire microphone and recognition; on failure return to IDLE with the cause exposed."""
        self.session.accumulator.reset()
        self.session.audio_chunks = []
        self.session.start_ts = self.clock()
        self.mic_error = None
        self.recognition_unavailable = False

        microphone = self.microphone_factory()
        try:
            await microphone.open(self._on_frame)
        except MicrophoneError as e:
            self.mic_error = e.cause
            self.last_error = e
            self._notify("error", MIC_MESSAGES.get(e.cause, MIC_MESSAGES["other"]))
            await self._release()
            self._transition(SessionState.IDLE)
            return False
        self._microphone = microphone

        if self.recognizer_factory is not None:
            self._recognizer = self.recognizer_factory()
            recognition = AccumulatingRecognition(
                self._recognizer,
                self.session.accumulator,
                keep_running=lambda: self.state is SessionState.RECORDING,
                policy=self._fresh_policy(),
                on_update=self.on_transcript,
            )
            self._recognition_task = asyncio.create_task(self._run_recognition(recognition))
        return True

    def _fresh_policy(self) -> RestartPolicy:
        """Each capture counts failures from zero; the configured policy is a template."""
        if self.restart_policy is None:
            return RestartPolicy()
        return replace(self.restart_policy, failures=0)

    async def _run_recognition(self, recognition: AccumulatingRecognition) -> None:
        try:
            await recognition.run()
        except RecognitionUnavailable as e:
            logger.error(f"[SESSION] {e}")
            self.recognition_unavailable = True
            self.last_error = e
            self._notify("error", RECOGNITION_UNAVAILABLE_MESSAGE)
            self._recognition_task = None
            await self._release()
            if self.state is SessionState.RECORDING:
                self._transition(SessionState.IDLE)

    async def _release(self) -> None:
        """Tear down microphone and recognition. Safe to call repeatedly."""
        microphone, self._microphone = self._microphone, None
        recognizer, self._recognizer = self._recognizer, None
        task, self._recognition_task = self._recognition_task, None
        try:
            if recognizer is not None:
                recognizer.stop()
            if task is not None and task is not asyncio.current_task():
                try:
                    # let the recognizer flush its last final result
                    await asyncio.wait_for(task, timeout=2.0)
                except asyncio.TimeoutError:
                    pass
                except Exception as e:
                    logger.warning(f"[SESSION] Recognition ended with error: {e!r}")
        finally:
            if microphone is not None:
                microphone.close()

    async def _stop_capture(self) -> str:
        try:
            await self._release()
        finally:
            text = self.session.accumulator.freeze()
        return text

    # -- user actions --------------------------------------------------

    def begin_thinking(self) -> None:
        self._transition(SessionState.THINKING)

    async def think(self, skip: Optional[asyncio.Event] = None) -> bool:
        """Pre-roll countdown; recording starts when it runs out or is skipped."""
        if self.state is SessionState.IDLE:
            self.begin_thinking()
        skip = skip or asyncio.Event()
        try:
            await asyncio.wait_for(skip.wait(), timeout=self.thinking_seconds)
        except asyncio.TimeoutError:
            pass
        if self.state is not SessionState.THINKING:
            return False
        return await self.start()

    async def start(self) -> bool:
        """Start recording. Returns False (state IDLE, mic_error set) when the microphone fails."""
        self._transition(SessionState.RECORDING)
        return await self._begin_capture()

    async def finish(self) -> Optional[AnalysisResult]:
        """Stop recording, apply the guardrails, submit. Returns the result on success."""
        if self.state is not SessionState.RECORDING:
            raise InvalidTransition(f"finish() while {self.state.value}")

        elapsed_ms = (self.clock() - (self.session.start_ts or 0.0)) * 1000
        if elapsed_ms < self.min_recording_ms:
            self._notify("warning", TOO_BRIEF_MESSAGE)
            # leave RECORDING first so recognition does not restart during release
            self._transition(SessionState.IDLE)
            await self._release()
            return None

        self._transition(SessionState.ANALYZING)
        text = await self._stop_capture()

        audio = None
        if not text.strip():
            if self.audio_fallback and self.session.audio_chunks:
                audio = pcm_to_wav(self.session.audio_chunks, self.sample_rate)
            else:
                self._notify("error", NO_INPUT_MESSAGE)
                self._transition(SessionState.RECORDING)
                await self._begin_capture()
                return None

        request = AnalysisRequest(text=text, mode=self.session.mode, scenario=self.session.scenario, audio=audio)
        logger.info(f"[SESSION] Submitting {len(text)} chars{' + audio' if audio else ''}")
        try:
            result = await self.submit(request)
        except CoachError as e:
            self.last_error = e
            if e.code == TOO_SHORT:
                self._notify("warning", TOO_SHORT_MESSAGE)
            else:
                self._notify("error", f"分析失败: {e.message}")
            self._transition(SessionState.IDLE)
            return None
        except Exception as e:
            logger.exception("[SESSION] Submission failed")
            self.last_error = e
            self._notify("error", f"分析失败: {e}")
            self._transition(SessionState.IDLE)
            return None

        self.result = result
        self._transition(SessionState.COMPLETED)
        try:
            if self.store is not None:
                self.store.save(result)
        except OSError as e:
            logger.error(f"[SESSION] Could not save result: {e!r}")
            self.last_error = e
            self._notify("warning", f"{SAVE_FAILED_MESSAGE}: {e}")
        else:
            self._notify("success", "分析完成！")
        return result

    async def record_until(self, done: asyncio.Event) -> Optional[AnalysisResult]:
        """Wait for the user's "done" or the recording ceiling, whichever comes first, then finish."""
        try:
            await asyncio.wait_for(done.wait(), timeout=self.max_recording_seconds)
        except asyncio.TimeoutError:
            logger.info(f"[SESSION] Recording ceiling of {self.max_recording_seconds}s reached")
        if self.state is not SessionState.RECORDING:
            return None
        return await self.finish()

    async def cancel(self) -> None:
        """Abandon the attempt; resources are released and the session returns to IDLE."""
        try:
            if self.state in (SessionState.THINKING, SessionState.RECORDING, SessionState.ANALYZING):
                self._transition(SessionState.IDLE)
        finally:
            await self._release()

    async def __aenter__(self) -> "SessionController":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cancel()
