import asyncio

import pytest

from conftest import sample_result
from eq_coach.accumulator import RecognitionEvent, RestartPolicy
from eq_coach.audio import Microphone
from eq_coach.errors import (
    InvalidTransition,
    MicrophoneError,
    OracleTransportError,
    too_short_error,
)
from eq_coach.models import Scenario
from eq_coach.session import (
    MIC_MESSAGES,
    NO_INPUT_MESSAGE,
    SAVE_FAILED_MESSAGE,
    TOO_BRIEF_MESSAGE,
    TOO_SHORT_MESSAGE,
    SessionController,
    SessionState,
)
from eq_coach.storage import ResultStore


class FakeClock:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


class FakeMicrophone(Microphone):
    def __init__(self, error=None):
        self.error = error
        self.on_frame = None
        self.opened = 0
        self.closed = 0

    async def open(self, on_frame):
        self.opened += 1
        if self.error is not None:
            raise self.error
        self.on_frame = on_frame

    def close(self):
        self.closed += 1
        self.on_frame = None

    @property
    def active(self):
        return self.on_frame is not None


class FakeRecognizer:
    """Delivers its events, then keeps the session open until stopped."""

    def __init__(self, events=()):
        self.events = list(events)
        self.fed = []
        self._stop = asyncio.Event()

    async def run(self, on_event):
        for event in self.events:
            on_event(event)
        self.events = []
        await self._stop.wait()

    def feed(self, pcm):
        self.fed.append(pcm)

    def stop(self):
        self._stop.set()


class Harness:
    def __init__(self, tmp_path, *, mic_error=None, events=(), submit_error=None, live=True, **kwargs):
        self.clock = FakeClock()
        self.mics = []
        self.requests = []
        self.notices = []
        self.states = []
        self.submit_error = submit_error
        self.mic_error = mic_error
        self.events = events
        self.store = ResultStore(tmp_path / "result.json")
        self.controller = SessionController(
            kwargs.pop("mode", "work"),
            microphone_factory=self._mic,
            recognizer_factory=(lambda: FakeRecognizer(self.events)) if live else None,
            submit=self._submit,
            store=self.store,
            clock=self.clock,
            on_notice=lambda level, message: self.notices.append((level, message)),
            on_state=self.states.append,
            **kwargs,
        )

    def _mic(self):
        mic = FakeMicrophone(self.mic_error)
        self.mics.append(mic)
        return mic

    async def _submit(self, request):
        self.requests.append(request)
        if self.submit_error is not None:
            raise self.submit_error
        return sample_result()


SPOKEN = [RecognitionEvent(finals=["我注意到项目进度"]), RecognitionEvent(finals=["受到了影响"], interim="你")]


def test_happy_path_saves_result(run, tmp_path):
    h = Harness(tmp_path, events=SPOKEN, scenario=Scenario("进度", "项目延期了"))

    async def scenario():
        assert await h.controller.start()
        await asyncio.sleep(0)
        h.clock.t = 3.0
        return await h.controller.finish()

    result = run(scenario())
    assert result is not None
    assert h.controller.state is SessionState.COMPLETED
    assert h.states == [SessionState.RECORDING, SessionState.ANALYZING, SessionState.COMPLETED]
    request = h.requests[0]
    assert request.text == "我注意到项目进度受到了影响"
    assert request.compose().startswith("【当前场景：进度 - 项目延期了】用户发言：")
    assert h.mics[0].closed == 1 and not h.controller.capturing
    assert h.store.load().scores == result.scores


@pytest.mark.parametrize("cause", ["denied", "not_found", "other"])
def test_microphone_failure_returns_to_idle_with_cause(run, tmp_path, cause):
    h = Harness(tmp_path, mic_error=MicrophoneError(cause, "boom"))
    started = run(h.controller.start())
    assert started is False
    assert h.controller.state is SessionState.IDLE
    assert h.controller.mic_error == cause
    assert h.notices == [("error", MIC_MESSAGES[cause])]
    assert not h.controller.capturing


def test_microphone_causes_are_distinguishable():
    assert len(set(MIC_MESSAGES.values())) == 3


def test_too_brief_recording_is_not_submitted(run, tmp_path):
    h = Harness(tmp_path, events=SPOKEN)

    async def scenario():
        await h.controller.start()
        h.clock.t = 1.5
        return await h.controller.finish()

    assert run(scenario()) is None
    assert h.controller.state is SessionState.IDLE
    assert h.notices == [("warning", TOO_BRIEF_MESSAGE)]
    assert h.requests == []
    assert h.mics[0].closed == 1


def test_empty_transcript_goes_back_to_recording(run, tmp_path):
    h = Harness(tmp_path, events=[RecognitionEvent(interim="嗯")])

    async def scenario():
        await h.controller.start()
        h.clock.t = 3.0
        result = await h.controller.finish()
        state, capturing = h.controller.state, h.controller.capturing
        await h.controller.cancel()
        return result, state, capturing

    result, state, capturing = run(scenario())
    assert result is None
    assert state is SessionState.RECORDING and capturing
    assert ("error", NO_INPUT_MESSAGE) in h.notices
    assert h.requests == []
    assert len(h.mics) == 2
    assert h.controller.state is SessionState.IDLE
    assert all(m.closed == 1 for m in h.mics)


def test_audio_fallback_uploads_wav(run, tmp_path):
    h = Harness(tmp_path, live=False, audio_fallback=True)

    async def scenario():
        await h.controller.start()
        h.mics[0].on_frame(b"\x01\x00" * 320)
        h.clock.t = 3.0
        return await h.controller.finish()

    assert run(scenario()) is not None
    request = h.requests[0]
    assert request.text == ""
    assert request.audio[:4] == b"RIFF"


def test_too_short_reply_warns_and_resets(run, tmp_path):
    h = Harness(tmp_path, events=[RecognitionEvent(finals=["嗯"])], submit_error=too_short_error(5))

    async def scenario():
        await h.controller.start()
        h.clock.t = 2.5
        return await h.controller.finish()

    assert run(scenario()) is None
    assert h.controller.state is SessionState.IDLE
    assert h.notices[-1] == ("warning", TOO_SHORT_MESSAGE)
    assert h.store.load() is None


def test_oracle_failure_reports_error(run, tmp_path):
    h = Harness(tmp_path, events=SPOKEN, submit_error=OracleTransportError("MiniMax 请求超时"))

    async def scenario():
        await h.controller.start()
        h.clock.t = 5.0
        return await h.controller.finish()

    assert run(scenario()) is None
    assert h.controller.state is SessionState.IDLE
    level, message = h.notices[-1]
    assert level == "error" and "MiniMax 请求超时" in message
    assert isinstance(h.controller.last_error, OracleTransportError)


def test_thinking_skip_starts_recording(run, tmp_path):
    h = Harness(tmp_path, thinking_seconds=30)

    async def scenario():
        skip = asyncio.Event()
        skip.set()
        started = await h.controller.think(skip)
        await h.controller.cancel()
        return started

    assert run(scenario()) is True
    assert h.states[:2] == [SessionState.THINKING, SessionState.RECORDING]


def test_thinking_timeout_starts_recording(run, tmp_path):
    h = Harness(tmp_path, thinking_seconds=0.01)

    async def scenario():
        started = await h.controller.think()
        state = h.controller.state
        await h.controller.cancel()
        return started, state

    assert run(scenario()) == (True, SessionState.RECORDING)


def test_recording_ceiling_finishes_automatically(run, tmp_path):
    h = Harness(tmp_path, events=SPOKEN, max_recording_seconds=0.01)

    async def scenario():
        await h.controller.start()
        h.clock.t = 120.0
        return await h.controller.record_until(asyncio.Event())

    assert run(scenario()) is not None
    assert h.controller.state is SessionState.COMPLETED


def test_recognition_unavailable_releases_microphone(run, tmp_path):
    h = Harness(tmp_path, restart_policy=RestartPolicy(max_consecutive_failures=1))

    class DeadRecognizer(FakeRecognizer):
        async def run(self, on_event):
            return

    h.controller.recognizer_factory = DeadRecognizer

    async def scenario():
        await h.controller.start()
        for _ in range(5):
            await asyncio.sleep(0)

    run(scenario())
    assert h.controller.recognition_unavailable
    assert h.controller.state is SessionState.IDLE
    assert h.mics[0].closed == 1


def test_invalid_transitions_rejected(run, tmp_path):
    h = Harness(tmp_path)
    with pytest.raises(InvalidTransition):
        run(h.controller.finish())
    with pytest.raises(InvalidTransition):
        h.controller._transition(SessionState.COMPLETED)


def test_completed_is_terminal(run, tmp_path):
    h = Harness(tmp_path, events=SPOKEN)

    async def scenario():
        await h.controller.start()
        h.clock.t = 3.0
        await h.controller.finish()

    run(scenario())
    for target in SessionState:
        with pytest.raises(InvalidTransition):
            h.controller._transition(target)


def test_unknown_mode_defaults_to_work(tmp_path):
    assert Harness(tmp_path, mode="family").controller.session.mode == "work"


class BrokenStore:
    def save(self, result):
        raise OSError("disk full")


def test_save_failure_still_completes(run, tmp_path):
    h = Harness(tmp_path, events=SPOKEN)
    h.controller.store = BrokenStore()

    async def scenario():
        await h.controller.start()
        h.clock.t = 3.0
        return await h.controller.finish()

    result = run(scenario())
    assert result is not None
    assert h.controller.state is SessionState.COMPLETED
    level, message = h.notices[-1]
    assert level == "warning" and message.startswith(SAVE_FAILED_MESSAGE)
    assert isinstance(h.controller.last_error, OSError)
    assert h.mics[0].closed == 1


def test_cancel_leaves_analyzing(run, tmp_path):
    h = Harness(tmp_path, events=SPOKEN)
    h.controller._transition(SessionState.RECORDING)
    h.controller._transition(SessionState.ANALYZING)
    run(h.controller.cancel())
    assert h.controller.state is SessionState.IDLE


def test_each_capture_starts_with_fresh_restart_budget(run, tmp_path):
    template = RestartPolicy(max_consecutive_failures=5, base_delay=0, failures=4)
    h = Harness(tmp_path, restart_policy=template)

    class SilentOnce(FakeRecognizer):
        runs = 0

        async def run(self, on_event):
            SilentOnce.runs += 1
            if SilentOnce.runs == 1:
                return
            await super().run(on_event)

    h.controller.recognizer_factory = SilentOnce

    async def scenario():
        await h.controller.start()
        for _ in range(5):
            await asyncio.sleep(0)
        state = h.controller.state
        await h.controller.cancel()
        return state

    assert run(scenario()) is SessionState.RECORDING
    assert not h.controller.recognition_unavailable
    assert SilentOnce.runs == 2
    assert template.failures == 4
