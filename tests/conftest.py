import asyncio
import copy

import pytest

from eq_coach.config import Config
from eq_coach.mock_data import MOCK_ANALYSIS
from eq_coach.models import AnalysisResult, Scenario


def sample_result(**overrides) -> AnalysisResult:
    data = copy.deepcopy(MOCK_ANALYSIS)
    data.pop("original_transcript")
    data.update(overrides)
    return AnalysisResult.from_dict(data)


class FakeCoach:
    """Stands in for the LLM oracle and records every call."""

    def __init__(self, result=None, error=None, scenarios=None, scenario_error=None,
                 scenario_delay=0.0, configured=True):
        self.result = result or sample_result()
        self.error = error
        self.scenarios = scenarios or [Scenario("周报", "老板让你解释为什么进度落后")]
        self.scenario_error = scenario_error
        self.scenario_delay = scenario_delay
        self.configured = configured
        self.calls = []
        self.scenario_calls = 0

    async def score(self, text, mode):
        self.calls.append((text, mode))
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.result)

    async def generate_scenarios(self, mode, *, timeout=None):
        self.scenario_calls += 1
        if self.scenario_delay:
            await asyncio.sleep(self.scenario_delay)
        if self.scenario_error is not None:
            raise self.scenario_error
        return list(self.scenarios)


class FakeTranscriber:
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def transcribe(self, audio, filename="audio.webm", content_type="audio/webm"):
        self.calls.append((audio, filename, content_type))
        if self.error is not None:
            raise self.error
        return self.text


def make_config(**overrides):
    """A Config subclass with test-friendly defaults and the given overrides."""
    attrs = {
        "MOCK_MODE": False,
        "MOCK_DELAY_SECONDS": 0.0,
        "MIN_TEXT_LENGTH": 5,
        "SCENARIO_TIMEOUT_SECONDS": 8.0,
        "LLM_PROVIDER": "minimax",
        "MINIMAX_API_KEY": "test-key",
        "STT_PROVIDER": "whisper",
    }
    attrs.update(overrides)
    return type("ConfigForTests", (Config,), attrs)


@pytest.fixture
def fake_coach():
    return FakeCoach()


@pytest.fixture
def fake_transcriber():
    return FakeTranscriber()


@pytest.fixture
def run():
    return asyncio.run
