"""Data models for EQ Coach."""

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

Mode = Literal["work", "relationship"]
MODES = ("work", "relationship")
DEFAULT_MODE: Mode = "work"

SegmentType = Literal["highlight_good", "highlight_bad"]
SEGMENT_TYPES = ("highlight_good", "highlight_bad")


def normalize_mode(value: Optional[str]) -> Mode:
    """Unrecognized modes fall back to the default instead of erroring."""
    value = (value or "").strip().lower()
    return value if value in MODES else DEFAULT_MODE


@dataclass
class Segment:
    """A phrase of the analyzed text tagged as good or bad communication."""
    text: str
    type: SegmentType
    comment: str = ""
    start: Optional[int] = None  # character offset, when the oracle supplies one

    def to_dict(self):
        out = {"text": self.text, "type": self.type, "comment": self.comment}
        if self.start is not None:
            out["start"] = self.start
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Segment":
        return cls(
            text=data["text"],
            type=data["type"],
            comment=data.get("comment", ""),
            start=data.get("start"),
        )


@dataclass
class AnalysisResult:
    """Parsed and validated reply of the scoring oracle."""
    scores: Dict[str, int]
    diagnosis: str
    advice: List[str]  # advice[0] is the rewritten utterance
    segments: List[Segment]
    prep_analysis: Optional[Dict[str, Any]] = None
    original_transcript: Optional[str] = None

    @property
    def rewrite(self) -> str:
        return self.advice[0] if self.advice else ""

    def to_dict(self):
        out: Dict[str, Any] = {
            "scores": dict(self.scores),
            "diagnosis": self.diagnosis,
            "advice": list(self.advice),
            "segments": [s.to_dict() for s in self.segments],
        }
        if self.prep_analysis is not None:
            out["prep_analysis"] = dict(self.prep_analysis)
        if self.original_transcript is not None:
            out["original_transcript"] = self.original_transcript
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisResult":
        return cls(
            scores=dict(data["scores"]),
            diagnosis=data["diagnosis"],
            advice=list(data["advice"]),
            segments=[Segment.from_dict(s) for s in data["segments"]],
            prep_analysis=data.get("prep_analysis"),
            original_transcript=data.get("original_transcript"),
        )


@dataclass
class Scenario:
    """A simulated situation attached to the submitted text as context."""
    label: str
    prompt: str

    def to_dict(self):
        return {"label": self.label, "prompt": self.prompt}

    def tag(self, text: str) -> str:
        """Prepend this scenario to `text` as a bracketed tag."""
        return f"【当前场景：{self.label} - {self.prompt}】用户发言：{text}"


@dataclass
class AnalysisRequest:
    """A single submitted unit of work."""
    text: str
    mode: Mode = DEFAULT_MODE
    scenario: Optional[Scenario] = None
    audio: Optional[bytes] = None  # WAV recording, sent when there is no transcript

    def compose(self) -> str:
        """Text sent for analysis, with the scenario prepended as a bracketed tag."""
        if self.scenario is None:
            return self.text
        return self.scenario.tag(self.text)

    def to_dict(self):
        return {"text": self.compose(), "mode": self.mode}


@dataclass
class AnalysisInput:
    """What the analysis endpoint extracted from one HTTP request."""
    text: str = ""
    mode: Mode = DEFAULT_MODE
    audio: Optional[bytes] = None
    filename: str = "audio.webm"
    audio_content_type: str = "audio/webm"
    scenario: Optional[Scenario] = None  # tagged onto the text once it is known
