"""Report rendering: reconcile oracle segments with the transcript and render the result."""

from __future__ import annotations

import dataclasses
import html
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from eq_coach.mock_data import mock_analysis_result
from eq_coach.models import AnalysisResult, Segment

_SCENARIO_TAG_RE = re.compile(r"【当前场景[：:]\s*([^】]+?)(?:\s*[-–]\s*[^】]+)?】")
_USER_SPEECH_RE = re.compile(r"用户发言[：:]\s*([\s\S]*)")
_STEP_RE = re.compile(r"[（(]([^）)]+)[）)]")
_CLAUSE_TAIL_RE = re.compile(r"[，。？！,!?][^，。？！,!?]*$")


@dataclass
class Piece:
    """A run of transcript text; highlighted when it carries a segment."""
    text: str
    segment: Optional[Segment] = None

    @property
    def highlighted(self) -> bool:
        return self.segment is not None


def extract_scenario(text: str) -> Tuple[Optional[str], str]:
    """Split a `【当前场景：...】用户发言：...` submission into (scenario label, spoken text)."""
    text = text or ""
    scenario = _SCENARIO_TAG_RE.search(text)
    speech = _USER_SPEECH_RE.search(text)
    if scenario and speech:
        return scenario.group(1).strip(), speech.group(1).strip()

    clean = re.sub(r"【当前场景[：:][\s\S]*?】\s*", "", text)
    clean = re.sub(r"用户发言[：:]\s*", "", clean).strip()
    return (scenario.group(1).strip() if scenario else None), (clean or text)


def _overlaps(start: int, end: int, claimed: List[Tuple[int, int]]) -> bool:
    return any(start < c_end and c_start < end for c_start, c_end in claimed)


def locate_segments(text: str, segments: List[Segment]) -> List[Segment]:
    """
    Pin each segment to a position in `text`.

    A segment that carries a valid `start` offset is placed there; otherwise it
    takes the first occurrence not already claimed by another segment. Segments
    that do not occur verbatim (e.g. the model paraphrased) are dropped.
    Returns copies with `start` filled in, ordered by position.
    """
    text = text or ""
    claimed: List[Tuple[int, int]] = []
    placed: List[Segment] = []

    candidates = [s for s in segments if s.text and s.text.strip()]
    with_offset = [s for s in candidates if s.start is not None and text[s.start:s.start + len(s.text)] == s.text]
    without_offset = [s for s in candidates if not any(s is w for w in with_offset)]

    for seg in with_offset:
        start, end = seg.start, seg.start + len(seg.text)
        if _overlaps(start, end, claimed):
            without_offset.append(seg)
            continue
        claimed.append((start, end))
        placed.append(dataclasses.replace(seg))

    for seg in without_offset:
        pos = text.find(seg.text)
        while pos != -1 and _overlaps(pos, pos + len(seg.text), claimed):
            pos = text.find(seg.text, pos + 1)
        if pos == -1:
            continue
        claimed.append((pos, pos + len(seg.text)))
        placed.append(dataclasses.replace(seg, start=pos))

    return sorted(placed, key=lambda s: s.start)


def highlight(text: str, segments: List[Segment]) -> List[Piece]:
    """Cut `text` into plain and highlighted pieces that concatenate back to `text`."""
    text = text or ""
    pieces: List[Piece] = []
    cursor = 0
    for seg in locate_segments(text, segments):
        if seg.start > cursor:
            pieces.append(Piece(text[cursor:seg.start]))
        pieces.append(Piece(seg.text, seg))
        cursor = seg.start + len(seg.text)
    if cursor < len(text) or not pieces:
        pieces.append(Piece(text[cursor:]))
    return pieces


def extract_formula_steps(text: str) -> Tuple[str, List[Tuple[str, str]]]:
    """
    Read the bracketed NVC step markers out of the rewrite.

    "我注意到你迟到了（观察），我很担心（感受）" ->
        ("我注意到你迟到了，我很担心", [("Step 1: 观察", "我注意到你迟到了"), ("Step 2: 感受", "我很担心")])
    """
    steps: List[Tuple[str, str]] = []
    for match in _STEP_RE.finditer(text or ""):
        # "...困难吗？（请求）": the marker may follow the clause's own punctuation
        before = text[:match.start()].rstrip("，。？！,!? ")
        tail = _CLAUSE_TAIL_RE.search(before)
        content = tail.group(0)[1:].strip() if tail else before[-20:].strip()
        if content and match.group(1):
            steps.append((f"Step {len(steps) + 1}: {match.group(1)}", content))
    full_text = _STEP_RE.sub("", text or "").strip()
    return full_text, steps


class ReportView:
    """Everything the report screen shows, derived from one stored AnalysisResult."""

    def __init__(self, result: AnalysisResult):
        self.result = result
        original = result.original_transcript or ""
        self.scenario, self.clean_text = extract_scenario(original)
        self.rewrite, self.steps = extract_formula_steps(result.rewrite)

    @classmethod
    def from_store(cls, store) -> "ReportView":
        return cls(store.load() or mock_analysis_result())

    @property
    def tips(self) -> List[str]:
        return self.result.advice[1:]

    @property
    def pieces(self) -> List[Piece]:
        original = self.result.original_transcript or ""
        shift = original.find(self.clean_text) if self.clean_text else -1
        segments = self.result.segments
        if shift > 0:
            # offsets were computed against the tagged submission
            segments = [
                dataclasses.replace(s, start=s.start - shift) if s.start is not None and s.start >= shift
                else dataclasses.replace(s, start=None)
                for s in segments
            ]
        return highlight(self.clean_text, segments)


def render_html(view: ReportView) -> str:
    r = view.result
    parts = ['<article class="eq-report">']
    if view.scenario:
        parts.append(f'<p class="scenario">场景：{html.escape(view.scenario)}</p>')
    parts.append('<ul class="scores">')
    for name, value in r.scores.items():
        parts.append(f'<li data-score="{html.escape(name)}">{html.escape(name)}: {value}</li>')
    parts.append("</ul>")
    parts.append(f'<p class="diagnosis">{html.escape(r.diagnosis)}</p>')

    transcript = []
    for piece in view.pieces:
        if piece.segment is None:
            transcript.append(html.escape(piece.text))
            continue
        kind = "good" if piece.segment.type == "highlight_good" else "bad"
        label = "亮点：" if kind == "good" else "建议："
        transcript.append(
            f'<details class="segment {kind}"><summary>{html.escape(piece.text)}</summary>'
            f"{label}{html.escape(piece.segment.comment)}</details>"
        )
    parts.append(f'<p class="transcript">{"".join(transcript) or "（未获取到原始文本）"}</p>')

    if view.rewrite:
        parts.append(f'<blockquote class="rewrite">{html.escape(view.rewrite)}</blockquote>')
    if view.steps:
        parts.append('<ol class="steps">')
        for label, content in view.steps:
            parts.append(f"<li><b>{html.escape(label)}</b> {html.escape(content)}</li>")
        parts.append("</ol>")
    if view.tips:
        parts.append('<ul class="tips">')
        parts.extend(f"<li>{html.escape(tip)}</li>" for tip in view.tips)
        parts.append("</ul>")
    parts.append("</article>")
    return "\n".join(parts)


_GREEN = "\033[32;4m"
_RED = "\033[31;4m"
_RESET = "\033[0m"


def render_terminal(view: ReportView, color: bool = True) -> str:
    r = view.result
    lines = []
    if view.scenario:
        lines.append(f"场景: {view.scenario}")
    lines.append("评分: " + "  ".join(f"{k}={v}" for k, v in r.scores.items()))
    lines.append(f"诊断: {r.diagnosis}")
    lines.append("")

    body, notes = [], []
    for piece in view.pieces:
        if piece.segment is None:
            body.append(piece.text)
            continue
        good = piece.segment.type == "highlight_good"
        marker = f"[{len(notes) + 1}]"
        if color:
            body.append(f"{_GREEN if good else _RED}{piece.text}{_RESET}{marker}")
        else:
            body.append(f"{'+' if good else '-'}{piece.text}{marker}")
        notes.append(f"  {marker} {'亮点' if good else '建议'}: {piece.segment.comment}")
    lines.append("原话: " + ("".join(body) or "（未获取到原始文本）"))
    lines.extend(notes)
    lines.append("")

    if view.rewrite:
        lines.append(f"高情商版本: {view.rewrite}")
        for label, content in view.steps:
            lines.append(f"  {label} - {content}")
    for tip in view.tips:
        lines.append(f"* {tip}")
    return "\n".join(lines)
