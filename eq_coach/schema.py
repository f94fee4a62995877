from __future__ import annotations
from typing import Any, Dict, List
import json
import re

from eq_coach.errors import MalformedOracleOutput
from eq_coach.models import SEGMENT_TYPES, AnalysisResult, Scenario, Segment

REQUIRED_KEYS = ["scores", "diagnosis", "advice", "segments"]

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json_text(text: str) -> str:
    """
    Best-effort extraction of the JSON object from a free-form model reply.

    A fenced ```json block wins; otherwise slice from the first "{" to the last "}".
    """
    if text is None:
        raise MalformedOracleOutput("LLM 返回了空响应")
    s = text.strip()
    if not s:
        raise MalformedOracleOutput("LLM 返回了空响应")

    m = _FENCE_RE.search(s)
    if m:
        s = m.group(1).strip()

    # direct JSON
    if s.startswith("{") and s.endswith("}"):
        return s

    start = s.find("{")
    end = s.rfind("}")
    if start != -1 and end != -1 and end > start:
        return s[start:end + 1]

    raise MalformedOracleOutput("LLM 返回的内容中没有 JSON 对象")


def try_parse_json(text: str) -> Dict[str, Any]:
    chunk = extract_json_text(text)
    try:
        obj = json.loads(chunk)
    except json.JSONDecodeError as e:
        raise MalformedOracleOutput(f"LLM 返回的 JSON 无法解析: {e}") from e
    if not isinstance(obj, dict):
        raise MalformedOracleOutput("LLM 没有返回 JSON 对象")
    return obj


def _clamp_score(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        try:
            value = float(str(value).strip())
        except ValueError:
            raise MalformedOracleOutput(f"评分 {name} 不是数字: {value!r}")
    return max(0, min(100, int(round(value))))


def _parse_segment(raw: Any) -> Segment:
    if not isinstance(raw, dict):
        raise MalformedOracleOutput("segments 中的元素不是对象")
    text = raw.get("text")
    seg_type = raw.get("type")
    if not isinstance(text, str) or seg_type not in SEGMENT_TYPES:
        raise MalformedOracleOutput(f"segment 结构不完整: {raw!r}")
    start = raw.get("start")
    if isinstance(start, bool) or not isinstance(start, int) or start < 0:
        start = None
    return Segment(text=text, type=seg_type, comment=str(raw.get("comment") or ""), start=start)


def validate_analysis(obj: Dict[str, Any]) -> AnalysisResult:
    """
    Every required key must be present with the right shape.
    Nothing is defaulted: a half-filled result would corrupt the report silently.
    """
    missing = [k for k in REQUIRED_KEYS if k not in obj]
    if missing:
        raise MalformedOracleOutput(f"LLM 返回结果缺少字段: {', '.join(missing)}")

    scores = obj["scores"]
    if not isinstance(scores, dict) or not scores:
        raise MalformedOracleOutput("scores 必须是非空对象")

    diagnosis = obj["diagnosis"]
    if not isinstance(diagnosis, str):
        raise MalformedOracleOutput("diagnosis 必须是字符串")

    advice = obj["advice"]
    if not isinstance(advice, list) or not all(isinstance(a, str) for a in advice):
        raise MalformedOracleOutput("advice 必须是字符串数组")

    segments = obj["segments"]
    if not isinstance(segments, list):
        raise MalformedOracleOutput("segments 必须是数组")

    prep = obj.get("prep_analysis")
    return AnalysisResult(
        scores={str(k): _clamp_score(k, v) for k, v in scores.items()},
        diagnosis=diagnosis.strip(),
        advice=[a.strip() for a in advice],
        segments=[_parse_segment(s) for s in segments],
        prep_analysis=prep if isinstance(prep, dict) else None,
    )


def parse_analysis(text: str) -> AnalysisResult:
    return validate_analysis(try_parse_json(text))


def parse_scenarios(text: str) -> List[Scenario]:
    """Extract the JSON array of {label, prompt} from a scenario-generation reply."""
    s = (text or "").strip()
    start = s.find("[")
    end = s.rfind("]")
    if start == -1 or end == -1 or end < start:
        raise MalformedOracleOutput("场景生成结果格式错误")
    try:
        items = json.loads(s[start:end + 1])
    except json.JSONDecodeError as e:
        raise MalformedOracleOutput(f"场景生成结果无法解析: {e}") from e

    if not isinstance(items, list) or not items:
        raise MalformedOracleOutput("场景生成结果为空")

    out: List[Scenario] = []
    for item in items:
        if not isinstance(item, dict):
            raise MalformedOracleOutput("场景格式错误")
        label = str(item.get("label") or "").strip()
        prompt = str(item.get("prompt") or "").strip()
        if not label or not prompt:
            raise MalformedOracleOutput("场景缺少 label 或 prompt")
        out.append(Scenario(label=label, prompt=prompt))
    return out
