"""Batch quality check: run fixed inputs through the analysis endpoint and summarize."""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional

from eq_coach.errors import EMPTY_INPUT, TOO_SHORT, CoachError
from eq_coach.models import AnalysisRequest

logger = logging.getLogger(__name__)


@dataclass
class EvalCase:
    name: str
    text: str
    expected: str
    expect_code: Optional[str] = None  # None: the analysis should succeed


EVAL_CASES = [
    EvalCase("常规案例", "同事总是打断我说话，我很不爽但又不知道怎么说。", "正常分析表达问题，给出高情商建议"),
    EvalCase("极简输入", "不知道说什么。", "能引导用户，而不是报错"),
    EvalCase("极端情绪", "我真想把老板杀了，气死我了！", "先安抚情绪，而不是直接分析逻辑"),
    EvalCase("胡言乱语", "啊啊啊123456哈哈哈", "不返回 500，要有兜底处理"),
    EvalCase("空白输入", "", "返回友好提示，不崩溃", EMPTY_INPUT),
    EvalCase("超短输入", "嗯", "提示内容太短", TOO_SHORT),
    EvalCase(
        "职场场景",
        "【当前场景：拒绝白嫖 - 同事想要免费要你的付费产品】用户发言：我觉得吧，这个东西其实也不是很贵...",
        "识别场景并给出针对性建议",
    ),
    EvalCase(
        "亲密关系场景",
        "【当前场景：家务分配 - 只有你一个人在干活】用户发言：算了，我自己做吧。",
        "识别讨好型人格倾向",
    ),
]


@dataclass
class EvalOutcome:
    name: str
    text: str
    status: int
    passed: bool
    code: Optional[str] = None
    scores: Optional[Dict[str, int]] = None
    diagnosis: Optional[str] = None
    rewrite: Optional[str] = None
    error: Optional[str] = None


async def run_case(client, case: EvalCase, mode: str = "work") -> EvalOutcome:
    try:
        result = await client.analyze(AnalysisRequest(text=case.text, mode=mode))
    except CoachError as e:
        logger.info(f"[EVAL] {case.name}: {e.code} ({e.status_code})")
        return EvalOutcome(
            name=case.name, text=case.text, status=e.status_code,
            passed=case.expect_code == e.code, code=e.code, error=e.message,
        )
    logger.info(f"[EVAL] {case.name}: ok")
    return EvalOutcome(
        name=case.name, text=case.text, status=200, passed=case.expect_code is None,
        scores=dict(result.scores), diagnosis=result.diagnosis, rewrite=result.rewrite,
    )


async def run_evals(client, cases: List[EvalCase] = EVAL_CASES, *, mode: str = "work",
                    pause: float = 0.0) -> List[EvalOutcome]:
    """Cases run one at a time, `pause` seconds apart, to stay under provider rate limits."""
    outcomes = []
    for i, case in enumerate(cases):
        if i and pause:
            await asyncio.sleep(pause)
        outcomes.append(await run_case(client, case, mode))
    return outcomes


def summarize(outcomes: List[EvalOutcome]) -> str:
    lines = []
    for o in outcomes:
        mark = "PASS" if o.passed else "FAIL"
        if o.scores:
            detail = " | ".join(f"{k}={v}" for k, v in o.scores.items())
        else:
            detail = f"{o.code}: {o.error}"
        lines.append(f"[{mark}] {o.name} (HTTP {o.status}) {detail}")
    passed = sum(o.passed for o in outcomes)
    lines.append("")
    lines.append(f"通过: {passed}/{len(outcomes)}")
    crashed = [o.name for o in outcomes if o.status >= 500]
    if crashed:
        lines.append(f"服务器错误: {', '.join(crashed)}")
    return "\n".join(lines)


def write_outcomes(outcomes: List[EvalOutcome], path) -> None:
    Path(path).write_text(
        json.dumps([asdict(o) for o in outcomes], ensure_ascii=False, indent=2), encoding="utf-8"
    )
