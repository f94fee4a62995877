"""Canned analysis returned in mock mode and shown when no result is stored."""

import copy

from eq_coach.models import AnalysisResult

MOCK_ANALYSIS = {
    "scores": {
        "empathy": 55,
        "nvc_score": 40,
        "safety": 60,
    },
    "diagnosis": "表达中带有指责和评判，容易让对方产生防御心理。",
    "prep_analysis": {
        "point_detected": True,
        "conclusion_position": "end",
    },
    "advice": [
        "我注意到这周你迟到了三次（观察），我有些担心项目进度（感受），因为我需要团队协作顺畅（需求），你能告诉我最近是不是遇到了什么困难吗？（请求）",
        "避免使用「你总是」「你从不」这类绝对化表达，改用「我注意到」开头描述具体事实。",
        "表达感受时用「我觉得担心/困惑/着急」，而不是「你让我很生气」，把情绪归属放在自己身上。",
    ],
    "segments": [
        {
            "text": "你总是迟到",
            "type": "highlight_bad",
            "comment": "「总是」是评判性词汇，会让对方感到被攻击。改为「这周有三次迟到」更客观。",
        },
        {
            "text": "我注意到项目进度受到了影响",
            "type": "highlight_good",
            "comment": "好！用「我注意到」开头，描述客观事实而非评价。",
        },
        {
            "text": "你能理解一下我的压力吗",
            "type": "highlight_bad",
            "comment": "这是变相的指责。改为表达自己的需求：「我需要更稳定的协作节奏」。",
        },
        {
            "text": "我们一起想想办法好吗",
            "type": "highlight_good",
            "comment": "邀请式结尾，体现合作意愿，是高情商的表达。",
        },
    ],
    "original_transcript": "你总是迟到，我注意到项目进度受到了影响。你能理解一下我的压力吗？我们一起想想办法好吗？",
}


def mock_analysis_result() -> AnalysisResult:
    """A fresh copy every call, so mock mode never depends on hidden state."""
    return AnalysisResult.from_dict(copy.deepcopy(MOCK_ANALYSIS))
