from __future__ import annotations
from typing import Any, Dict, List, Optional

import httpx

from eq_coach.config import Config
from eq_coach.errors import ConfigurationError, MalformedOracleOutput
from eq_coach.providers import post_json


async def complete(
    messages: List[Dict[str, str]],
    *,
    temperature: float = 0.7,
    max_tokens: Optional[int] = None,
    timeout: float = 60,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    api_key: Optional[str] = None,
) -> str:
    """MiniMax chat completion (OpenAI-style messages)."""
    api_key = (api_key or Config.MINIMAX_API_KEY or "").strip()
    if not api_key:
        raise ConfigurationError("分析服务未配置 (缺少 MINIMAX_API_KEY)")

    body: Dict[str, Any] = {
        "model": Config.MINIMAX_MODEL,
        "messages": messages,
        "temperature": temperature,
    }
    if max_tokens:
        body["max_tokens"] = max_tokens

    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    data = await post_json(
        Config.MINIMAX_API_URL, body, headers=headers, timeout=timeout, transport=transport, label="MiniMax"
    )

    choices = data.get("choices") or []
    content = ""
    if choices and isinstance(choices[0], dict):
        content = (choices[0].get("message") or {}).get("content") or ""
    if not content:
        raise MalformedOracleOutput("LLM 返回了空响应")
    return content
