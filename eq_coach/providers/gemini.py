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
    """
    Uses the Gemini Developer API generateContent endpoint.
    System messages go to systemInstruction; the rest become user/model turns.
    """
    api_key = (api_key or Config.GEMINI_API_KEY or "").strip()
    if not api_key:
        raise ConfigurationError("分析服务未配置 (缺少 GEMINI_API_KEY)")

    base_url = Config.GEMINI_BASE_URL.rstrip("/")
    model = Config.GEMINI_MODEL.strip()

    # Gemini REST: POST /v1beta/models/{model}:generateContent
    url = f"{base_url}/v1beta/models/{model}:generateContent"

    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    contents = [
        {"role": "model" if m["role"] == "assistant" else "user", "parts": [{"text": m["content"]}]}
        for m in messages
        if m["role"] != "system"
    ]
    body: Dict[str, Any] = {
        "contents": contents,
        "generationConfig": {"temperature": temperature},
    }
    if system:
        body["systemInstruction"] = {"parts": [{"text": system}]}
    if max_tokens:
        body["generationConfig"]["maxOutputTokens"] = max_tokens

    headers = {
        "Content-Type": "application/json",
        "x-goog-api-key": api_key,
    }
    data = await post_json(url, body, headers=headers, timeout=timeout, transport=transport, label="Gemini")

    text = ""
    candidates = data.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
    if not text:
        raise MalformedOracleOutput("LLM 返回了空响应")
    return text
