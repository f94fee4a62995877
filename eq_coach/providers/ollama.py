from __future__ import annotations
from typing import Any, Dict, List, Optional

import httpx

from eq_coach.config import Config
from eq_coach.errors import MalformedOracleOutput
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
    """Local model through Ollama's /api/chat. No credentials needed."""
    base_url = Config.OLLAMA_URL.rstrip("/")
    options: Dict[str, Any] = {"temperature": temperature}
    if max_tokens:
        options["num_predict"] = max_tokens

    payload = {
        "model": Config.OLLAMA_MODEL,
        "messages": messages,
        "stream": False,
        "options": options,
    }
    data = await post_json(
        f"{base_url}/api/chat", payload, timeout=timeout, transport=transport, label="Ollama"
    )

    content = (data.get("message") or {}).get("content", "") or ""
    if not content:
        raise MalformedOracleOutput("LLM 返回了空响应")
    return content
