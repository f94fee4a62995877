"""LLM provider adapters.

Each adapter exposes ``async complete(messages, *, temperature, max_tokens, timeout, transport)``
and returns the raw reply text, so the rest of the app never calls a vendor API directly.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from eq_coach.errors import OracleTransportError

logger = logging.getLogger(__name__)


async def post_json(
    url: str,
    body: Dict[str, Any],
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 60,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    label: str = "LLM",
) -> Dict[str, Any]:
    """POST a JSON body and return the decoded reply, mapping failures to OracleTransportError."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            r = await client.post(url, json=body, headers=headers)
            r.raise_for_status()
            return r.json()
    except httpx.TimeoutException as e:
        logger.error(f"[{label}] Request timed out after {timeout}s: {e!r}")
        raise OracleTransportError(f"{label} 请求超时（{timeout:g} 秒）") from e
    except httpx.HTTPStatusError as e:
        text = e.response.text[:300]
        logger.error(f"[{label}] HTTP {e.response.status_code}: {text}")
        raise OracleTransportError(f"{label} 错误: {e.response.status_code} - {text}") from e
    except httpx.HTTPError as e:
        logger.error(f"[{label}] Network error: {e!r}")
        raise OracleTransportError(f"{label} 网络错误: {e}") from e
    except ValueError as e:
        # reply body was not JSON
        raise OracleTransportError(f"{label} 返回了非 JSON 响应") from e
