"""Client side of the analysis endpoint, used by the practice session."""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from eq_coach.analyzer import AnalysisService
from eq_coach.errors import OracleTransportError, error_from_payload
from eq_coach.models import AnalysisInput, AnalysisRequest, AnalysisResult, Scenario
from eq_coach.scenarios import ScenarioService

logger = logging.getLogger(__name__)


class AnalysisClient:
    """Talks to a running EQ Coach server over HTTP."""

    def __init__(self, base_url: str = "http://127.0.0.1:8010", *, timeout: float = 90.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def _send(self, method: str, path: str, **kwargs) -> dict:
        try:
            async with self._client() as client:
                r = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise OracleTransportError(f"无法连接分析服务: {e!r}") from e
        try:
            payload = r.json()
        except ValueError:
            raise OracleTransportError(f"分析服务返回了非 JSON 响应 (HTTP {r.status_code})")
        if not isinstance(payload, dict):
            raise OracleTransportError(f"分析服务返回了意外的响应 (HTTP {r.status_code})")
        if not payload.get("success"):
            raise error_from_payload(payload)
        return payload

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        if request.audio is not None:
            logger.info(f"[CLIENT] Uploading {len(request.audio)} bytes of audio")
            form = {"text": request.text, "mode": request.mode}
            if request.scenario is not None:
                # the server tags the transcription once it has one
                form["scenario_label"] = request.scenario.label
                form["scenario_prompt"] = request.scenario.prompt
            payload = await self._send(
                "POST", "/api/analyze",
                data=form,
                files={"file": ("recording.wav", request.audio, "audio/wav")},
            )
        else:
            payload = await self._send("POST", "/api/analyze", json=request.to_dict())
        return AnalysisResult.from_dict(payload["data"])

    async def scenarios(self, mode: str) -> List[Scenario]:
        payload = await self._send("GET", "/api/scenarios", params={"mode": mode})
        return [Scenario(label=s["label"], prompt=s["prompt"]) for s in payload["data"]]


class LocalAnalysisClient:
    """Same surface as AnalysisClient, backed by in-process services."""

    def __init__(self, service: AnalysisService, scenario_service: Optional[ScenarioService] = None):
        self.service = service
        self.scenario_service = scenario_service or ScenarioService(service.coach)

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        data = AnalysisInput(
            text=request.text,
            mode=request.mode,
            audio=request.audio,
            filename="recording.wav",
            audio_content_type="audio/wav",
            scenario=request.scenario,
        )
        return await self.service.analyze(data)

    async def scenarios(self, mode: str) -> List[Scenario]:
        return await self.scenario_service.get_scenarios(mode)
