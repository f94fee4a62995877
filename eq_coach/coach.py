from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, List, Optional

import httpx

from eq_coach.config import Config
from eq_coach.errors import ConfigurationError
from eq_coach.models import AnalysisResult, Mode, Scenario
from eq_coach.prompt import build_scenario_prompt, build_system_prompt
from eq_coach.providers import gemini as gemini_provider
from eq_coach.providers import minimax as minimax_provider
from eq_coach.providers import ollama as ollama_provider
from eq_coach.schema import parse_analysis, parse_scenarios

logger = logging.getLogger(__name__)

CompleteFn = Callable[..., Awaitable[str]]

# Provider registry
PROVIDERS: Dict[str, CompleteFn] = {
    "minimax": minimax_provider.complete,
    "gemini": gemini_provider.complete,
    "ollama": ollama_provider.complete,
}

# Providers that run without credentials
KEYLESS_PROVIDERS = {"ollama"}


class Coach:
    """
    Scoring/rewrite oracle.

    The only place raw model text is seen: callers get a validated AnalysisResult
    or one of the CoachError subclasses.
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider_name = (provider or Config.LLM_PROVIDER).strip().lower()
        complete = PROVIDERS.get(self.provider_name)
        if complete is None:
            raise ConfigurationError(
                f"Unknown LLM provider '{self.provider_name}'. Valid: {', '.join(PROVIDERS.keys())}"
            )
        self._complete = complete
        self.api_key = api_key if api_key is not None else Config.llm_api_key(self.provider_name)
        self.timeout = timeout or Config.ANALYSIS_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def configured(self) -> bool:
        return self.provider_name in KEYLESS_PROVIDERS or bool((self.api_key or "").strip())

    def ensure_configured(self):
        """Missing credentials are a configuration error, distinct from an oracle outage."""
        if not self.configured:
            raise ConfigurationError(
                f"分析服务未配置 (缺少 {self.provider_name.upper()}_API_KEY)"
            )

    async def score(self, text: str, mode: Mode) -> AnalysisResult:
        self.ensure_configured()
        logger.info(f"[LLM] Analyzing with {self.provider_name}: {text[:200]}{'...' if len(text) > 200 else ''}")

        content = await self._complete(
            [
                {"role": "system", "content": build_system_prompt(mode)},
                {"role": "user", "content": text},
            ],
            temperature=0.7,
            timeout=self.timeout,
            transport=self.transport,
            api_key=self.api_key,
        )
        logger.debug(f"[LLM] Raw reply: {content[:300]}")

        result = parse_analysis(content)
        logger.info(f"[LLM] Analysis complete, scores: {result.scores}")
        return result

    async def generate_scenarios(self, mode: Mode, *, timeout: Optional[float] = None) -> List[Scenario]:
        self.ensure_configured()
        content = await self._complete(
            [{"role": "user", "content": build_scenario_prompt(mode)}],
            temperature=0.8,
            max_tokens=500,
            timeout=timeout or Config.SCENARIO_TIMEOUT_SECONDS,
            transport=self.transport,
            api_key=self.api_key,
        )
        scenarios = parse_scenarios(content)
        logger.info(f"[SCENARIOS] Generated {len(scenarios)} scenarios")
        return scenarios


def create_coach(provider: Optional[str] = None, **kwargs) -> Coach:
    """Factory for the configured coach."""
    return Coach(provider, **kwargs)
