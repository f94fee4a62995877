"""FastAPI backend for EQ Coach."""

import logging
from typing import Tuple

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from eq_coach.analyzer import AnalysisService, read_analysis_input
from eq_coach.coach import create_coach
from eq_coach.config import Config
from eq_coach.errors import CoachError, ConfigurationError
from eq_coach.scenarios import ScenarioService
from eq_coach.transcriber import create_transcriber

logger = logging.getLogger(__name__)


def build_services(config=Config, *, coach=None, transcriber=None) -> Tuple[AnalysisService, ScenarioService]:
    """
    Construct the analysis and scenario services once. Mock mode and the length
    threshold are injected here, never read per request.
    """
    if coach is None:
        try:
            coach = create_coach(config.LLM_PROVIDER, api_key=config.llm_api_key())
            logger.info(f"Coach initialized: {config.LLM_PROVIDER}")
        except ConfigurationError as e:
            logger.error(f"ERROR initializing coach: {e}")
            coach = None

    if transcriber is None:
        try:
            transcriber = create_transcriber(config.STT_PROVIDER)
        except ConfigurationError as e:
            logger.error(f"ERROR initializing transcriber: {e}")
            transcriber = None

    for missing in config.validate():
        logger.warning(f"Missing configuration: {missing}")
    if config.MOCK_MODE:
        logger.info("MOCK MODE enabled: analysis returns the canned result")

    analysis = AnalysisService(
        coach,
        transcriber,
        mock_mode=config.MOCK_MODE,
        min_length=config.MIN_TEXT_LENGTH,
        mock_delay=config.MOCK_DELAY_SECONDS,
    )
    scenarios = ScenarioService(coach, timeout=config.SCENARIO_TIMEOUT_SECONDS)
    return analysis, scenarios


def create_app(config=Config, *, coach=None, transcriber=None) -> FastAPI:
    app = FastAPI(title="EQ Coach")

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.analysis, app.state.scenarios = build_services(config, coach=coach, transcriber=transcriber)

    @app.exception_handler(CoachError)
    async def coach_error_handler(request: Request, exc: CoachError):
        logger.error(f"[API] {request.method} {request.url.path} failed ({exc.code}): {exc.message}")
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"[API] {request.method} {request.url.path} crashed")
        return JSONResponse(CoachError(f"分析失败: {exc}").to_dict(), status_code=500)

    @app.post("/api/analyze")
    async def analyze(request: Request):
        """Analyze an utterance given as JSON text or as a multipart audio upload."""
        data = await read_analysis_input(request)
        result = await request.app.state.analysis.analyze(data)
        return {"success": True, "data": result.to_dict()}

    @app.get("/api/scenarios")
    async def scenarios(request: Request, mode: str = "work"):
        """Scenario cards for the selector. Always succeeds."""
        items = await request.app.state.scenarios.get_scenarios(mode)
        return {"success": True, "data": [s.to_dict() for s in items]}

    @app.get("/health")
    async def health():
        return {"status": "ok", "mock_mode": config.MOCK_MODE}

    return app


app = create_app()
