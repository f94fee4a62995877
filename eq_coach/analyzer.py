"""Analysis request normalizer: turns one HTTP request into a validated AnalysisResult."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile
from starlette.requests import Request

from eq_coach.errors import (
    ConfigurationError,
    InputValidationError,
    empty_input_error,
    too_short_error,
    unsupported_format_error,
)
from eq_coach.mock_data import mock_analysis_result
from eq_coach.models import AnalysisInput, AnalysisResult, Scenario, normalize_mode
from eq_coach.report import extract_scenario, locate_segments
from eq_coach.transcriber import Transcriber

logger = logging.getLogger(__name__)


# Request models
class AnalyzeBody(BaseModel):
    text: Optional[str] = None
    mode: Optional[str] = None


def _form_scenario(form) -> Optional[Scenario]:
    label = form.get("scenario_label")
    prompt = form.get("scenario_prompt")
    if isinstance(label, str) and label.strip():
        return Scenario(label=label.strip(), prompt=prompt.strip() if isinstance(prompt, str) else "")
    return None


async def read_analysis_input(request: Request) -> AnalysisInput:
    """Inspect the declared content type and pull text, audio and mode out of the body."""
    content_type = request.headers.get("content-type", "")

    if "multipart/form-data" in content_type or "application/x-www-form-urlencoded" in content_type:
        form = await request.form()
        mode = normalize_mode(form.get("mode") if isinstance(form.get("mode"), str) else None)
        upload = form.get("file")
        text = form.get("text")
        parsed = AnalysisInput(text=text if isinstance(text, str) else "", mode=mode,
                               scenario=_form_scenario(form))
        if isinstance(upload, UploadFile):
            audio = await upload.read()
            if audio:
                parsed.audio = audio
                parsed.filename = upload.filename or parsed.filename
                parsed.audio_content_type = upload.content_type or parsed.audio_content_type
        logger.info(
            f"[ANALYZE] Form request: audio={len(parsed.audio or b'')} bytes, "
            f"text={len(parsed.text)} chars, mode={mode}"
        )
        return parsed

    if "application/json" in content_type:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise InputValidationError("请求体不是合法的 JSON")
        try:
            parsed = AnalyzeBody.model_validate(body)
        except ValidationError as e:
            raise InputValidationError(f"请求体格式错误: {e.errors()[0].get('msg', 'invalid')}")
        mode = normalize_mode(parsed.mode)
        logger.info(f"[ANALYZE] JSON request, mode={mode}")
        return AnalysisInput(text=parsed.text or "", mode=mode)

    logger.error(f"[ANALYZE] Unsupported Content-Type: {content_type!r}")
    raise unsupported_format_error(content_type)


def prune_segments(result: AnalysisResult, text: str) -> AnalysisResult:
    """Drop segments that do not occur verbatim in the analyzed text."""
    kept = locate_segments(text, result.segments)
    dropped = len(result.segments) - len(kept)
    if dropped:
        logger.warning(f"[ANALYZE] Dropped {dropped} segment(s) not found verbatim in the input")
    result.segments = kept
    return result


class AnalysisService:
    """
    Stateless request -> result transform.

    mock_mode and min_length are fixed at construction; nothing here reads the
    environment.
    """

    def __init__(self, coach=None, transcriber: Optional[Transcriber] = None, *,
                 mock_mode: bool = False, min_length: int = 5, mock_delay: float = 1.5):
        self.coach = coach
        self.transcriber = transcriber
        self.mock_mode = mock_mode
        self.min_length = min_length
        self.mock_delay = mock_delay

    async def extract_text(self, data: AnalysisInput) -> str:
        if data.audio:
            if self.transcriber is None:
                logger.error("[ANALYZE] Audio uploaded but no transcriber configured")
                raise ConfigurationError("语音识别服务未配置")
            return await self.transcriber.transcribe(data.audio, data.filename, data.audio_content_type)
        return data.text

    @staticmethod
    def attach_scenario(data: AnalysisInput, text: str) -> str:
        """Tag `text` with the submitted scenario unless it already carries one."""
        if data.scenario is None or extract_scenario(text)[0] is not None:
            return text
        return data.scenario.tag(text)

    def validate_text(self, text: str) -> str:
        """Length rules apply to what the user said, not to an attached scenario tag."""
        stripped = (text or "").strip()
        spoken = extract_scenario(stripped)[1].strip() if stripped else ""
        if not spoken:
            logger.error("[ANALYZE] No text to analyze")
            raise empty_input_error()
        if len(spoken) < self.min_length:
            logger.error(f"[ANALYZE] Text too short: {spoken!r}")
            raise too_short_error(self.min_length)
        return text

    async def analyze(self, data: AnalysisInput) -> AnalysisResult:
        if self.mock_mode:
            return await self._analyze_mock(data)

        text = self.attach_scenario(data, self.validate_text(await self.extract_text(data)))
        logger.info(f"[ANALYZE] Text to analyze: {text[:100]}{'...' if len(text) > 100 else ''}")

        if self.coach is None:
            raise ConfigurationError("分析服务未配置")

        result = await self.coach.score(text, data.mode)
        result.original_transcript = text
        return prune_segments(result, text)

    async def _analyze_mock(self, data: AnalysisInput) -> AnalysisResult:
        """Canned result after a simulated delay. No oracle is contacted."""
        logger.info("[ANALYZE] MOCK MODE: returning canned result")
        result = mock_analysis_result()
        text = data.text
        if data.audio and not text.strip():
            text = result.original_transcript or ""
        text = self.attach_scenario(data, self.validate_text(text))
        if self.mock_delay > 0:
            await asyncio.sleep(self.mock_delay)
        result.original_transcript = text
        return prune_segments(result, text)
