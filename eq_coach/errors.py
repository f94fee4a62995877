"""Error taxonomy shared by the service, the oracle adapters and the session controller."""

from typing import Literal, Optional


class CoachError(Exception):
    """Base error. Carries an HTTP status and a stable machine code."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self):
        return {"success": False, "error": self.message, "code": self.code}


class InputValidationError(CoachError):
    """Rejected before any oracle is contacted."""

    status_code = 400
    code = "INVALID_INPUT"


EMPTY_INPUT = "EMPTY_INPUT"
TOO_SHORT = "TOO_SHORT"
UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"


def empty_input_error() -> InputValidationError:
    return InputValidationError("没有检测到语音内容或文本，请重新录音", code=EMPTY_INPUT)


def too_short_error(min_length: int) -> InputValidationError:
    return InputValidationError(
        f"{TOO_SHORT}: 内容太少（少于{min_length}个字），请多说一点再试",
        code=TOO_SHORT,
    )


def unsupported_format_error(content_type: str) -> InputValidationError:
    return InputValidationError(f"不支持的请求格式: {content_type}", code=UNSUPPORTED_FORMAT)


class ConfigurationError(CoachError):
    """Required credentials or settings are absent; retrying cannot help."""

    status_code = 500
    code = "NOT_CONFIGURED"


class OracleTransportError(CoachError):
    """Network failure, timeout or non-2xx reply from an oracle."""

    status_code = 502
    code = "ORACLE_UNAVAILABLE"


class MalformedOracleOutput(CoachError):
    """The LLM reply could not be parsed into a complete result."""

    status_code = 500
    code = "MALFORMED_OUTPUT"


MicCause = Literal["denied", "not_found", "other"]


class MicrophoneError(Exception):
    """Microphone acquisition failed."""

    def __init__(self, cause: MicCause, message: str = ""):
        super().__init__(message or cause)
        self.cause = cause


class RecognitionUnavailable(Exception):
    """Streaming recognition kept ending immediately after restarts."""


class InvalidTransition(Exception):
    """A session state change that the transition table does not allow."""


ERROR_CLASSES = {
    EMPTY_INPUT: InputValidationError,
    TOO_SHORT: InputValidationError,
    UNSUPPORTED_FORMAT: InputValidationError,
    InputValidationError.code: InputValidationError,
    ConfigurationError.code: ConfigurationError,
    OracleTransportError.code: OracleTransportError,
    MalformedOracleOutput.code: MalformedOracleOutput,
}


def error_from_payload(payload: dict) -> CoachError:
    """Rebuild an error from a `{success: false, error, code}` reply."""
    code = str(payload.get("code") or "")
    message = str(payload.get("error") or "分析失败")
    if not code and message.startswith(TOO_SHORT):
        code = TOO_SHORT
    cls = ERROR_CLASSES.get(code, CoachError)
    return cls(message, code=code or None)
