import httpx
import pytest

from eq_coach.errors import ConfigurationError, OracleTransportError
from eq_coach.transcriber import (
    DeepgramTranscriber,
    WhisperTranscriber,
    create_transcriber,
)


def test_whisper_uploads_multipart(run):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"text": "我注意到你最近很忙"})

    stt = WhisperTranscriber(url="http://stt.local/transcribe", transport=httpx.MockTransport(handler))
    text = run(stt.transcribe(b"webm-bytes", "audio.webm", "audio/webm"))
    assert text == "我注意到你最近很忙"
    assert seen[0].headers["content-type"].startswith("multipart/form-data")
    assert b"webm-bytes" in seen[0].content


def test_whisper_down_has_actionable_message(run):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    stt = WhisperTranscriber(url="http://localhost:5000/transcribe", transport=httpx.MockTransport(handler))
    with pytest.raises(OracleTransportError) as exc:
        run(stt.transcribe(b"x"))
    assert "Whisper" in exc.value.message


def test_whisper_http_error(run):
    stt = WhisperTranscriber(url="http://stt.local/transcribe",
                             transport=httpx.MockTransport(lambda r: httpx.Response(500, text="oom")))
    with pytest.raises(OracleTransportError):
        run(stt.transcribe(b"x"))


def test_deepgram_prerecorded(run):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={
            "results": {"channels": [{"alternatives": [{"transcript": " 你好世界 "}]}]}
        })

    stt = DeepgramTranscriber(api_key="dg", language="zh-CN", transport=httpx.MockTransport(handler))
    assert run(stt.transcribe(b"wav", "a.wav", "audio/wav")) == "你好世界"
    assert seen[0].headers["Authorization"] == "Token dg"
    assert seen[0].headers["Content-Type"] == "audio/wav"
    assert seen[0].url.params["language"] == "zh-CN"


def test_deepgram_without_key(run):
    with pytest.raises(ConfigurationError):
        run(DeepgramTranscriber(api_key="").transcribe(b"wav"))


def test_factory():
    assert isinstance(create_transcriber("whisper"), WhisperTranscriber)
    assert isinstance(create_transcriber("deepgram"), DeepgramTranscriber)
    with pytest.raises(ConfigurationError):
        create_transcriber("vosk")
