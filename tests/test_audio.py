import io
import sys
import types
import wave

import numpy as np
import pytest

from eq_coach.audio import SoundDeviceMicrophone, classify_device_error, to_mono_int16
from eq_coach.errors import MicrophoneError
from eq_coach.recognizer import build_deepgram_url
from eq_coach.session import pcm_to_wav


@pytest.mark.parametrize("error, cause", [
    (PermissionError("nope"), "denied"),
    (OSError("Error opening InputStream: Permission denied [PaErrorCode -9986]"), "denied"),
    (ValueError("No input device matching 'USB'"), "not_found"),
    (OSError("Error querying device -1: no default input device"), "not_found"),
    (OSError("Internal PortAudio error"), "other"),
])
def test_classify_device_error(error, cause):
    assert classify_device_error(error) == cause


def test_to_mono_int16_takes_first_channel():
    stereo = np.array([[0.5, -1.0], [-0.5, 1.0], [2.0, 0.0]], dtype=np.float32)
    pcm, rms = to_mono_int16(stereo)
    samples = np.frombuffer(pcm, dtype=np.int16)
    assert samples.tolist() == [16383, -16383, 32767]
    assert 0.0 < rms <= 1.0


def test_to_mono_int16_silence():
    pcm, rms = to_mono_int16(np.zeros((4, 1), dtype=np.float32))
    assert pcm == b"\x00" * 8
    assert rms < 1e-6


def test_pcm_to_wav():
    data = pcm_to_wav([b"\x01\x00" * 100, b"\x02\x00" * 60], 16000)
    with wave.open(io.BytesIO(data), "rb") as wav:
        assert wav.getframerate() == 16000
        assert wav.getnchannels() == 1
        assert wav.getnframes() == 160


def test_deepgram_url():
    url = build_deepgram_url(16000, "nova-2", "zh-CN")
    assert url.startswith("wss://api.deepgram.com/v1/listen?")
    assert "sample_rate=16000" in url and "language=zh-CN" in url and "interim_results=true" in url


class FakePortAudioError(Exception):
    pass


class FakeInputStream:
    def __init__(self, start_error=None, **kwargs):
        self.kwargs = kwargs
        self.start_error = start_error
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True


def fake_sounddevice(monkeypatch, start_error=None):
    streams = []

    def make_stream(**kwargs):
        stream = FakeInputStream(start_error, **kwargs)
        streams.append(stream)
        return stream

    module = types.SimpleNamespace(
        PortAudioError=FakePortAudioError,
        query_devices=lambda device=None, kind=None: {"name": "fake"},
        InputStream=make_stream,
    )
    monkeypatch.setitem(sys.modules, "sounddevice", module)
    return streams


def test_microphone_open_and_close(run, monkeypatch):
    streams = fake_sounddevice(monkeypatch)
    mic = SoundDeviceMicrophone()

    async def scenario():
        await mic.open(lambda pcm: None)
        active = mic.active
        mic.close()
        mic.close()
        return active

    assert run(scenario()) is True
    assert streams[0].started and streams[0].stopped and streams[0].closed
    assert not mic.active


def test_stream_closed_when_start_fails(run, monkeypatch):
    streams = fake_sounddevice(monkeypatch, start_error=FakePortAudioError("Error starting stream: Device unavailable"))
    mic = SoundDeviceMicrophone()
    with pytest.raises(MicrophoneError) as exc:
        run(mic.open(lambda pcm: None))
    assert exc.value.cause == "not_found"
    assert streams[0].closed
    assert not mic.active
