"""Microphone capture: a fallible, exclusively-owned capability."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple, Union

import numpy as np

from eq_coach.errors import MicrophoneError

logger = logging.getLogger(__name__)

FrameCallback = Callable[[bytes], None]

_DENIED_MARKERS = ("permission", "not permitted", "access denied", "unauthorized")
_NOT_FOUND_MARKERS = ("no default input", "invalid device", "device unavailable", "no such device",
                      "no input device", "invalid number of channels")


def classify_device_error(error: BaseException) -> str:
    """Map a PortAudio/OS error to denied | not_found | other."""
    if isinstance(error, PermissionError):
        return "denied"
    msg = str(error).lower()
    if any(m in msg for m in _DENIED_MARKERS):
        return "denied"
    if any(m in msg for m in _NOT_FOUND_MARKERS):
        return "not_found"
    return "other"


def to_mono_int16(indata: np.ndarray) -> Tuple[bytes, float]:
    """
    Convert sounddevice callback 'indata' into mono PCM16 little-endian bytes.
    Uses the first channel only. Returns (pcm_bytes, rms_float_0_1).
    """
    x = np.asarray(indata)
    if x.ndim == 2 and x.shape[1] >= 1:
        mono = x[:, 0]
    else:
        mono = x.reshape(-1)

    if mono.dtype == np.int16:
        f = mono.astype(np.float32) / 32768.0
    else:
        f = mono.astype(np.float32)

    f = np.clip(f, -1.0, 1.0)
    pcm16 = (f * 32767.0).astype(np.int16).tobytes(order="C")
    rms = float(np.sqrt(np.mean(f * f)) + 1e-12) if f.size else 0.0
    return pcm16, rms


class Microphone(ABC):
    """At most one open stream per instance; close() is idempotent."""

    @abstractmethod
    async def open(self, on_frame: FrameCallback) -> None:
        """Acquire the device and start delivering PCM16 frames. Raises MicrophoneError."""

    @abstractmethod
    def close(self) -> None:
        """Release the device."""

    @property
    @abstractmethod
    def active(self) -> bool:
        pass


class SoundDeviceMicrophone(Microphone):
    """sounddevice InputStream delivering 16 kHz mono PCM16 frames on the event loop."""

    def __init__(self, device: Union[int, str, None] = None, sample_rate: int = 16000,
                 channels: int = 1, blocksize: int = 320):
        self.device = device
        self.sample_rate = sample_rate
        self.channels = channels
        self.blocksize = blocksize
        self.level = 0.0
        self._stream = None

    @property
    def active(self) -> bool:
        return self._stream is not None

    async def open(self, on_frame: FrameCallback) -> None:
        if self._stream is not None:
            raise MicrophoneError("other", "microphone already open")

        import sounddevice as sd

        loop = asyncio.get_running_loop()

        def audio_cb(indata, frames, time_info, status):
            if status:
                logger.debug(f"[MIC] sd_status: {status}")
            pcm16, rms = to_mono_int16(indata)
            self.level = rms
            loop.call_soon_threadsafe(on_frame, pcm16)

        stream = None
        try:
            sd.query_devices(self.device, kind="input")
            stream = sd.InputStream(
                device=self.device,
                samplerate=int(self.sample_rate),
                channels=int(self.channels),
                dtype="float32",
                blocksize=int(self.blocksize),
                callback=audio_cb,
            )
            stream.start()
        except (sd.PortAudioError, ValueError, OSError) as e:
            if stream is not None:
                # constructed but never started: the PortAudio handle is still open
                stream.close()
            cause = classify_device_error(e)
            logger.error(f"[MIC] Failed to open microphone ({cause}): {e!r}")
            raise MicrophoneError(cause, str(e)) from e

        self._stream = stream
        logger.info(f"[MIC] Capture started device={self.device} sr={self.sample_rate}")

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        logger.info("[MIC] Capture stopped")
