"""
Microphone capture through PyAudio callback streams.

The stream callback runs on a PortAudio thread and only appends raw frames to
a locked buffer, so the asyncio side never blocks on device reads.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from ....config import (
    CHANNELS, SAMPLE_RATE_CAPTURE, SAMPLE_RATE_TARGET, FRAME_MS,
    TARGET_RMS, SILENCE_RMS
)
from ....errors import DeviceError, DeviceDenied, DeviceNotFound, DeviceBusy
from ....utils import with_suppressed_audio_warnings
from .processing import prepare_for_stt, pcm16_to_float, rms, wav_bytes

logger = logging.getLogger("audio_capture")

# PortAudio host error codes surfaced by PyAudio as OSError.errno
PA_INVALID_CHANNEL_COUNT = -9998
PA_INVALID_DEVICE = -9996
PA_DEVICE_UNAVAILABLE = -9985
PA_UNANTICIPATED_HOST_ERROR = -9999


@dataclass(frozen=True)
class CapturedAudio:
    """Mono PCM16 audio ready for a speech-to-text backend."""
    pcm16: bytes
    sample_rate: int
    level: float

    @property
    def duration_seconds(self) -> float:
        return len(self.pcm16) / 2.0 / float(self.sample_rate)

    @property
    def is_empty(self) -> bool:
        return not self.pcm16

    def is_silent(self, threshold: float = SILENCE_RMS) -> bool:
        return self.is_empty or self.level < threshold

    def to_wav(self) -> bytes:
        return wav_bytes(self.pcm16, self.sample_rate, channels=1)


def map_device_error(exc: BaseException) -> DeviceError:
    """Translate a platform audio error into a typed device error."""
    detail = str(exc)
    lowered = detail.lower()
    code = getattr(exc, "errno", None)

    if isinstance(exc, PermissionError) or "permission" in lowered or "not allowed" in lowered:
        return DeviceDenied(detail)
    if code in (PA_INVALID_DEVICE, PA_INVALID_CHANNEL_COUNT) or "invalid input device" in lowered \
            or "no default input device" in lowered or "not found" in lowered:
        return DeviceNotFound(detail)
    if code in (PA_DEVICE_UNAVAILABLE, PA_UNANTICIPATED_HOST_ERROR) or "unavailable" in lowered \
            or "busy" in lowered:
        return DeviceBusy(detail)
    return DeviceNotFound(detail)


class Microphone(ABC):
    """An exclusively owned input device producing raw PCM16 frames."""

    sample_rate: int = SAMPLE_RATE_CAPTURE
    channels: int = CHANNELS

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    def open(self) -> None:
        """Acquire the device and start streaming. Raises ``DeviceError``."""

    @abstractmethod
    def drain(self) -> List[bytes]:
        """Return and forget every frame captured so far."""

    def stop(self) -> None:
        """Stop delivering frames; frames already captured stay drainable."""

    @abstractmethod
    def close(self) -> None:
        """Release the device. Must be idempotent."""


class PyAudioMicrophone(Microphone):
    """Microphone backed by a PyAudio (PortAudio) input stream."""

    def __init__(self,
                 input_device: Optional[int] = None,
                 channels: int = CHANNELS,
                 sample_rate: int = SAMPLE_RATE_CAPTURE,
                 frame_ms: int = FRAME_MS):
        self.input_device = input_device
        self.channels = channels
        self.sample_rate = sample_rate
        self.frame_size = int(sample_rate * frame_ms / 1000)
        self._pa = None
        self._stream = None
        self._frames: List[bytes] = []
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def _on_frames(self, in_data, frame_count, time_info, status):
        import pyaudio

        if in_data:
            with self._lock:
                self._frames.append(in_data)
        return None, pyaudio.paContinue

    @with_suppressed_audio_warnings
    def open(self) -> None:
        import pyaudio

        if self._stream is not None:
            raise DeviceBusy("input stream already open")

        logger.info(f"Opening microphone: device={self.input_device} channels={self.channels} "
                    f"rate={self.sample_rate} frame={self.frame_size}")
        self._pa = pyaudio.PyAudio()
        try:
            self._stream = self._pa.open(
                format=pyaudio.paInt16,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.input_device,
                frames_per_buffer=self.frame_size,
                stream_callback=self._on_frames,
            )
            self._stream.start_stream()
        except (OSError, ValueError) as e:
            logger.error("Failed to open microphone: %s", e)
            self.close()
            raise map_device_error(e) from e

    def drain(self) -> List[bytes]:
        with self._lock:
            frames, self._frames = self._frames, []
        return frames

    def stop(self) -> None:
        stream = self._stream
        if stream is None:
            return
        try:
            if stream.is_active():
                stream.stop_stream()
        except OSError as e:
            logger.warning(f"Error stopping input stream: {e}")

    def close(self) -> None:
        stream, self._stream = self._stream, None
        pa, self._pa = self._pa, None
        if stream is not None:
            try:
                stream.stop_stream()
                stream.close()
            except OSError as e:
                logger.warning(f"Error closing input stream: {e}")
        if pa is not None:
            pa.terminate()
        with self._lock:
            self._frames = []


def assemble_capture(frames: List[bytes], sample_rate: int, channels: int,
                     sr_target: int = SAMPLE_RATE_TARGET,
                     target_rms: float = TARGET_RMS) -> CapturedAudio:
    """Join raw frames and convert them into STT-ready mono audio."""
    raw = b"".join(frames)
    if not raw:
        return CapturedAudio(pcm16=b"", sample_rate=sr_target, level=0.0)

    # Level is measured before normalisation so silence stays detectable
    level = rms(pcm16_to_float(raw, channels))
    pcm16 = prepare_for_stt(raw, sample_rate, channels, sr_target, target_rms)
    logger.debug(f"Assembled {len(raw)} raw bytes into {len(pcm16)} bytes @ {sr_target} Hz (rms={level:.4f})")
    return CapturedAudio(pcm16=pcm16, sample_rate=sr_target, level=level)
