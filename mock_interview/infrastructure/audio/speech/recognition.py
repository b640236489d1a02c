"""
Capture-and-transcribe provider with backend fallback.

A ``TranscriptionProvider`` owns at most one ``CaptureSession`` at a time.
Each ``start()``/``stop()`` cycle yields exactly one result, awaited through
``wait_result()``. The microphone and buffered audio are released on every
exit path, including ``cleanup()`` in the middle of a capture.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ....config import MIN_CAPTURE_SECONDS
from ....errors import (
    AlreadyRecording, BackendError, BackendFailure, DeviceError, InvalidStage, InterviewError,
    NoProviderAvailable, NoSpeechDetected, Result, SessionCancelled
)
from ....interview.events import ErrorOccurredEvent, InterviewEventBus, TranscriptReadyEvent
from ..processing import Microphone, PyAudioMicrophone, assemble_capture
from .stt import TranscriptionBackend, TranscriptResult

logger = logging.getLogger("speech_recognition")


class CaptureState(str, Enum):
    IDLE = "idle"
    REQUESTING_DEVICE = "requesting_device"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    CLOSED = "closed"


@dataclass(frozen=True)
class ProviderInfo:
    """Which backend is active and what it offers."""
    name: str
    is_recording: bool
    features: Tuple[str, ...]


class CaptureSession:
    """One recording: the open microphone plus the audio captured from it."""

    def __init__(self, provider: str, microphone: Microphone):
        self.provider = provider
        self.microphone = microphone
        self.state = CaptureState.IDLE
        self.chunks: List[bytes] = []

    @property
    def open_resources(self) -> int:
        return int(self.microphone.is_open) + int(bool(self.chunks))

    def collect(self) -> None:
        self.chunks.extend(self.microphone.drain())

    def release(self) -> None:
        """Close the device and drop buffered audio. Safe from any state."""
        self.microphone.close()
        self.chunks = []
        self.state = CaptureState.CLOSED


class TranscriptionProvider:
    """Selects a transcription backend and runs one capture session at a time."""

    def __init__(self,
                 backends: List[TranscriptionBackend],
                 microphone_factory: Callable[[], Microphone] = PyAudioMicrophone,
                 event_bus: Optional[InterviewEventBus] = None,
                 session_id: str = ""):
        self.backends = list(backends)
        self.microphone_factory = microphone_factory
        self.event_bus = event_bus
        self.session_id = session_id
        self.language: Optional[str] = None
        self._active: Optional[TranscriptionBackend] = None
        self._session: Optional[CaptureSession] = None
        self._finalizing: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------ setup

    def initialize(self, language: str, preferred_provider: Optional[str] = None) -> Result[ProviderInfo]:
        """
        Pick the first available backend, trying ``preferred_provider`` first.

        Args:
            language: BCP-47 language code passed to every backend
            preferred_provider: Backend name to try before the configured order

        Returns:
            Result carrying ``ProviderInfo`` or ``NoProviderAvailable``
        """
        self.language = language
        for backend in self.backends:
            backend.set_language(language)

        ordered = sorted(self.backends, key=lambda b: b.name != preferred_provider)
        for backend in ordered:
            if backend.available():
                self._active = backend
                logger.info(f"Transcription provider selected: {backend.name}")
                return Result.success(self.current_provider())
            logger.debug(f"Transcription backend '{backend.name}' unavailable")

        self._active = None
        names = ", ".join(b.name for b in self.backends) or "none configured"
        return Result.failure(NoProviderAvailable(f"tried: {names}"))

    def current_provider(self) -> ProviderInfo:
        if self._active is None:
            return ProviderInfo(name="none", is_recording=self.is_recording, features=())
        return ProviderInfo(name=self._active.name, is_recording=self.is_recording,
                            features=tuple(self._active.features))

    @property
    def is_recording(self) -> bool:
        return self._session is not None and self._session.state is CaptureState.RECORDING

    @property
    def is_busy(self) -> bool:
        return self._session is not None and self._session.state in (
            CaptureState.REQUESTING_DEVICE, CaptureState.RECORDING, CaptureState.FINALIZING
        )

    @property
    def open_resources(self) -> int:
        return self._session.open_resources if self._session is not None else 0

    # -------------------------------------------------------------- lifecycle

    async def start(self) -> Result[None]:
        """Acquire the microphone and begin capturing."""
        if self._active is None:
            return Result.failure(NoProviderAvailable("provider not initialized"))
        if self.is_busy:
            return Result.failure(AlreadyRecording())

        session = CaptureSession(self._active.name, self.microphone_factory())
        self._session = session
        self._finalizing = None
        session.state = CaptureState.REQUESTING_DEVICE

        opening = asyncio.ensure_future(asyncio.to_thread(session.microphone.open))
        try:
            await asyncio.shield(opening)
        except asyncio.CancelledError:
            # The device may still open on the worker thread after we give up
            opening.add_done_callback(lambda f: _release_after_open(f, session))
            session.release()
            raise
        except DeviceError as e:
            logger.warning(f"Microphone unavailable: {e.message} ({e.detail})")
            session.release()
            self._publish_error(e)
            return Result.failure(e)

        if session.state is CaptureState.CLOSED:
            session.release()
            return Result.failure(SessionCancelled())

        try:
            prepared = await self._prepare_backend()
        except asyncio.CancelledError:
            session.release()
            raise
        if session.state is CaptureState.CLOSED:
            session.release()
            return Result.failure(SessionCancelled())
        if not prepared.ok:
            session.release()
            self._publish_error(prepared.error)
            return prepared

        session.provider = self._active.name
        session.state = CaptureState.RECORDING
        logger.info(f"Recording started with {session.provider}")
        return Result.success()

    async def _prepare_backend(self) -> Result[None]:
        """Run ``prepare()`` on the active backend, moving down the list on backend errors."""
        tried = []
        while True:
            backend = self._active
            tried.append(backend.name)
            try:
                result = await backend.prepare()
            except Exception as e:
                logger.exception(f"Backend '{backend.name}' raised while preparing")
                result = Result.failure(BackendFailure(f"{type(e).__name__}: {e}", backend.name))
            if result.ok:
                return result
            if not isinstance(result.error, BackendError):
                return result

            fallback = self._next_available(tried)
            if fallback is None:
                return result
            logger.warning(f"Backend '{backend.name}' failed to prepare ({result.error.detail}); "
                           f"switching to '{fallback.name}'")
            self._active = fallback

    def _next_available(self, tried: List[str]) -> Optional[TranscriptionBackend]:
        for backend in self.backends:
            if backend.name not in tried and backend.available():
                return backend
        return None

    def stop(self) -> None:
        """End capture and start transcribing in the background. No-op when idle."""
        session = self._session
        if session is None or session.state is not CaptureState.RECORDING:
            return

        # Frames can arrive until the stream stops, so drain only after that
        session.microphone.stop()
        session.collect()
        sample_rate, channels = session.microphone.sample_rate, session.microphone.channels
        session.microphone.close()
        session.state = CaptureState.FINALIZING
        self._finalizing = asyncio.get_running_loop().create_task(
            self._finalize(session, self._active, sample_rate, channels)
        )

    async def _finalize(self, session: CaptureSession, backend: TranscriptionBackend,
                        sample_rate: int, channels: int) -> Result[TranscriptResult]:
        try:
            audio = assemble_capture(session.chunks, sample_rate, channels)
            session.chunks = []
            if audio.duration_seconds < MIN_CAPTURE_SECONDS or audio.is_silent():
                logger.info(f"Recording too short or silent ({audio.duration_seconds:.2f}s, "
                            f"rms={audio.level:.4f})")
                result = Result.failure(NoSpeechDetected("recording was silent"))
            else:
                result = await backend.transcribe(audio)
        except Exception as e:
            logger.exception(f"Transcription with '{backend.name}' raised")
            result = Result.failure(BackendFailure(f"{type(e).__name__}: {e}", backend.name))
        finally:
            session.release()

        if result.ok:
            transcript = result.value
            logger.info(f"Transcript from {transcript.provider}: {len(transcript.text)} chars")
            if self.event_bus:
                self.event_bus.emit(TranscriptReadyEvent(
                    self.session_id, time.time(), transcript.text,
                    transcript.confidence, transcript.provider
                ))
        else:
            self._publish_error(result.error)
        return result

    async def wait_result(self) -> Result[TranscriptResult]:
        """Await the transcript of the most recently stopped recording."""
        task = self._finalizing
        if task is None:
            state = self._session.state.value if self._session else CaptureState.IDLE.value
            return Result.failure(InvalidStage("wait for a transcript", state))

        await asyncio.wait({task})
        if task.cancelled():
            return Result.failure(SessionCancelled())
        return task.result()

    def cleanup(self) -> None:
        """Release the device and buffered audio from any state."""
        task, self._finalizing = self._finalizing, None
        if task is not None and not task.done():
            task.cancel()
        session, self._session = self._session, None
        if session is not None:
            if session.state is not CaptureState.CLOSED:
                logger.info(f"Capture session cleaned up from state {session.state.value}")
            session.release()

    def _publish_error(self, error: InterviewError) -> None:
        if self.event_bus:
            self.event_bus.emit(ErrorOccurredEvent(self.session_id, time.time(), error, "transcription"))


def _release_after_open(opening: asyncio.Future, session: CaptureSession) -> None:
    if not opening.cancelled() and opening.exception() is not None:
        logger.debug(f"Microphone open finished with {opening.exception()!r} after cancellation")
    session.release()
