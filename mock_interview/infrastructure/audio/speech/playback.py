"""
Spoken output: synthesize with fallback, play through a system audio player.

``VoiceSynthesizer`` holds at most one live ``PlaybackHandle``. Every
``speak()`` ends in exactly one terminal event, ``PLAYBACK_ENDED`` (possibly
with ``cancelled=True``) or ``PLAYBACK_FAILED``.
"""
import asyncio
import logging
import os
import shutil
import tempfile
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from ....config import PLAYER_COMMANDS
from ....errors import (
    BackendError, BackendFailure, InterviewError, NoProviderAvailable,
    NonAudioResponse, QuotaExceeded, Result
)
from ....interview.events import (
    ErrorOccurredEvent, InterviewEventBus, PlaybackEndedEvent, PlaybackFailedEvent
)
from .tts import SynthesisBackend, SynthesizedAudio

logger = logging.getLogger("speech_playback")


class PlaybackOutcome(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class AudioPlayer(ABC):
    """Plays one WAV clip at a time."""

    @abstractmethod
    async def play(self, wav: bytes) -> None:
        """Play to completion. Raises ``BackendError`` if the clip cannot be played."""

    @abstractmethod
    def stop(self) -> None:
        """Interrupt the current clip. Safe when nothing is playing."""


class SubprocessAudioPlayer(AudioPlayer):
    """Plays WAV files with the first available of afplay, aplay or paplay."""

    def __init__(self, commands: Sequence[Tuple[str, ...]] = PLAYER_COMMANDS):
        self.command: Optional[Tuple[str, ...]] = None
        for cmd in commands:
            if shutil.which(cmd[0]):
                self.command = tuple(cmd)
                break
        self._process: Optional[asyncio.subprocess.Process] = None

    def available(self) -> bool:
        return self.command is not None

    async def play(self, wav: bytes) -> None:
        if self.command is None:
            raise BackendFailure("No audio player found (tried afplay, aplay, paplay)", "player")

        wav_path = None
        try:
            with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as tmp_file:
                wav_path = tmp_file.name
                tmp_file.write(wav)

            self._process = await asyncio.create_subprocess_exec(
                *self.command, wav_path,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await self._process.communicate()
            if self._process.returncode != 0:
                detail = stderr.decode(errors="replace").strip() or f"exit code {self._process.returncode}"
                raise BackendFailure(detail, self.command[0])
        except OSError as e:
            raise BackendFailure(f"Could not play audio with {self.command[0]}: {e}", self.command[0]) from e
        finally:
            self.stop()
            self._process = None
            if wav_path is not None:
                try:
                    os.unlink(wav_path)
                except OSError:
                    logger.debug(f"Temporary file already removed: {wav_path}")

    def stop(self) -> None:
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass


class PlaybackHandle:
    """A single spoken clip; owns the decoded audio until playback ends."""

    def __init__(self, text: str):
        self.text = text
        self.provider: Optional[str] = None
        self.outcome: Optional[PlaybackOutcome] = None
        self.error: Optional[InterviewError] = None
        self._audio: Optional[bytes] = None
        self._finished = asyncio.Event()

    @property
    def holds_audio(self) -> bool:
        return self._audio is not None

    @property
    def done(self) -> bool:
        return self.outcome is not None

    def _finish(self, outcome: PlaybackOutcome, error: Optional[InterviewError] = None) -> bool:
        if self.outcome is not None:
            return False
        self.outcome = outcome
        self.error = error
        self._audio = None
        self._finished.set()
        return True

    async def wait(self) -> PlaybackOutcome:
        """Wait for the terminal outcome of this playback."""
        await self._finished.wait()
        return self.outcome


class VoiceSynthesizer:
    """Speaks text through the first working synthesis backend."""

    def __init__(self,
                 backends: List[SynthesisBackend],
                 player: AudioPlayer,
                 event_bus: Optional[InterviewEventBus] = None,
                 session_id: str = ""):
        self.backends = list(backends)
        self.player = player
        self.event_bus = event_bus
        self.session_id = session_id
        self._handle: Optional[PlaybackHandle] = None
        self._synthesis: Optional[asyncio.Task] = None
        self._playing: Optional[asyncio.Task] = None

    @property
    def open_resources(self) -> int:
        return 1 if self._handle is not None and self._handle.holds_audio else 0

    @property
    def is_speaking(self) -> bool:
        return self._handle is not None and not self._handle.done

    async def speak(self, text: str) -> Result[PlaybackHandle]:
        """
        Synthesize and start playing ``text``; any previous playback is cancelled.

        Returns once playback has started (or failed). Await ``handle.wait()``
        for the end of the clip.
        """
        self.cancel()
        handle = PlaybackHandle(text)
        self._handle = handle

        if not text.strip():
            self._terminate(handle, PlaybackOutcome.COMPLETED)
            return Result.success(handle)

        synthesis = asyncio.ensure_future(self._synthesize(text))
        self._synthesis = synthesis
        try:
            await asyncio.wait({synthesis})
        except asyncio.CancelledError:
            if self._handle is handle:
                self.cancel()
            raise

        if synthesis.cancelled() or handle.done:
            return Result.success(handle)

        result = synthesis.result()
        if not result.ok:
            self._terminate(handle, PlaybackOutcome.FAILED, result.error)
            self._publish_error(result.error)
            return Result.failure(result.error)

        audio: SynthesizedAudio = result.value
        handle.provider = audio.provider
        handle._audio = audio.wav
        self._playing = asyncio.ensure_future(self._play(handle))
        logger.info(f"Speaking {len(text)} chars via {audio.provider}")
        return Result.success(handle)

    async def _synthesize(self, text: str) -> Result[SynthesizedAudio]:
        last_error: Optional[BackendError] = None
        for backend in self.backends:
            if not backend.available():
                continue
            try:
                result = await backend.synthesize(text)
            except Exception as e:
                logger.exception(f"Synthesis backend '{backend.name}' raised")
                result = Result.failure(BackendFailure(f"{type(e).__name__}: {e}", backend.name))
            if result.ok:
                return result
            if isinstance(result.error, NonAudioResponse):
                # The request went through; a second backend would speak twice
                return result
            if isinstance(result.error, (BackendFailure, QuotaExceeded)):
                logger.warning(f"Synthesis backend '{backend.name}' failed: {result.error.detail}")
                last_error = result.error
                continue
            return result
        return Result.failure(last_error or NoProviderAvailable("no synthesis backend available"))

    async def _play(self, handle: PlaybackHandle) -> None:
        try:
            await self.player.play(handle._audio)
        except BackendError as e:
            logger.error(f"Playback failed: {e.detail}")
            self._terminate(handle, PlaybackOutcome.FAILED, e)
            return
        except Exception as e:
            logger.exception("Audio player raised")
            self._terminate(handle, PlaybackOutcome.FAILED, BackendFailure(f"{type(e).__name__}: {e}", "player"))
            return
        self._terminate(handle, PlaybackOutcome.COMPLETED)

    def cancel(self) -> None:
        """Stop synthesis or playback and drop the audio. Always safe."""
        for task in (self._synthesis, self._playing):
            if task is not None and not task.done():
                task.cancel()
        self._synthesis = None
        self._playing = None
        self.player.stop()

        handle, self._handle = self._handle, None
        if handle is not None:
            self._terminate(handle, PlaybackOutcome.CANCELLED)

    def _terminate(self, handle: PlaybackHandle, outcome: PlaybackOutcome,
                   error: Optional[InterviewError] = None) -> None:
        if not handle._finish(outcome, error):
            return
        logger.debug(f"Playback {outcome.value} ({handle.provider})")
        if not self.event_bus:
            return
        if outcome is PlaybackOutcome.FAILED:
            detail = (error.detail or error.message) if error else "unknown"
            self.event_bus.emit(PlaybackFailedEvent(self.session_id, time.time(), handle.provider, detail))
        else:
            self.event_bus.emit(PlaybackEndedEvent(
                self.session_id, time.time(), handle.provider, outcome is PlaybackOutcome.CANCELLED
            ))

    def _publish_error(self, error: InterviewError) -> None:
        if self.event_bus:
            self.event_bus.emit(ErrorOccurredEvent(self.session_id, time.time(), error, "synthesis"))
