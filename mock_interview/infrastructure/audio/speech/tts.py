"""
Text-to-speech backends: Google Cloud TTS with a local espeak fallback.

Backends only synthesize; playing the audio is the job of ``playback``.
"""
import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import texttospeech

from ....config import (
    LANGUAGE_CODE, TTS_VOICE, ESPEAK_VOICE, TTS_SAMPLE_RATE,
    TTS_PITCH, TTS_AMPLITUDE, TTS_RATE_WPM
)
from ....errors import BackendFailure, NonAudioResponse, QuotaExceeded, Result

logger = logging.getLogger("speech_tts")


@dataclass(frozen=True)
class SynthesizedAudio:
    """A WAV clip produced by a synthesis backend."""
    wav: bytes
    provider: str


def is_wav(data: bytes) -> bool:
    return len(data) > 44 and data[:4] == b"RIFF" and data[8:12] == b"WAVE"


class SynthesisBackend(ABC):
    """A text-to-speech service."""

    name: str = "base"

    @abstractmethod
    def available(self) -> bool:
        ...

    @abstractmethod
    async def synthesize(self, text: str) -> Result[SynthesizedAudio]:
        """Return WAV audio for ``text`` or a typed ``BackendError``."""


class GoogleCloudSynthesisBackend(SynthesisBackend):
    """High-quality Google Cloud Text-to-Speech (LINEAR16 WAV output)."""

    name = "google"

    def __init__(self, credentials_available: bool,
                 voice: str = TTS_VOICE,
                 language: str = LANGUAGE_CODE,
                 sample_rate: int = TTS_SAMPLE_RATE):
        self.credentials_available = credentials_available
        self.voice = voice
        self.language = language
        self.sample_rate = sample_rate
        self._client = None

    def available(self) -> bool:
        return self.credentials_available

    def _synthesize_sync(self, text: str) -> bytes:
        if self._client is None:
            self._client = texttospeech.TextToSpeechClient()

        synthesis_input = texttospeech.SynthesisInput(text=text)
        voice_params = texttospeech.VoiceSelectionParams(
            language_code=self.language,
            name=self.voice
        )
        audio_config = texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate
        )
        response = self._client.synthesize_speech(
            input=synthesis_input, voice=voice_params, audio_config=audio_config
        )
        return response.audio_content

    async def synthesize(self, text: str) -> Result[SynthesizedAudio]:
        try:
            audio = await asyncio.to_thread(self._synthesize_sync, text)
        except google_exceptions.ResourceExhausted as e:
            logger.warning(f"Google TTS quota exceeded: {e}")
            return Result.failure(QuotaExceeded(str(e), self.name))
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Google TTS failed: {e}")
            return Result.failure(BackendFailure(str(e), self.name))
        except auth_exceptions.GoogleAuthError as e:
            logger.error(f"Google credentials unusable for TTS: {e}")
            return Result.failure(BackendFailure(f"credentials: {e}", self.name))

        if not is_wav(audio):
            logger.error(f"Google TTS returned {len(audio)} bytes that are not WAV audio")
            return Result.failure(NonAudioResponse(f"{len(audio)} bytes, no RIFF header", self.name))
        return Result.success(SynthesizedAudio(wav=audio, provider=self.name))


class EspeakSynthesisBackend(SynthesisBackend):
    """Offline synthesis through the espeak-ng (or espeak) command line tool."""

    name = "espeak"

    def __init__(self,
                 voice: str = ESPEAK_VOICE,
                 rate_wpm: int = TTS_RATE_WPM,
                 pitch: int = TTS_PITCH,
                 amplitude: int = TTS_AMPLITUDE,
                 binary: Optional[str] = None):
        self.voice = voice
        self.rate_wpm = rate_wpm
        self.pitch = pitch
        self.amplitude = amplitude
        self.binary = binary or shutil.which("espeak-ng") or shutil.which("espeak")

    def available(self) -> bool:
        return self.binary is not None

    def command(self, text: str) -> List[str]:
        return [
            self.binary, "--stdout",
            "-v", self.voice,
            "-s", str(self.rate_wpm),
            "-p", str(self.pitch),
            "-a", str(self.amplitude),
            text,
        ]

    async def synthesize(self, text: str) -> Result[SynthesizedAudio]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command(text),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return Result.failure(BackendFailure(f"Could not run {self.binary}: {e}", self.name))

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
            raise

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip() or f"exit code {proc.returncode}"
            return Result.failure(BackendFailure(detail, self.name))
        if not is_wav(stdout):
            return Result.failure(NonAudioResponse("espeak produced no WAV data", self.name))
        return Result.success(SynthesizedAudio(wav=stdout, provider=self.name))


def build_synthesis_backends(config) -> List[SynthesisBackend]:
    """Construct synthesis backends in the configured preference order."""
    factories = {
        "google": lambda: GoogleCloudSynthesisBackend(
            bool(config.google_application_credentials or config.google_cloud_project),
            voice=config.tts_voice,
            language=config.language_code,
        ),
        "espeak": lambda: EspeakSynthesisBackend(voice=config.espeak_voice),
    }
    backends = []
    for name in config.synthesis_providers:
        if name not in factories:
            logger.warning(f"Unknown synthesis provider '{name}' ignored")
            continue
        backends.append(factories[name]())
    return backends
