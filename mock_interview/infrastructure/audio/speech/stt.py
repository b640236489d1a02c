"""
Speech-to-text backends.

Each backend turns one finished recording into one transcript. Backends never
raise for service problems: they return a ``Result`` carrying a typed
``BackendError`` (or ``NoSpeechDetected``) so the provider can decide whether
to fall back.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import speech

from ....config import (
    LANGUAGE_CODE, GEMINI_TRANSCRIPTION_CONFIDENCE, NO_SPEECH_MARKERS,
    ASSEMBLYAI_API_BASE, ASSEMBLYAI_POLL_SECONDS, ASSEMBLYAI_LANGUAGE, HTTP_TIMEOUT
)
from ....errors import (
    BackendError, BackendFailure, QuotaExceeded, NoSpeechDetected, Result
)
from ...llm import GeminiRestClient, LLMRequestError
from ..processing import CapturedAudio

logger = logging.getLogger("speech_stt")

TRANSCRIPTION_PROMPT = (
    "Transcribe the audio recording. Respond ONLY with the transcribed text, without any "
    "additional explanations, introductions, or markdown formatting. If the audio is unclear "
    "or silent, indicate that appropriately (e.g., '[unintelligible]' or '[silence]')."
)

# Vocabulary AssemblyAI should favour for interview answers
DEFAULT_WORD_BOOST = [
    "API", "React", "TypeScript", "JavaScript", "Python", "Kubernetes", "Docker",
    "microservices", "SQL", "GraphQL", "CI/CD", "AWS", "STAR method",
]


@dataclass(frozen=True)
class TranscriptResult:
    """Final transcript of a single recording."""
    text: str
    confidence: float
    is_final: bool
    provider: str


def is_no_speech(text: str) -> bool:
    """True when a transcript is empty or only a silence marker."""
    cleaned = text.strip().strip(".").lower()
    return not cleaned or cleaned in NO_SPEECH_MARKERS


class TranscriptionBackend(ABC):
    """A speech-to-text service that transcribes one recording at a time."""

    name: str = "base"
    features: Tuple[str, ...] = ()
    language: str = LANGUAGE_CODE

    @abstractmethod
    def available(self) -> bool:
        """Whether credentials and libraries for this backend are present."""

    def set_language(self, language: str) -> None:
        self.language = language

    async def prepare(self) -> Result[None]:
        """Check the backend is reachable before a recording starts."""
        return Result.success()

    @abstractmethod
    async def transcribe(self, audio: CapturedAudio) -> Result[TranscriptResult]:
        ...


class GeminiTranscriptionBackend(TranscriptionBackend):
    """Record-then-transcribe through Gemini multimodal generation."""

    name = "gemini"
    features = ("High-quality transcription", "Multimodal AI", "Record and transcribe")

    def __init__(self, client: Optional[GeminiRestClient]):
        self.client = client

    def available(self) -> bool:
        return self.client is not None

    async def transcribe(self, audio: CapturedAudio) -> Result[TranscriptResult]:
        if audio.is_empty:
            return Result.failure(NoSpeechDetected("empty recording"))

        try:
            text = await asyncio.to_thread(
                self.client.generate_from_audio, TRANSCRIPTION_PROMPT, audio.to_wav(), "audio/wav"
            )
        except LLMRequestError as e:
            logger.error("Gemini transcription failed: %s", e)
            if e.is_quota:
                return Result.failure(QuotaExceeded(str(e), self.name))
            return Result.failure(BackendFailure(str(e), self.name))

        if is_no_speech(text):
            logger.info("Gemini reported no speech: %r", text)
            return Result.failure(NoSpeechDetected(text.strip() or None))

        return Result.success(TranscriptResult(
            text=text.strip(),
            confidence=GEMINI_TRANSCRIPTION_CONFIDENCE,
            is_final=True,
            provider=self.name,
        ))


class AssemblyAIBackend(TranscriptionBackend):
    """Upload-and-poll transcription through the AssemblyAI v2 REST API."""

    name = "assemblyai"
    features = ("Upload transcription", "Automatic punctuation", "Word boost")

    def __init__(self,
                 api_key: Optional[str],
                 language: str = ASSEMBLYAI_LANGUAGE,
                 word_boost: Optional[List[str]] = None,
                 base_url: str = ASSEMBLYAI_API_BASE,
                 poll_seconds: float = ASSEMBLYAI_POLL_SECONDS,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.language = language
        self.word_boost = list(word_boost) if word_boost is not None else list(DEFAULT_WORD_BOOST)
        self.base_url = base_url.rstrip("/")
        self.poll_seconds = poll_seconds
        self._session = session or requests.Session()

    def available(self) -> bool:
        return bool(self.api_key)

    def set_language(self, language: str) -> None:
        # AssemblyAI expects a bare language code such as "en"
        self.language = language.split("-")[0].lower()

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": self.api_key or ""}

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Blocking HTTP call; raises ``BackendError`` on failure."""
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(method, url, headers=self._headers(), timeout=HTTP_TIMEOUT, **kwargs)
        except requests.RequestException as e:
            raise BackendFailure(f"AssemblyAI request failed: {e}", self.name) from e

        if resp.status_code == 429:
            raise QuotaExceeded(resp.text, self.name)
        if resp.status_code >= 400:
            raise BackendFailure(f"AssemblyAI error {resp.status_code}: {resp.text}", self.name)
        try:
            return resp.json()
        except ValueError as e:
            raise BackendFailure(f"AssemblyAI returned a non-JSON body: {resp.text[:200]}", self.name) from e

    async def prepare(self) -> Result[None]:
        try:
            await asyncio.to_thread(self._request, "GET", "/transcript", params={"limit": 1})
        except BackendError as e:
            logger.warning("AssemblyAI connectivity check failed: %s", e.detail)
            return Result.failure(e)
        logger.info("AssemblyAI service reachable")
        return Result.success()

    async def transcribe(self, audio: CapturedAudio) -> Result[TranscriptResult]:
        if audio.is_empty:
            return Result.failure(NoSpeechDetected("empty recording"))

        try:
            upload = await asyncio.to_thread(self._request, "POST", "/upload", data=audio.to_wav())
            request_body = {
                "audio_url": upload["upload_url"],
                "language_code": self.language,
                "punctuate": True,
                "format_text": True,
                "auto_highlights": False,
            }
            if self.word_boost:
                request_body["word_boost"] = self.word_boost
            job = await asyncio.to_thread(self._request, "POST", "/transcript", json=request_body)

            while job.get("status") not in ("completed", "error"):
                await asyncio.sleep(self.poll_seconds)
                job = await asyncio.to_thread(self._request, "GET", f"/transcript/{job['id']}")
        except BackendError as e:
            logger.error("AssemblyAI transcription failed: %s", e.detail)
            return Result.failure(e)
        except KeyError as e:
            return Result.failure(BackendFailure(f"Unexpected AssemblyAI response, missing {e}", self.name))

        if job["status"] == "error":
            return Result.failure(BackendFailure(job.get("error") or "Transcription failed", self.name))

        text = (job.get("text") or "").strip()
        if is_no_speech(text):
            return Result.failure(NoSpeechDetected())

        return Result.success(TranscriptResult(
            text=text,
            confidence=float(job.get("confidence") or GEMINI_TRANSCRIPTION_CONFIDENCE),
            is_final=True,
            provider=self.name,
        ))


class GoogleSpeechBackend(TranscriptionBackend):
    """Synchronous LINEAR16 recognition with Google Cloud Speech-to-Text."""

    name = "google"
    features = ("Cloud recognition", "Automatic punctuation")

    def __init__(self, credentials_available: bool, language: str = LANGUAGE_CODE):
        self.credentials_available = credentials_available
        self.language = language
        self._client = None

    def available(self) -> bool:
        return self.credentials_available

    def _recognize(self, pcm16_bytes: bytes, sr_hz: int):
        if self._client is None:
            self._client = speech.SpeechClient()
        audio = speech.RecognitionAudio(content=pcm16_bytes)
        config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=sr_hz,
            language_code=self.language,
            enable_automatic_punctuation=True,
        )
        return self._client.recognize(config=config, audio=audio)

    async def transcribe(self, audio: CapturedAudio) -> Result[TranscriptResult]:
        if audio.is_empty:
            return Result.failure(NoSpeechDetected("empty recording"))

        try:
            resp = await asyncio.to_thread(self._recognize, audio.pcm16, audio.sample_rate)
        except google_exceptions.ResourceExhausted as e:
            return Result.failure(QuotaExceeded(str(e), self.name))
        except google_exceptions.GoogleAPIError as e:
            logger.error("Speech recognition failed: %s", e)
            return Result.failure(BackendFailure(str(e), self.name))
        except auth_exceptions.GoogleAuthError as e:
            logger.error("Google credentials unusable for speech recognition: %s", e)
            return Result.failure(BackendFailure(f"credentials: {e}", self.name))

        alternatives = [r.alternatives[0] for r in resp.results if r.alternatives]
        text = " ".join(a.transcript for a in alternatives).strip()
        if is_no_speech(text):
            return Result.failure(NoSpeechDetected())

        confidence = sum(a.confidence for a in alternatives) / len(alternatives)
        return Result.success(TranscriptResult(text=text, confidence=float(confidence),
                                               is_final=True, provider=self.name))


def build_transcription_backends(config, client: Optional[GeminiRestClient] = None) -> List[TranscriptionBackend]:
    """Construct backends in the configured preference order."""
    client = client or GeminiRestClient.from_config(config)

    factories = {
        "gemini": lambda: GeminiTranscriptionBackend(client),
        "assemblyai": lambda: AssemblyAIBackend(config.assemblyai_api_key),
        "google": lambda: GoogleSpeechBackend(
            bool(config.google_application_credentials or config.google_cloud_project),
            config.language_code,
        ),
    }
    backends = []
    for name in config.transcription_providers:
        if name not in factories:
            logger.warning(f"Unknown transcription provider '{name}' ignored")
            continue
        backends.append(factories[name]())
    return backends
