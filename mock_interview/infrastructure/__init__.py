"""Infrastructure components for the interview orchestrator.

Low-level audio, speech and LLM adapters used by the interview layer.
"""

# Audio infrastructure
from .audio import (
    CapturedAudio, Microphone, PyAudioMicrophone,
    TranscriptionProvider, VoiceSynthesizer, SubprocessAudioPlayer
)

# LLM infrastructure
from .llm import GeminiRestClient, LLMRequestError

__all__ = [
    # Audio
    "CapturedAudio", "Microphone", "PyAudioMicrophone",

    # Speech services
    "TranscriptionProvider", "VoiceSynthesizer", "SubprocessAudioPlayer",

    # LLM client
    "GeminiRestClient", "LLMRequestError"
]
