"""Speech-to-text and text-to-speech modules."""

from .stt import (
    TranscriptionBackend, TranscriptResult, GeminiTranscriptionBackend,
    AssemblyAIBackend, GoogleSpeechBackend, build_transcription_backends
)
from .recognition import TranscriptionProvider, CaptureSession, CaptureState, ProviderInfo
from .tts import (
    SynthesisBackend, SynthesizedAudio, GoogleCloudSynthesisBackend,
    EspeakSynthesisBackend, build_synthesis_backends
)
from .playback import (
    AudioPlayer, SubprocessAudioPlayer, PlaybackHandle, PlaybackOutcome, VoiceSynthesizer
)

__all__ = [
    "TranscriptionBackend", "TranscriptResult", "GeminiTranscriptionBackend",
    "AssemblyAIBackend", "GoogleSpeechBackend", "build_transcription_backends",
    "TranscriptionProvider", "CaptureSession", "CaptureState", "ProviderInfo",
    "SynthesisBackend", "SynthesizedAudio", "GoogleCloudSynthesisBackend",
    "EspeakSynthesisBackend", "build_synthesis_backends",
    "AudioPlayer", "SubprocessAudioPlayer", "PlaybackHandle", "PlaybackOutcome", "VoiceSynthesizer",
]
