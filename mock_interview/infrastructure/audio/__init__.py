"""
Audio capture, processing and speech services.

- processing: signal conversion and microphone capture
- speech: transcription backends/provider and synthesis backends/playback
"""

from .processing import CapturedAudio, Microphone, PyAudioMicrophone
from .speech import TranscriptionProvider, VoiceSynthesizer, SubprocessAudioPlayer

__all__ = [
    "CapturedAudio",
    "Microphone",
    "PyAudioMicrophone",
    "TranscriptionProvider",
    "VoiceSynthesizer",
    "SubprocessAudioPlayer",
]
