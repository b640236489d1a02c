"""Audio processing and capture modules."""

from .processing import (
    to_mono,
    remove_dc,
    resample,
    rms,
    normalize_audio,
    pcm16_to_float,
    float_to_pcm16,
    wav_bytes,
    prepare_for_stt,
)
from .capture import (
    CapturedAudio, Microphone, PyAudioMicrophone,
    assemble_capture, map_device_error
)

__all__ = [
    "to_mono",
    "remove_dc",
    "resample",
    "rms",
    "normalize_audio",
    "pcm16_to_float",
    "float_to_pcm16",
    "wav_bytes",
    "prepare_for_stt",
    "CapturedAudio",
    "Microphone",
    "PyAudioMicrophone",
    "assemble_capture",
    "map_device_error",
]
