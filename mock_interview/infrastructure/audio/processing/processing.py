"""
Basic audio processing functions including format conversions and normalization.
"""
import io
import wave
from math import gcd

import numpy as np
from scipy.signal import resample_poly

from ....config import TARGET_RMS


def to_mono(x: np.ndarray) -> np.ndarray:
    """Convert multi-channel audio to mono by averaging channels."""
    if x.ndim == 1:
        return x
    return np.mean(x, axis=1)


def remove_dc(x: np.ndarray) -> np.ndarray:
    """Remove DC offset from audio signal."""
    if x.size == 0:
        return x
    return x - np.mean(x)


def resample(mono: np.ndarray, sr_from: int, sr_to: int) -> np.ndarray:
    """Resample mono audio between integer sample rates."""
    if sr_from == sr_to or mono.size == 0:
        return mono.astype(np.float32)
    g = gcd(sr_from, sr_to)
    return resample_poly(mono, up=sr_to // g, down=sr_from // g).astype(np.float32)


def rms(audio: np.ndarray) -> float:
    """Root-mean-square level of a float signal."""
    if audio.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(audio ** 2)))


def normalize_audio(audio: np.ndarray, target_rms: float = TARGET_RMS) -> np.ndarray:
    """Normalize audio to target RMS level."""
    level = rms(audio) + 1e-9
    gain = min(20.0, target_rms / level)
    return audio * gain


def pcm16_to_float(pcm16: bytes, channels: int = 1) -> np.ndarray:
    """Decode interleaved little-endian PCM16 into float32 samples in [-1, 1]."""
    samples = np.frombuffer(pcm16, dtype=np.int16).astype(np.float32) / 32768.0
    if channels > 1:
        samples = samples.reshape(-1, channels)
    return samples


def float_to_pcm16(audio: np.ndarray) -> bytes:
    """Encode float samples as PCM16 bytes."""
    return np.clip(audio * 32767, -32768, 32767).astype(np.int16).tobytes()


def wav_bytes(pcm16: bytes, sr: int, channels: int = 1) -> bytes:
    """Wrap PCM16 audio data in an in-memory WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sr)
        wf.writeframes(pcm16)
    return buf.getvalue()


def prepare_for_stt(pcm16: bytes, sr_capture: int, channels: int, sr_target: int,
                    target_rms: float = TARGET_RMS) -> bytes:
    """Down-mix, clean, resample and level raw capture into mono PCM16 at ``sr_target``."""
    data = pcm16_to_float(pcm16, channels)
    mono = remove_dc(to_mono(data))
    mono = resample(mono, sr_capture, sr_target)
    if mono.size:
        mono = normalize_audio(mono, target_rms)
    return float_to_pcm16(mono)
