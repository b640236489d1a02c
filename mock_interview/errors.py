"""
Error taxonomy and result container for the interview orchestrator.

Fallible operations return a ``Result`` instead of raising: the error it
carries is an ``InterviewError`` subclass whose ``kind`` tells the caller how
to recover (re-record, retry, fix a device permission, ...).
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar


class ErrorKind(str, Enum):
    """How an error should be handled by the caller."""
    DEVICE = "device"  # permission/hardware, user action required
    BACKEND = "backend"  # transient, eligible for provider fallback
    CONTENT = "content"  # no speech / empty answer, re-record
    UPSTREAM = "upstream"  # question or scoring service failed, retry
    STATE = "state"  # operation not valid in the current stage


class InterviewError(Exception):
    """Base exception for interview orchestrator errors."""

    kind: ErrorKind = ErrorKind.BACKEND

    def __init__(self, message: str, detail: Optional[str] = None,
                 payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        self.payload = payload or {}

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
            **self.payload,
        }

    def __repr__(self) -> str:
        return f"{self.code}({self.message!r})"


# Device errors -------------------------------------------------------------

class DeviceError(InterviewError):
    """Microphone or audio-output problem that needs user action."""
    kind = ErrorKind.DEVICE


class DeviceDenied(DeviceError):
    """Raised when microphone permission is refused."""
    def __init__(self, detail: Optional[str] = None):
        super().__init__("Microphone permission denied. Please allow microphone access.", detail)


class DeviceNotFound(DeviceError):
    """Raised when no usable input device exists."""
    def __init__(self, detail: Optional[str] = None):
        super().__init__("No microphone found. Please check your microphone connection.", detail)


class DeviceBusy(DeviceError):
    """Raised when the input device is held by another process."""
    def __init__(self, detail: Optional[str] = None):
        super().__init__("Microphone is busy. Close other applications using it and try again.", detail)


# Backend errors ------------------------------------------------------------

class BackendError(InterviewError):
    """Transient failure of a speech backend."""
    kind = ErrorKind.BACKEND

    def __init__(self, message: str, detail: Optional[str] = None, provider: Optional[str] = None):
        super().__init__(message, detail, {"provider": provider} if provider else None)
        self.provider = provider


class BackendFailure(BackendError):
    """Raised when a backend call fails at the transport or service level."""
    def __init__(self, detail: Optional[str] = None, provider: Optional[str] = None):
        super().__init__("Speech service failed. Please try again.", detail, provider)


class QuotaExceeded(BackendError):
    """Raised when a backend rejects the call for rate or quota reasons."""
    def __init__(self, detail: Optional[str] = None, provider: Optional[str] = None):
        super().__init__("Speech service quota exceeded.", detail, provider)


class NonAudioResponse(BackendError):
    """Raised when a synthesis call succeeded but returned no playable audio."""
    def __init__(self, detail: Optional[str] = None, provider: Optional[str] = None):
        super().__init__("Speech service returned an error instead of audio.", detail, provider)


class InitError(BackendError):
    """Raised when a provider cannot be initialized."""


class NoProviderAvailable(InitError):
    """Raised when no configured backend passes its availability probe."""
    def __init__(self, detail: Optional[str] = None):
        super().__init__("No speech provider is available. Check API keys and installed libraries.", detail)


# Content errors ------------------------------------------------------------

class ContentError(InterviewError):
    """Recording finished but produced nothing usable."""
    kind = ErrorKind.CONTENT


class NoSpeechDetected(ContentError):
    """Raised when a recording contains no recognisable speech."""
    def __init__(self, detail: Optional[str] = None):
        super().__init__("No speech detected. Please try speaking again.", detail)


# Upstream errors -----------------------------------------------------------

class UpstreamError(InterviewError):
    """Question or scoring service failure; session state is kept."""
    kind = ErrorKind.UPSTREAM


class QuestionError(UpstreamError):
    """Raised when the next question could not be generated."""
    def __init__(self, detail: Optional[str] = None):
        super().__init__("Could not get the next question. Please retry.", detail)


class ScoreError(UpstreamError):
    """Raised when an answer could not be scored."""
    def __init__(self, detail: Optional[str] = None):
        super().__init__("Could not score the answer.", detail)


# State errors --------------------------------------------------------------

class StateError(InterviewError):
    """Operation is not valid in the current session stage."""
    kind = ErrorKind.STATE


class AlreadyRecording(StateError):
    def __init__(self):
        super().__init__("A recording is already in progress.")


class InvalidStage(StateError):
    def __init__(self, operation: str, stage: str):
        super().__init__(f"Cannot {operation} while the session is {stage}.",
                         payload={"operation": operation, "stage": stage})


class QuestionPending(StateError):
    def __init__(self):
        super().__init__("The next question has not been loaded yet.")


class SessionCancelled(StateError):
    def __init__(self):
        super().__init__("The session was reset while this operation was running.")


# Result container ----------------------------------------------------------

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a fallible operation: a value or an ``InterviewError``."""
    value: Optional[T] = None
    error: Optional[InterviewError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: InterviewError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
