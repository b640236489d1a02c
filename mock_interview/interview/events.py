"""
Event-driven notifications for the interview session.

The orchestrator and the speech providers publish typed events on an
``InterviewEventBus``; UIs, loggers and metrics subscribe per event type.
"""
import logging
from abc import ABC
from typing import Dict, Any, List, Callable, Optional
from dataclasses import dataclass
from enum import Enum

from ..errors import InterviewError

logger = logging.getLogger("events")


class EventType(str, Enum):
    """Types of interview events."""
    SESSION_STARTED = "session_started"
    STAGE_CHANGED = "stage_changed"
    QUESTION_CHANGED = "question_changed"
    TRANSCRIPT_CHANGED = "transcript_changed"
    TRANSCRIPT_READY = "transcript_ready"
    TURN_SUBMITTED = "turn_submitted"
    TURN_SCORED = "turn_scored"
    SESSION_COMPLETED = "session_completed"
    SESSION_RESET = "session_reset"
    PLAYBACK_ENDED = "playback_ended"
    PLAYBACK_FAILED = "playback_failed"
    ERROR_OCCURRED = "error_occurred"


@dataclass
class InterviewEvent(ABC):
    """Base class for all interview events."""
    event_type: EventType
    session_id: str
    timestamp: float
    data: Dict[str, Any]


@dataclass
class SessionStartedEvent(InterviewEvent):
    """Event fired when the first question has been fetched."""
    def __init__(self, session_id: str, timestamp: float, max_turns: int):
        super().__init__(
            event_type=EventType.SESSION_STARTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"max_turns": max_turns}
        )


@dataclass
class StageChangedEvent(InterviewEvent):
    """Event fired on every stage transition."""
    def __init__(self, session_id: str, timestamp: float, previous: str, current: str):
        super().__init__(
            event_type=EventType.STAGE_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={"previous": previous, "current": current}
        )


@dataclass
class QuestionChangedEvent(InterviewEvent):
    """Event fired when a new question is presented."""
    def __init__(self, session_id: str, timestamp: float, index: int, question: str):
        super().__init__(
            event_type=EventType.QUESTION_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={"index": index, "question": question}
        )


@dataclass
class TranscriptChangedEvent(InterviewEvent):
    """Event fired when the answer buffer changes (recording result or edit)."""
    def __init__(self, session_id: str, timestamp: float, text: str):
        super().__init__(
            event_type=EventType.TRANSCRIPT_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={"text": text}
        )


@dataclass
class TranscriptReadyEvent(InterviewEvent):
    """Event fired by the transcription provider when a recording is transcribed."""
    def __init__(self, session_id: str, timestamp: float, text: str,
                 confidence: float, provider: str):
        super().__init__(
            event_type=EventType.TRANSCRIPT_READY,
            session_id=session_id,
            timestamp=timestamp,
            data={"text": text, "confidence": confidence, "provider": provider}
        )


@dataclass
class TurnSubmittedEvent(InterviewEvent):
    """Event fired when an answer is committed to the history."""
    def __init__(self, session_id: str, timestamp: float, turn_index: int,
                 question: str, answer_text: str):
        super().__init__(
            event_type=EventType.TURN_SUBMITTED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "turn_index": turn_index,
                "question": question,
                "answer_text": answer_text
            }
        )


@dataclass
class TurnScoredEvent(InterviewEvent):
    """Event fired when an evaluation is attached to a turn."""
    def __init__(self, session_id: str, timestamp: float, turn_index: int,
                 score: int, failed: bool):
        super().__init__(
            event_type=EventType.TURN_SCORED,
            session_id=session_id,
            timestamp=timestamp,
            data={"turn_index": turn_index, "score": score, "failed": failed}
        )


@dataclass
class SessionCompletedEvent(InterviewEvent):
    """Event fired once the final report is ready."""
    def __init__(self, session_id: str, timestamp: float, report: Any):
        super().__init__(
            event_type=EventType.SESSION_COMPLETED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "report": report,
                "average_score": report.average_score,
                "tier": report.tier,
                "turn_count": len(report.turns)
            }
        )


@dataclass
class SessionResetEvent(InterviewEvent):
    """Event fired when the session is cancelled and cleared."""
    def __init__(self, session_id: str, timestamp: float, turn_count: int, stage: str):
        super().__init__(
            event_type=EventType.SESSION_RESET,
            session_id=session_id,
            timestamp=timestamp,
            data={"turn_count": turn_count, "stage": stage}
        )


@dataclass
class PlaybackEndedEvent(InterviewEvent):
    """Terminal playback event: finished normally or cancelled."""
    def __init__(self, session_id: str, timestamp: float, provider: Optional[str], cancelled: bool):
        super().__init__(
            event_type=EventType.PLAYBACK_ENDED,
            session_id=session_id,
            timestamp=timestamp,
            data={"provider": provider, "cancelled": cancelled}
        )


@dataclass
class PlaybackFailedEvent(InterviewEvent):
    """Terminal playback event: synthesis or the audio player failed."""
    def __init__(self, session_id: str, timestamp: float, provider: Optional[str], detail: str):
        super().__init__(
            event_type=EventType.PLAYBACK_FAILED,
            session_id=session_id,
            timestamp=timestamp,
            data={"provider": provider, "detail": detail}
        )


@dataclass
class ErrorOccurredEvent(InterviewEvent):
    """Event fired when an operation surfaces a typed error."""
    def __init__(self, session_id: str, timestamp: float, error: InterviewError, component: str):
        super().__init__(
            event_type=EventType.ERROR_OCCURRED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "kind": error.kind.value,
                "error_type": error.code,
                "error_message": error.message,
                "detail": error.detail,
                "component": component
            }
        )


EventHandler = Callable[[InterviewEvent], None]


class InterviewEventBus:
    """Event bus for interview system communication."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to {event_type}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to all events."""
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
                logger.debug(f"Unsubscribed handler from {event_type}")
            except ValueError:
                logger.warning(f"Handler not found for {event_type}")

    def emit(self, event: InterviewEvent) -> None:
        """
        Emit an event to all subscribers.

        A failing handler is logged and does not stop delivery to the others.

        Args:
            event: Event to emit
        """
        logger.debug(f"Emitting event: {event.event_type} for session {event.session_id}")

        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.event_type}: {e}")

        for handler in list(self._global_handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in global event handler: {e}")

    def clear_handlers(self) -> None:
        """Clear all event handlers."""
        self._handlers.clear()
        self._global_handlers.clear()
        logger.debug("Cleared all event handlers")


class EventLogger:
    """Logs all events for debugging and analysis."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.logger.setLevel(log_level)

    def handle_event(self, event: InterviewEvent) -> None:
        data = {k: v for k, v in event.data.items() if k != "report"}
        self.logger.info(f"Event: {event.event_type.value} | Session: {event.session_id} | Data: {data}")


class InterviewMetrics:
    """Collects metrics from interview events."""

    def __init__(self):
        self.reset()

    def handle_event(self, event: InterviewEvent) -> None:
        """Update metrics based on event."""
        if event.event_type == EventType.SESSION_STARTED:
            self.sessions_started += 1
        elif event.event_type == EventType.SESSION_COMPLETED:
            self.sessions_completed += 1
        elif event.event_type == EventType.SESSION_RESET:
            self.resets += 1
        elif event.event_type == EventType.TURN_SUBMITTED:
            self.turns_submitted += 1
        elif event.event_type == EventType.TURN_SCORED:
            self.turns_scored += 1
            if event.data.get("failed"):
                self.scoring_failures += 1
        elif event.event_type == EventType.PLAYBACK_FAILED:
            self.playback_failures += 1
        elif event.event_type == EventType.ERROR_OCCURRED:
            self.errors_occurred += 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current metrics snapshot."""
        return {
            "sessions_started": self.sessions_started,
            "sessions_completed": self.sessions_completed,
            "turns_submitted": self.turns_submitted,
            "turns_scored": self.turns_scored,
            "scoring_failures": self.scoring_failures,
            "resets": self.resets,
            "playback_failures": self.playback_failures,
            "errors_occurred": self.errors_occurred
        }

    def reset(self) -> None:
        """Reset all metrics to zero."""
        self.sessions_started = 0
        self.sessions_completed = 0
        self.turns_submitted = 0
        self.turns_scored = 0
        self.scoring_failures = 0
        self.resets = 0
        self.playback_failures = 0
        self.errors_occurred = 0
