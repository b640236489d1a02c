"""Interview system components.

This module contains the session state machine, the question/scoring services
it drives, and the feedback aggregation that produces the final report.
"""

# Event system (first: the speech providers publish on it)
from .events import (
    InterviewEventBus, EventLogger, InterviewMetrics,
    EventType, InterviewEvent, SessionStartedEvent, StageChangedEvent,
    QuestionChangedEvent, TranscriptChangedEvent, TranscriptReadyEvent,
    TurnSubmittedEvent, TurnScoredEvent, SessionCompletedEvent, SessionResetEvent,
    PlaybackEndedEvent, PlaybackFailedEvent, ErrorOccurredEvent
)

# Data models
from .models import Stage, Turn, Evaluation, Report, InterviewContext, failed_evaluation

# Core orchestrator
from .orchestrator import InterviewOrchestrator, build_orchestrator

# Structured schemas
from .schemas import EvaluationPayload, QuestionPayload, parse_llm_evaluation, parse_llm_question

# Service classes
from .services import (
    QuestionSource, StaticQuestionSource, LLMQuestionSource,
    Scorer, HeuristicScorer, LLMScorer, build_services
)

# Aggregation
from .analysis import aggregate, tier_for, round_half_up, render_turn_feedback, render_report

__all__ = [
    # Orchestrator
    "InterviewOrchestrator", "build_orchestrator",

    # Data models
    "Stage", "Turn", "Evaluation", "Report", "InterviewContext", "failed_evaluation",

    # Schemas
    "EvaluationPayload", "QuestionPayload", "parse_llm_evaluation", "parse_llm_question",

    # Services
    "QuestionSource", "StaticQuestionSource", "LLMQuestionSource",
    "Scorer", "HeuristicScorer", "LLMScorer", "build_services",

    # Aggregation
    "aggregate", "tier_for", "round_half_up", "render_turn_feedback", "render_report",

    # Events
    "InterviewEventBus", "EventLogger", "InterviewMetrics",
    "EventType", "InterviewEvent", "SessionStartedEvent", "StageChangedEvent",
    "QuestionChangedEvent", "TranscriptChangedEvent", "TranscriptReadyEvent",
    "TurnSubmittedEvent", "TurnScoredEvent", "SessionCompletedEvent", "SessionResetEvent",
    "PlaybackEndedEvent", "PlaybackFailedEvent", "ErrorOccurredEvent",
]
