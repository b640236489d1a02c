"""
Mock interview orchestrator: a voice-driven practice interview session.

Asks questions aloud, records and transcribes answers, scores each answer
and aggregates the scores into a final performance report.
"""

__version__ = "1.0.0"

# Main entry points (the interview package must load before infrastructure)
from .interview.orchestrator import InterviewOrchestrator, build_orchestrator
from .interview.models import Stage, Turn, Evaluation, Report, InterviewContext
from .errors import InterviewError, Result

__all__ = [
    "InterviewOrchestrator", "build_orchestrator",
    "Stage", "Turn", "Evaluation", "Report", "InterviewContext",
    "InterviewError", "Result",
]
