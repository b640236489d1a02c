"""
Data models for the interview session.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Tuple

from ..config import FAILED_EVALUATION_STRENGTHS, FAILED_EVALUATION_IMPROVEMENTS


class Stage(str, Enum):
    """Session stages, in the order a session normally moves through them."""
    NOT_STARTED = "not_started"
    ASKING_QUESTION = "asking_question"
    RECORDING = "recording"
    SCORING = "scoring"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Evaluation:
    """Score and feedback for one answer."""
    score: int
    strengths: Tuple[str, ...] = ()
    improvements: Tuple[str, ...] = ()
    rationale: Optional[str] = None
    failed: bool = False

    def __post_init__(self):
        if not 0 <= self.score <= 100:
            raise ValueError(f"score must be within 0..100, got {self.score}")
        # Accept lists from callers but keep the stored value immutable
        object.__setattr__(self, "strengths", tuple(self.strengths))
        object.__setattr__(self, "improvements", tuple(self.improvements))


def failed_evaluation(reason: Optional[str] = None) -> Evaluation:
    """Sentinel attached to a turn whose scoring call failed."""
    return Evaluation(
        score=0,
        strengths=tuple(FAILED_EVALUATION_STRENGTHS),
        improvements=tuple(FAILED_EVALUATION_IMPROVEMENTS),
        rationale=reason,
        failed=True,
    )


@dataclass
class Turn:
    """One answered question. Sealed once its evaluation is attached."""
    index: int
    question: str
    answer_text: str
    evaluation: Optional[Evaluation] = None

    @property
    def is_scored(self) -> bool:
        return self.evaluation is not None

    def attach_evaluation(self, evaluation: Evaluation) -> None:
        if self.evaluation is not None:
            raise RuntimeError(f"Turn {self.index} already has an evaluation")
        self.evaluation = evaluation


@dataclass(frozen=True)
class InterviewContext:
    """Candidate background passed unchanged to the question source and scorer."""
    resume_text: str = ""
    target_role: str = ""


@dataclass(frozen=True)
class Report:
    """Final interview results."""
    average_score: int
    max_score: int
    min_score: int
    tier: str
    strengths: Tuple[str, ...] = ()
    improvements: Tuple[str, ...] = ()
    turns: Tuple[Turn, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.turns
