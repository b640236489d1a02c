"""
Structured schemas for LLM responses in the interview system.
"""
import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..infrastructure.llm import extract_json
from .models import Evaluation


class EvaluationPayload(BaseModel):
    """Scoring response expected from the LLM."""
    score: int = Field(ge=0, le=100)
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    rationale: Optional[str] = None

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value: Any) -> int:
        # Models sometimes answer 87.5 or "87"
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"score is not a number: {value!r}")
        return max(0, min(100, int(round(number))))

    @field_validator("strengths", "improvements", mode="before")
    @classmethod
    def coerce_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return [str(item).strip() for item in value if str(item).strip()]

    def to_evaluation(self) -> Evaluation:
        return Evaluation(
            score=self.score,
            strengths=tuple(self.strengths),
            improvements=tuple(self.improvements),
            rationale=self.rationale,
        )


class QuestionPayload(BaseModel):
    """Question-generation response; ``done`` means no further question."""
    question: Optional[str] = None
    done: bool = False

    @field_validator("question", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


def _as_dict(raw: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    return extract_json(raw)


def parse_llm_evaluation(raw: Union[str, Dict[str, Any]]) -> Evaluation:
    """
    Parse an LLM scoring response into an ``Evaluation``.

    Args:
        raw: Raw model text or an already decoded JSON object

    Returns:
        Evaluation built from the response

    Raises:
        ValueError: If the response is not a valid evaluation
    """
    try:
        return EvaluationPayload.model_validate(_as_dict(raw)).to_evaluation()
    except ValidationError as e:
        raise ValueError(f"Invalid evaluation structure: {e}") from e


def parse_llm_question(raw: Union[str, Dict[str, Any]]) -> Optional[str]:
    """
    Parse an LLM question response. Returns ``None`` when the model says the
    interview is finished.

    Raises:
        ValueError: If the response contains neither a question nor ``done``
    """
    try:
        payload = QuestionPayload.model_validate(_as_dict(raw))
    except ValidationError as e:
        raise ValueError(f"Invalid question structure: {e}") from e

    if payload.done:
        return None
    if payload.question is None:
        raise ValueError(f"No question in LLM response: {json.dumps(raw) if isinstance(raw, dict) else raw}")
    return payload.question
