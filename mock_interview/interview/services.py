"""
Question sources and answer scorers used by the interview orchestrator.

Both are opaque collaborators to the orchestrator: it only sequences the calls
and recovers from their failures. LLM-backed implementations run the blocking
REST client in a worker thread.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from ..config import NO_ANSWER_SENTINEL, MAX_TURNS
from ..errors import QuestionError, ScoreError, Result
from ..infrastructure.llm import GeminiRestClient, LLMRequestError
from .models import Evaluation, InterviewContext
from .prompts import InterviewPrompts
from .schemas import parse_llm_evaluation, parse_llm_question

logger = logging.getLogger("services")

DEFAULT_QUESTIONS = (
    "Tell me about yourself and your background in software engineering.",
    "Describe a challenging project you've worked on recently. What was your role and what did you learn?",
    "How do you approach debugging a complex issue in your code?",
    "What's your experience with modern JavaScript frameworks? Which one do you prefer and why?",
    "How do you stay updated with the latest technologies and best practices in software development?",
)

# (maximum answer length, score, positive remark, improvement remark)
LENGTH_FEEDBACK: Tuple[Tuple[Optional[int], int, str, str], ...] = (
    (50, 60, "You were concise and to the point.",
     "Consider providing more details and examples to strengthen your answer."),
    (200, 75, "Good level of detail in your response.",
     "Try to include a specific example to make your answer more impactful."),
    (400, 85, "Excellent detail and good structure in your response.",
     "Consider focusing a bit more on outcomes and results in your examples."),
    (None, 90, "Comprehensive answer with great examples and detail.",
     "For some interview settings, a slightly more concise version might be beneficial."),
)


def answer_or_sentinel(answer: str) -> str:
    return answer.strip() or NO_ANSWER_SENTINEL


# =============================================================================
# QUESTION SOURCES
# =============================================================================

class QuestionSource(ABC):
    """Produces the next question, or ``None`` when the interview should end."""

    @abstractmethod
    async def next_question(self, history: List[str],
                            context: InterviewContext) -> Result[Optional[str]]:
        """
        Args:
            history: Questions already asked in this session, oldest first
            context: Candidate background, passed through unchanged

        Returns:
            Result with the question text, ``None`` for "no further question",
            or a ``QuestionError``
        """


class StaticQuestionSource(QuestionSource):
    """Walks a fixed list of questions in order."""

    def __init__(self, questions: Sequence[str] = DEFAULT_QUESTIONS):
        self.questions = list(questions)

    async def next_question(self, history: List[str],
                            context: InterviewContext) -> Result[Optional[str]]:
        if len(history) >= len(self.questions):
            return Result.success(None)
        return Result.success(self.questions[len(history)])


class LLMQuestionSource(QuestionSource):
    """Generates questions tailored to the candidate with Gemini."""

    def __init__(self, client: GeminiRestClient, max_turns: int = MAX_TURNS):
        self.client = client
        self.max_turns = max_turns

    async def next_question(self, history: List[str],
                            context: InterviewContext) -> Result[Optional[str]]:
        remaining = max(0, self.max_turns - len(history))
        prompt = InterviewPrompts.next_question(context, history, remaining)
        try:
            raw = await asyncio.to_thread(self.client.generate_json, prompt)
            question = parse_llm_question(raw)
        except LLMRequestError as e:
            logger.error(f"Question generation request failed: {e}")
            return Result.failure(QuestionError(str(e)))
        except ValueError as e:
            logger.error(f"Question generation returned an unusable response: {e}")
            return Result.failure(QuestionError(str(e)))

        if question is None:
            logger.info("Question source reported no further question")
        elif question in history:
            logger.warning(f"LLM repeated an earlier question: {question}")
        return Result.success(question)


# =============================================================================
# SCORERS
# =============================================================================

class Scorer(ABC):
    """Scores one answer to one question."""

    @abstractmethod
    async def evaluate(self, question: str, answer: str,
                       context: InterviewContext) -> Result[Evaluation]:
        """An empty answer arrives as the no-answer sentinel, never as an error."""


class HeuristicScorer(Scorer):
    """Deterministic scoring by answer length, for offline sessions."""

    async def evaluate(self, question: str, answer: str,
                       context: InterviewContext) -> Result[Evaluation]:
        return Result.success(self.score_text(answer))

    @staticmethod
    def score_text(answer: str) -> Evaluation:
        length = len(answer)
        for limit, score, positive, improvement in LENGTH_FEEDBACK:
            if limit is None or length < limit:
                return Evaluation(score=score, strengths=(positive,), improvements=(improvement,),
                                  rationale=f"{length} characters")
        raise AssertionError("LENGTH_FEEDBACK must end with an open-ended entry")


class LLMScorer(Scorer):
    """Scores answers with Gemini and validates the JSON it returns."""

    def __init__(self, client: GeminiRestClient):
        self.client = client

    async def evaluate(self, question: str, answer: str,
                       context: InterviewContext) -> Result[Evaluation]:
        prompt = InterviewPrompts.score_answer(context, question, answer)
        try:
            raw = await asyncio.to_thread(self.client.generate_json, prompt)
            evaluation = parse_llm_evaluation(raw)
        except LLMRequestError as e:
            logger.error(f"Scoring request failed: {e}")
            return Result.failure(ScoreError(str(e)))
        except ValueError as e:
            logger.error(f"Scoring returned an unusable response: {e}")
            return Result.failure(ScoreError(str(e)))

        logger.info(f"Answer scored {evaluation.score}/100")
        return Result.success(evaluation)


def build_services(config, client: Optional[GeminiRestClient] = None) -> Tuple[QuestionSource, Scorer]:
    """Pick the question source and scorer named in the configuration."""
    client = client or GeminiRestClient.from_config(config)

    if config.question_source == "llm" and client is not None:
        source: QuestionSource = LLMQuestionSource(client, config.max_turns)
    else:
        source = StaticQuestionSource()

    if config.scorer == "llm" and client is not None:
        scorer: Scorer = LLMScorer(client)
    else:
        scorer = HeuristicScorer()

    return source, scorer
