"""
Interview prompt templates.

Kept apart from the services so the wording can be edited without touching
the call logic.
"""

from typing import List
import json

from .models import InterviewContext


class InterviewPrompts:
    """Collection of all interview-related prompts."""

    @staticmethod
    def _candidate_block(context: InterviewContext) -> str:
        role = context.target_role or "a software engineering role"
        resume = context.resume_text.strip() or "(no resume provided)"
        return f"Target role: {role}\nCandidate resume:\n{resume}"

    @staticmethod
    def next_question(context: InterviewContext, asked: List[str], remaining: int) -> str:
        """Prompt for the next interview question."""
        return f"""
You are an experienced interviewer running a mock job interview.

{InterviewPrompts._candidate_block(context)}

Questions already asked (do not repeat them): {json.dumps(asked, ensure_ascii=False)}
Questions remaining in this session: {remaining}

Ask ONE new question that:
1. Fits the target role and the candidate's background
2. Covers a different area than the questions already asked
3. Is short enough to be read aloud

If the interview has covered enough ground already, you may end it early.

Respond with minified JSON only, either
{{"question":"<the question>"}}
or
{{"done":true}}
        """.strip()

    @staticmethod
    def score_answer(context: InterviewContext, question: str, answer: str) -> str:
        """Prompt for scoring a single answer."""
        return f"""
You are an interview coach scoring a candidate's spoken answer.

{InterviewPrompts._candidate_block(context)}

Question: {json.dumps(question, ensure_ascii=False)}
Answer (speech transcript, may contain recognition errors): {json.dumps(answer, ensure_ascii=False)}

Score the answer from 0 to 100 for relevance, structure, specific examples, focus on
outcomes and clarity. List what was done well and what should improve, as short
phrases addressed to the candidate.

Respond with minified JSON only:
{{"score":<int 0-100>,"strengths":["..."],"improvements":["..."],"rationale":"<one sentence>"}}
        """.strip()
