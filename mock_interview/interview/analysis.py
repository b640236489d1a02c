"""
Feedback aggregation: per-answer evaluations into a final performance report.

The strength/improvement summary is a keyword heuristic over the per-turn
feedback text, not a classifier. Vocabularies and fallback lists live in
``config``.
"""
import logging
import math
from dataclasses import replace
from typing import Iterable, List, Sequence, Tuple

from ..config import (
    PERFORMANCE_TIERS, NOT_RATED_TIER, STRENGTH_VOCABULARY, IMPROVEMENT_VOCABULARY,
    FALLBACK_STRENGTHS, FALLBACK_IMPROVEMENTS, FEEDBACK_REMARKS
)
from .models import Evaluation, Report, Turn

logger = logging.getLogger("interview_analysis")

Vocabulary = Sequence[Tuple[str, Sequence[str]]]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 always going up (72.5 -> 73)."""
    return int(math.floor(value + 0.5))


def tier_for(score: int) -> str:
    for floor, name in PERFORMANCE_TIERS:
        if score >= floor:
            return name
    return PERFORMANCE_TIERS[-1][1]


def match_vocabulary(texts: Iterable[str], vocabulary: Vocabulary) -> List[str]:
    """
    Labels whose keywords occur (case-insensitive substring) in ``texts``.

    Labels come back in vocabulary order, each at most once.
    """
    haystack = " ".join(texts).lower()
    if not haystack.strip():
        return []
    return [label for label, keywords in vocabulary
            if any(keyword.lower() in haystack for keyword in keywords)]


def aggregate(turns: Sequence[Turn]) -> Report:
    """
    Build the final report from the session history.

    Turns without an evaluation are left out of the statistics but kept in
    the report. The input turns are copied, never mutated.

    Args:
        turns: Session history in submission order

    Returns:
        Frozen ``Report``; an empty history gives a "Not Rated" report
    """
    snapshot = tuple(replace(turn) for turn in turns)
    evaluations: List[Evaluation] = [t.evaluation for t in snapshot if t.evaluation is not None]

    if not evaluations:
        return Report(average_score=0, max_score=0, min_score=0, tier=NOT_RATED_TIER,
                      strengths=(), improvements=(), turns=snapshot)

    scores = [e.score for e in evaluations]
    average = round_half_up(sum(scores) / len(scores))

    strengths = match_vocabulary((s for e in evaluations for s in e.strengths), STRENGTH_VOCABULARY)
    improvements = match_vocabulary((s for e in evaluations for s in e.improvements), IMPROVEMENT_VOCABULARY)

    report = Report(
        average_score=average,
        max_score=max(scores),
        min_score=min(scores),
        tier=tier_for(average),
        strengths=tuple(strengths or FALLBACK_STRENGTHS),
        improvements=tuple(improvements or FALLBACK_IMPROVEMENTS),
        turns=snapshot,
    )
    logger.info(f"Aggregated {len(scores)} evaluations: avg={report.average_score} tier={report.tier}")
    return report


def closing_remark(score: int) -> str:
    for floor, remark in FEEDBACK_REMARKS:
        if score >= floor:
            return remark
    return FEEDBACK_REMARKS[-1][1]


def render_turn_feedback(evaluation: Evaluation) -> str:
    """Plain-text feedback for one answer."""
    lines = ["Interview Feedback:", "", f"Score: {evaluation.score}/100", "", "Strengths:"]
    lines.extend(evaluation.strengths or ("-",))
    lines.extend(["", "Areas for Improvement:"])
    lines.extend(evaluation.improvements or ("-",))
    lines.extend(["", closing_remark(evaluation.score)])
    return "\n".join(lines)


def render_report(report: Report) -> str:
    """Plain-text summary of the whole session."""
    if report.is_empty:
        return f"Interview Summary\n\nNo answers were recorded. Performance: {report.tier}"

    lines = [
        "Interview Summary",
        "",
        f"Overall score: {report.average_score}/100 ({report.tier})",
        f"Best answer: {report.max_score}/100 | Weakest answer: {report.min_score}/100",
        "",
        "Strengths:",
    ]
    lines.extend(f"  - {s}" for s in report.strengths)
    lines.extend(["", "Areas for Improvement:"])
    lines.extend(f"  - {s}" for s in report.improvements)
    lines.extend(["", "Answers:"])
    for turn in report.turns:
        score = f"{turn.evaluation.score}/100" if turn.evaluation else "not scored"
        marker = " (scoring unavailable)" if turn.evaluation and turn.evaluation.failed else ""
        lines.append(f"  {turn.index + 1}. [{score}{marker}] {turn.question}")
    return "\n".join(lines)
