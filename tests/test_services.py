import pytest

from mock_interview.config import Config
from mock_interview.errors import QuestionError, ScoreError
from mock_interview.infrastructure.llm import LLMRequestError
from mock_interview.interview.models import InterviewContext
from mock_interview.interview.schemas import parse_llm_evaluation, parse_llm_question
from mock_interview.interview.services import (
    DEFAULT_QUESTIONS, HeuristicScorer, LLMQuestionSource, LLMScorer, StaticQuestionSource,
    answer_or_sentinel, build_services
)
from mock_interview.interview.testing import MockLLMClient

CONTEXT = InterviewContext(resume_text="Built payment APIs in Go.", target_role="Backend Engineer")


@pytest.mark.asyncio
async def test_static_source_walks_the_bank():
    source = StaticQuestionSource()

    assert (await source.next_question([], CONTEXT)).value == DEFAULT_QUESTIONS[0]
    assert (await source.next_question(list(DEFAULT_QUESTIONS[:2]), CONTEXT)).value == DEFAULT_QUESTIONS[2]
    assert (await source.next_question(list(DEFAULT_QUESTIONS), CONTEXT)).value is None


@pytest.mark.parametrize("length,score", [(10, 60), (49, 60), (50, 75), (199, 75), (300, 85), (400, 90), (900, 90)])
def test_heuristic_scores_by_length(length, score):
    evaluation = HeuristicScorer.score_text("x" * length)
    assert evaluation.score == score
    assert len(evaluation.strengths) == 1
    assert len(evaluation.improvements) == 1


@pytest.mark.asyncio
async def test_heuristic_scorer_on_sentinel():
    result = await HeuristicScorer().evaluate("Q", answer_or_sentinel("   "), CONTEXT)
    assert result.value.score == 60
    assert "more details" in result.value.improvements[0]


@pytest.mark.asyncio
async def test_llm_question_source():
    client = MockLLMClient(['{"question": "How did you scale the payment API?"}', '{"done": true}'])
    source = LLMQuestionSource(client, max_turns=3)

    first = await source.next_question([], CONTEXT)
    second = await source.next_question(["How did you scale the payment API?"], CONTEXT)

    assert first.value == "How did you scale the payment API?"
    assert second.ok and second.value is None
    prompt = client.request_history[0]["prompt"]
    assert "Backend Engineer" in prompt
    assert "Built payment APIs in Go." in prompt
    assert "Questions remaining in this session: 3" in prompt


@pytest.mark.asyncio
async def test_llm_question_source_tolerates_code_fences():
    client = MockLLMClient(['```json\n{"question": "Why Go?"}\n```'])
    result = await LLMQuestionSource(client).next_question([], CONTEXT)
    assert result.value == "Why Go?"


@pytest.mark.asyncio
async def test_llm_question_source_errors():
    client = MockLLMClient([LLMRequestError("Gemini REST error 500", 500), "not json at all", '{"foo": 1}'])
    source = LLMQuestionSource(client)

    for _ in range(3):
        result = await source.next_question([], CONTEXT)
        assert isinstance(result.error, QuestionError)


@pytest.mark.asyncio
async def test_llm_scorer_validates_response():
    client = MockLLMClient([
        '{"score": 87.6, "strengths": "Clear structure", "improvements": ["More metrics", ""], '
        '"rationale": "Solid answer"}'
    ])

    result = await LLMScorer(client).evaluate("Q1", "My answer", CONTEXT)

    evaluation = result.value
    assert evaluation.score == 88
    assert evaluation.strengths == ("Clear structure",)
    assert evaluation.improvements == ("More metrics",)
    assert evaluation.rationale == "Solid answer"
    assert not evaluation.failed
    assert '"My answer"' in client.request_history[0]["prompt"]


@pytest.mark.asyncio
async def test_llm_scorer_errors():
    client = MockLLMClient([LLMRequestError("quota", 429), '{"strengths": []}', '{"score": "high"}'])
    scorer = LLMScorer(client)

    for _ in range(3):
        result = await scorer.evaluate("Q1", "answer", CONTEXT)
        assert isinstance(result.error, ScoreError)


def test_parse_llm_evaluation_clamps_score():
    assert parse_llm_evaluation({"score": 140}).score == 100
    assert parse_llm_evaluation({"score": "-5"}).score == 0
    with pytest.raises(ValueError):
        parse_llm_evaluation({"score": None})


def test_parse_llm_question():
    assert parse_llm_question('{"question": "  Why?  "}') == "Why?"
    assert parse_llm_question({"done": True, "question": "ignored"}) is None
    with pytest.raises(ValueError):
        parse_llm_question({"question": "   "})


def test_answer_or_sentinel():
    assert answer_or_sentinel("  hi ") == "hi"
    assert answer_or_sentinel("") == "No answer provided."


def test_build_services_offline():
    config = Config(question_source="static", scorer="heuristic")
    source, scorer = build_services(config)
    assert isinstance(source, StaticQuestionSource)
    assert isinstance(scorer, HeuristicScorer)


def test_build_services_with_client():
    config = Config(question_source="llm", scorer="llm", gemini_api_key="test-key")
    source, scorer = build_services(config, MockLLMClient([]))
    assert isinstance(source, LLMQuestionSource)
    assert isinstance(scorer, LLMScorer)


def test_build_services_without_credentials_falls_back():
    source, scorer = build_services(Config(question_source="llm", scorer="llm"))
    assert isinstance(source, StaticQuestionSource)
    assert isinstance(scorer, HeuristicScorer)
