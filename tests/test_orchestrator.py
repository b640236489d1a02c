import asyncio
import warnings

import pytest
from google.auth.exceptions import DefaultCredentialsError

from mock_interview.config import NO_ANSWER_SENTINEL, NOT_RATED_TIER
from mock_interview.errors import (
    BackendFailure, DeviceDenied, ErrorKind, InvalidStage, NoSpeechDetected, QuestionError, QuestionPending,
    ScoreError, SessionCancelled
)
from mock_interview.interview.events import EventType
from mock_interview.interview.models import Stage
from mock_interview.interview import orchestrator as orchestrator_module
from mock_interview.interview.orchestrator import InterviewOrchestrator
from mock_interview.interview.testing import create_test_orchestrator


async def settle(rounds: int = 20):
    for _ in range(rounds):
        await asyncio.sleep(0)


async def record_answer(orchestrator):
    assert (await orchestrator.start_recording()).ok
    result = await orchestrator.stop_recording()
    assert result.ok, result.error
    return result


async def typed_answer(orchestrator, text="A typed answer about a specific example."):
    assert orchestrator.edit_transcript(text).ok
    return await orchestrator.submit_answer()


@pytest.mark.asyncio
async def test_full_session_reaches_complete(session):
    orchestrator = session["orchestrator"]
    events = session["events"]

    assert (await orchestrator.start()).ok
    assert orchestrator.stage is Stage.ASKING_QUESTION
    assert orchestrator.current_question == "Q1"

    for expected in range(1, 4):
        await record_answer(orchestrator)
        assert orchestrator.transcript == "My answer."
        submitted = await orchestrator.submit_answer()
        assert submitted.ok
        assert len(orchestrator.history) == expected

    assert orchestrator.stage is Stage.COMPLETE
    assert all(turn.evaluation is not None for turn in orchestrator.history)

    report = orchestrator.report
    assert report.average_score == 70
    assert (report.max_score, report.min_score) == (80, 60)
    assert report.tier == "Good"

    completed = events.of_type(EventType.SESSION_COMPLETED)
    assert len(completed) == 1
    assert completed[0].data["report"] is report
    assert len(events.of_type(EventType.TURN_SCORED)) == 3
    assert orchestrator.metrics.get_metrics()["turns_submitted"] == 3


@pytest.mark.asyncio
async def test_next_question_requested_after_turn_is_appended(session):
    orchestrator = session["orchestrator"]
    await orchestrator.start()
    await typed_answer(orchestrator)
    await typed_answer(orchestrator)

    assert session["source"].calls == [[], ["Q1"], ["Q1", "Q2"]]


@pytest.mark.asyncio
async def test_intermediate_submit_does_not_wait_for_scoring():
    parts = create_test_orchestrator(hold_scores=(0,))
    orchestrator = parts["orchestrator"]
    await orchestrator.start()

    submitted = await typed_answer(orchestrator)

    assert submitted.ok
    assert orchestrator.stage is Stage.ASKING_QUESTION
    assert orchestrator.current_question == "Q2"
    assert orchestrator.history[0].evaluation is None

    parts["scorer"].release(0)
    await settle()
    assert orchestrator.history[0].evaluation.score == 80


@pytest.mark.asyncio
async def test_scoring_failure_while_next_question_is_asked():
    parts = create_test_orchestrator(scores=(80, ScoreError("scoring service down"), 60), hold_scores=(1,))
    orchestrator = parts["orchestrator"]
    await orchestrator.start()

    await typed_answer(orchestrator)
    await typed_answer(orchestrator)
    assert orchestrator.current_question == "Q3"

    final = asyncio.ensure_future(typed_answer(orchestrator))
    await settle()
    assert orchestrator.stage is Stage.SCORING
    assert not final.done()

    parts["scorer"].release(1)
    result = await final

    assert result.ok
    assert orchestrator.stage is Stage.COMPLETE
    history = orchestrator.history
    assert history[1].evaluation.failed
    assert history[1].evaluation.score == 0
    assert not history[2].evaluation.failed
    assert history[2].evaluation.score == 60
    assert orchestrator.report.average_score == 47

    errors = parts["events"].of_type(EventType.ERROR_OCCURRED)
    assert [e.data["component"] for e in errors] == ["scorer"]


@pytest.mark.asyncio
async def test_scorer_exception_becomes_sentinel():
    parts = create_test_orchestrator(scores=(RuntimeError("boom"),), max_turns=1)
    orchestrator = parts["orchestrator"]
    await orchestrator.start()

    assert (await typed_answer(orchestrator)).ok
    assert orchestrator.stage is Stage.COMPLETE
    assert orchestrator.history[0].evaluation.failed
    assert orchestrator.metrics.get_metrics()["scoring_failures"] == 1


@pytest.mark.asyncio
async def test_empty_answer_is_scored_with_sentinel(session):
    orchestrator = session["orchestrator"]
    await orchestrator.start()

    assert (await orchestrator.submit_answer()).ok
    await settle()

    assert orchestrator.history[0].answer_text == ""
    assert session["scorer"].calls[0]["answer"] == NO_ANSWER_SENTINEL


@pytest.mark.asyncio
async def test_submit_during_recording_is_invalid(session):
    orchestrator = session["orchestrator"]
    await orchestrator.start()
    assert (await orchestrator.start_recording()).ok

    result = await orchestrator.submit_answer()

    assert isinstance(result.error, InvalidStage)
    assert result.error.kind is ErrorKind.STATE
    assert orchestrator.stage is Stage.RECORDING
    assert orchestrator.history == []


@pytest.mark.asyncio
async def test_operations_before_start_are_invalid(session):
    orchestrator = session["orchestrator"]

    assert isinstance((await orchestrator.start_recording()).error, InvalidStage)
    assert isinstance((await orchestrator.stop_recording()).error, InvalidStage)
    assert isinstance((await orchestrator.submit_answer()).error, InvalidStage)
    assert isinstance(orchestrator.edit_transcript("x").error, InvalidStage)


@pytest.mark.asyncio
async def test_start_twice_is_invalid(session):
    orchestrator = session["orchestrator"]
    await orchestrator.start()
    assert isinstance((await orchestrator.start()).error, InvalidStage)


@pytest.mark.asyncio
async def test_device_error_leaves_stage_unchanged(session):
    orchestrator = session["orchestrator"]
    await orchestrator.start()
    session["microphones"].error = DeviceDenied("permission refused by the OS")

    result = await orchestrator.start_recording()

    assert isinstance(result.error, DeviceDenied)
    assert orchestrator.stage is Stage.ASKING_QUESTION
    assert orchestrator.resource_count() == 0

    session["microphones"].error = None
    assert (await orchestrator.start_recording()).ok


@pytest.mark.asyncio
async def test_no_speech_returns_to_asking(session):
    orchestrator = session["orchestrator"]
    await orchestrator.start()
    session["microphones"].audio = b"\x00\x00" * 48000

    assert (await orchestrator.start_recording()).ok
    result = await orchestrator.stop_recording()

    assert isinstance(result.error, NoSpeechDetected)
    assert result.error.kind is ErrorKind.CONTENT
    assert orchestrator.stage is Stage.ASKING_QUESTION
    assert orchestrator.transcript == ""
    assert session["stt_backend"].received == []


@pytest.mark.asyncio
async def test_transcript_can_be_edited_before_submit(session):
    orchestrator = session["orchestrator"]
    await orchestrator.start()
    await record_answer(orchestrator)

    orchestrator.edit_transcript("My corrected answer.")
    result = await orchestrator.submit_answer()

    assert result.value.answer_text == "My corrected answer."
    changes = [e.data["text"] for e in session["events"].of_type(EventType.TRANSCRIPT_CHANGED)]
    assert "My answer." in changes
    assert "My corrected answer." in changes


@pytest.mark.asyncio
async def test_start_failure_stays_not_started_and_can_retry():
    parts = create_test_orchestrator(questions=(QuestionError("timeout"), "Q1"))
    orchestrator = parts["orchestrator"]

    first = await orchestrator.start()
    assert isinstance(first.error, QuestionError)
    assert first.error.kind is ErrorKind.UPSTREAM
    assert orchestrator.stage is Stage.NOT_STARTED

    assert (await orchestrator.start()).ok
    assert orchestrator.current_question == "Q1"


@pytest.mark.asyncio
async def test_source_without_questions_completes_with_empty_report():
    parts = create_test_orchestrator(questions=())
    orchestrator = parts["orchestrator"]

    assert (await orchestrator.start()).ok

    assert orchestrator.stage is Stage.COMPLETE
    assert orchestrator.report.is_empty
    assert orchestrator.report.tier == NOT_RATED_TIER


@pytest.mark.asyncio
async def test_source_ending_early_completes_session():
    parts = create_test_orchestrator(questions=("Q1", None), max_turns=5)
    orchestrator = parts["orchestrator"]
    await orchestrator.start()

    result = await typed_answer(orchestrator)

    assert result.ok
    assert orchestrator.stage is Stage.COMPLETE
    assert len(orchestrator.report.turns) == 1
    assert orchestrator.report.turns[0].evaluation.score == 80


@pytest.mark.asyncio
async def test_question_failure_keeps_state_and_gates_until_retry():
    parts = create_test_orchestrator(questions=("Q1", QuestionError("model overloaded"), "Q2"))
    orchestrator = parts["orchestrator"]
    await orchestrator.start()

    submitted = await typed_answer(orchestrator)
    assert isinstance(submitted.error, QuestionError)
    assert orchestrator.stage is Stage.ASKING_QUESTION
    assert orchestrator.current_question == "Q1"
    assert len(orchestrator.history) == 1
    assert orchestrator.question_pending

    assert isinstance((await orchestrator.start_recording()).error, QuestionPending)
    assert isinstance((await orchestrator.submit_answer()).error, QuestionPending)
    assert len(orchestrator.history) == 1

    retried = await orchestrator.retry_question()
    assert retried.ok
    assert retried.value == "Q2"
    assert not orchestrator.question_pending
    assert (await orchestrator.start_recording()).ok


@pytest.mark.asyncio
async def test_question_source_exception_is_a_question_error():
    parts = create_test_orchestrator(questions=("Q1", ConnectionError("reset by peer"), "Q2"))
    orchestrator = parts["orchestrator"]
    await orchestrator.start()

    result = await typed_answer(orchestrator)

    assert isinstance(result.error, QuestionError)
    assert "ConnectionError" in result.error.detail


@pytest.mark.asyncio
async def test_retry_without_failure_is_invalid(session):
    orchestrator = session["orchestrator"]
    await orchestrator.start()
    assert isinstance((await orchestrator.retry_question()).error, InvalidStage)


@pytest.mark.asyncio
async def test_question_is_spoken_and_cancelled_by_recording(session):
    orchestrator = session["orchestrator"]
    await orchestrator.start()
    await settle()

    assert session["tts_backend"].spoken == ["Q1"]
    assert orchestrator.synthesizer.is_speaking
    assert orchestrator.resource_count() == 1

    assert (await orchestrator.start_recording()).ok

    ended = session["events"].of_type(EventType.PLAYBACK_ENDED)
    assert len(ended) == 1
    assert ended[0].data["cancelled"] is True
    assert not orchestrator.synthesizer.is_speaking


@pytest.mark.asyncio
async def test_reset_from_every_stage_releases_resources():
    parts = create_test_orchestrator(questions=tuple(f"Q{i}" for i in range(1, 20)), hold_scores=(2,))
    orchestrator = parts["orchestrator"]

    orchestrator.reset()
    assert orchestrator.resource_count() == 0

    await orchestrator.start()
    await settle()
    assert orchestrator.resource_count() == 1
    orchestrator.reset()
    assert orchestrator.stage is Stage.NOT_STARTED
    assert orchestrator.resource_count() == 0

    await orchestrator.start()
    await orchestrator.start_recording()
    assert orchestrator.resource_count() >= 1
    orchestrator.reset()
    assert orchestrator.resource_count() == 0
    assert parts["microphones"].created[-1].closed == 1

    await orchestrator.start()
    await typed_answer(orchestrator)
    await typed_answer(orchestrator)
    final = asyncio.ensure_future(typed_answer(orchestrator))
    await settle()
    assert orchestrator.stage is Stage.SCORING
    orchestrator.reset()
    assert isinstance((await final).error, SessionCancelled)
    assert orchestrator.resource_count() == 0
    assert orchestrator.history == []
    assert orchestrator.report is None

    parts["scorer"].hold.clear()
    await orchestrator.start()
    await typed_answer(orchestrator)
    await typed_answer(orchestrator)
    await typed_answer(orchestrator)
    assert orchestrator.stage is Stage.COMPLETE
    orchestrator.reset()
    assert orchestrator.stage is Stage.NOT_STARTED
    assert orchestrator.resource_count() == 0

    assert len(parts["events"].of_type(EventType.SESSION_RESET)) == 5


@pytest.mark.asyncio
async def test_reset_during_question_fetch_mutates_nothing(session):
    orchestrator = session["orchestrator"]
    await orchestrator.start()
    session["source"].block = True

    pending = asyncio.ensure_future(typed_answer(orchestrator))
    await settle()
    assert orchestrator.question_pending

    orchestrator.reset()
    result = await pending

    assert isinstance(result.error, SessionCancelled)
    assert orchestrator.stage is Stage.NOT_STARTED
    assert orchestrator.history == []
    assert orchestrator.current_question == ""
    assert not orchestrator.question_pending


@pytest.mark.asyncio
async def test_reset_during_transcription():
    parts = create_test_orchestrator()
    parts["stt_backend"].block = True
    orchestrator = parts["orchestrator"]
    await orchestrator.start()
    assert (await orchestrator.start_recording()).ok

    stopping = asyncio.ensure_future(orchestrator.stop_recording())
    await settle()
    orchestrator.reset()
    result = await stopping

    assert isinstance(result.error, SessionCancelled)
    assert orchestrator.stage is Stage.NOT_STARTED
    assert orchestrator.transcript == ""
    assert orchestrator.resource_count() == 0


@pytest.mark.asyncio
async def test_late_evaluation_after_reset_is_discarded():
    parts = create_test_orchestrator(hold_scores=(0,))
    orchestrator = parts["orchestrator"]
    await orchestrator.start()
    await typed_answer(orchestrator)
    turn = orchestrator.history[0]

    orchestrator.reset()
    parts["scorer"].release(0)
    await settle()

    assert turn.evaluation is None
    assert parts["events"].of_type(EventType.TURN_SCORED) == []


@pytest.mark.asyncio
async def test_text_only_session_without_synthesizer():
    parts = create_test_orchestrator(with_voice=False, max_turns=1)
    orchestrator = parts["orchestrator"]
    await orchestrator.start()
    await record_answer(orchestrator)

    assert (await orchestrator.submit_answer()).ok
    assert orchestrator.stage is Stage.COMPLETE
    assert orchestrator.resource_count() == 0


def test_max_turns_must_be_positive(session):
    orchestrator = session["orchestrator"]
    with pytest.raises(ValueError):
        InterviewOrchestrator(orchestrator.question_source, orchestrator.scorer,
                              orchestrator.transcription, max_turns=0)


@pytest.mark.asyncio
async def test_transcription_credentials_error_returns_to_asking():
    parts = create_test_orchestrator(transcripts=(DefaultCredentialsError("no default credentials"), "My answer."))
    orchestrator = parts["orchestrator"]
    await orchestrator.start()

    assert (await orchestrator.start_recording()).ok
    result = await orchestrator.stop_recording()

    assert isinstance(result.error, BackendFailure)
    assert result.error.kind is ErrorKind.BACKEND
    assert orchestrator.stage is Stage.ASKING_QUESTION
    assert orchestrator.resource_count() == 0

    await record_answer(orchestrator)
    assert orchestrator.transcript == "My answer."


@pytest.mark.asyncio
async def test_capture_unblocked_when_transcription_raises(session):
    orchestrator = session["orchestrator"]
    provider = orchestrator.transcription
    await orchestrator.start()
    assert (await orchestrator.start_recording()).ok

    async def broken_wait_result():
        raise RuntimeError("provider bug")

    provider.wait_result = broken_wait_result
    with pytest.raises(RuntimeError):
        await orchestrator.stop_recording()
    assert orchestrator.stage is Stage.ASKING_QUESTION

    del provider.wait_result
    await settle()
    await record_answer(orchestrator)
    assert (await orchestrator.submit_answer()).ok


def test_module_source_compiles_without_warnings():
    path = orchestrator_module.__file__
    with open(path, encoding="utf-8") as f:
        source = f.read()

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(source, path, "exec")
