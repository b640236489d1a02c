import pytest

from mock_interview.config import MAX_TURNS, get_config
from mock_interview.errors import (
    AlreadyRecording, BackendFailure, DeviceNotFound, ErrorKind, InvalidStage, NoProviderAvailable,
    NoSpeechDetected, QuestionError, Result, ScoreError
)


def test_llm_services_require_credentials():
    with pytest.raises(ValueError):
        get_config()


def test_offline_config_needs_no_credentials():
    config = get_config(question_source="static", scorer="heuristic")
    assert config.max_turns == MAX_TURNS
    assert not config.uses_llm


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "k")
    monkeypatch.setenv("INTERVIEW_MAX_TURNS", "3")
    monkeypatch.setenv("INTERVIEW_STT_PROVIDERS", "google, AssemblyAI")
    monkeypatch.setenv("INTERVIEW_WORKDIR", "/tmp/interviews")

    config = get_config()

    assert config.has_llm_credentials
    assert config.max_turns == 3
    assert config.transcription_providers == ["google", "assemblyai"]
    assert config.log_file == "/tmp/interviews/interview.log"


def test_max_turns_must_be_positive(monkeypatch):
    monkeypatch.setenv("INTERVIEW_MAX_TURNS", "0")
    with pytest.raises(ValueError):
        get_config(question_source="static", scorer="heuristic")


@pytest.mark.parametrize("error,kind", [
    (DeviceNotFound(), ErrorKind.DEVICE),
    (BackendFailure("x"), ErrorKind.BACKEND),
    (NoProviderAvailable(), ErrorKind.BACKEND),
    (NoSpeechDetected(), ErrorKind.CONTENT),
    (QuestionError(), ErrorKind.UPSTREAM),
    (ScoreError(), ErrorKind.UPSTREAM),
    (AlreadyRecording(), ErrorKind.STATE),
])
def test_error_kinds(error, kind):
    assert error.kind is kind


def test_error_to_dict():
    data = InvalidStage("submit an answer", "recording").to_dict()
    assert data["kind"] == "state"
    assert data["code"] == "InvalidStage"
    assert data["stage"] == "recording"

    assert BackendFailure("503", provider="gemini").to_dict()["provider"] == "gemini"


def test_result_unwrap():
    assert Result.success(5).unwrap() == 5
    assert Result.success().ok
    with pytest.raises(QuestionError):
        Result.failure(QuestionError("down")).unwrap()
