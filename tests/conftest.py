import pytest

from mock_interview.interview.testing import create_test_orchestrator


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    for name in ("GEMINI_API_KEY", "GOOGLE_CLOUD_PROJECT", "GOOGLE_APPLICATION_CREDENTIALS",
                 "ASSEMBLYAI_API_KEY", "INTERVIEW_MAX_TURNS", "INTERVIEW_QUESTION_SOURCE",
                 "INTERVIEW_SCORER", "INTERVIEW_STT_PROVIDERS", "INTERVIEW_TTS_PROVIDERS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def session():
    return create_test_orchestrator()
