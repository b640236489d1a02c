import base64

import google.auth.exceptions
import pytest
import requests

from mock_interview.config import Config, GEMINI_API_BASE
from mock_interview.infrastructure.llm import GeminiRestClient, LLMRequestError, extract_json


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def text_response(text):
    return FakeResponse(payload={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def test_client_requires_credentials():
    with pytest.raises(ValueError):
        GeminiRestClient()


def test_from_config():
    assert GeminiRestClient.from_config(Config()) is None
    client = GeminiRestClient.from_config(Config(gemini_api_key="k", model_name="gemini-test"))
    assert client.endpoint == f"{GEMINI_API_BASE}/models/gemini-test:generateContent"
    assert not client.uses_vertex


def test_vertex_endpoint():
    client = GeminiRestClient(project="my-proj", location="europe-west4", model="gemini-2.0-flash")
    assert client.uses_vertex
    assert client.endpoint.startswith("https://europe-west4-aiplatform.googleapis.com/v1/projects/my-proj/")


def test_generate_content_with_api_key():
    session = FakeSession(text_response("Hello"))
    client = GeminiRestClient(api_key="secret", session=session)

    assert client.generate_content("Say hello", temperature=0.2) == "Hello"

    sent = session.posts[0]
    assert sent["headers"]["x-goog-api-key"] == "secret"
    assert sent["json"]["contents"][0]["parts"] == [{"text": "Say hello"}]
    assert sent["json"]["generationConfig"]["temperature"] == 0.2


def test_generate_from_audio_sends_inline_data():
    session = FakeSession(text_response("transcript"))
    client = GeminiRestClient(api_key="secret", session=session)

    client.generate_from_audio("Transcribe", b"RIFFdata", "audio/wav")

    parts = session.posts[0]["json"]["contents"][0]["parts"]
    assert parts[0]["inline_data"]["mime_type"] == "audio/wav"
    assert base64.b64decode(parts[0]["inline_data"]["data"]) == b"RIFFdata"
    assert parts[1] == {"text": "Transcribe"}


def test_http_errors_raise_request_error():
    client = GeminiRestClient(api_key="k", session=FakeSession(FakeResponse(429, text="quota")))
    with pytest.raises(LLMRequestError) as exc_info:
        client.generate_content("x")
    assert exc_info.value.is_quota

    client = GeminiRestClient(api_key="k", session=FakeSession(error=requests.ConnectionError("offline")))
    with pytest.raises(LLMRequestError) as exc_info:
        client.generate_content("x")
    assert exc_info.value.status_code is None


def test_missing_text_returns_empty_string():
    client = GeminiRestClient(api_key="k", session=FakeSession(FakeResponse(payload={"candidates": []})))
    assert client.generate_content("x") == ""


def test_generate_json():
    client = GeminiRestClient(api_key="k", session=FakeSession(text_response('Sure! {"score": 80}')))
    assert client.generate_json("Score it") == {"score": 80}


def test_extract_json():
    assert extract_json('{"a": 1}') == {"a": 1}
    assert extract_json('```json\n{"a": {"b": 2}}\n```') == {"a": {"b": 2}}
    with pytest.raises(ValueError):
        extract_json("[1, 2]")
    with pytest.raises(ValueError):
        extract_json("no json here")


class NonJsonResponse(FakeResponse):
    def json(self):
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


def test_non_json_body_raises_request_error():
    client = GeminiRestClient(api_key="secret",
                              session=FakeSession(NonJsonResponse(text="<html>Bad gateway</html>")))

    with pytest.raises(LLMRequestError) as excinfo:
        client.generate_content("Hi")

    assert "non-JSON" in str(excinfo.value)
    assert not excinfo.value.is_quota


def test_vertex_credentials_failure_raises_request_error(monkeypatch):
    session = FakeSession(text_response("unused"))
    client = GeminiRestClient(project="my-proj", session=session)

    def expired():
        raise google.auth.exceptions.RefreshError("token expired")

    monkeypatch.setattr(client, "_refresh_token", expired)

    with pytest.raises(LLMRequestError) as excinfo:
        client.generate_content("Hi")

    assert "token expired" in str(excinfo.value)
    assert session.posts == []
