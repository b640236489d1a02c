"""
Gemini REST client for question generation, scoring and audio transcription.

Works against the public Generative Language API with an API key, or against
Vertex AI with OAuth credentials when a Google Cloud project is configured.
"""
import base64
import json
import logging
from typing import Optional, Dict, Any, List

import requests
import google.auth
import google.auth.exceptions
import google.auth.transport.requests
from google.oauth2 import service_account

from ...config import (
    VERTEX_LOCATION, MODEL_NAME, HTTP_TIMEOUT, MAX_OUTPUT_TOKENS, GEMINI_API_BASE
)

logger = logging.getLogger("llm_client")


class LLMRequestError(RuntimeError):
    """Raised when the model endpoint cannot be reached or rejects the call."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_quota(self) -> bool:
        return self.status_code == 429


class GeminiRestClient:
    """REST-based client for Gemini models (API key or Vertex AI)."""

    def __init__(self,
                 api_key: Optional[str] = None,
                 project: Optional[str] = None,
                 location: str = VERTEX_LOCATION,
                 model: str = MODEL_NAME,
                 credentials_json: Optional[str] = None,
                 timeout: int = HTTP_TIMEOUT,
                 session: Optional[requests.Session] = None):
        if not api_key and not project:
            raise ValueError("GeminiRestClient needs an api_key or a Google Cloud project")
        self.api_key = api_key
        self.project = project
        self.location = location
        self.model = model
        self.credentials_json = credentials_json
        self.timeout = timeout
        self._session = session or requests.Session()
        self._token = None

    @classmethod
    def from_config(cls, config) -> Optional["GeminiRestClient"]:
        """Build a client from a ``Config``; ``None`` when no credentials are set."""
        if not config.has_llm_credentials:
            return None
        return cls(
            api_key=config.gemini_api_key,
            project=config.google_cloud_project,
            location=config.vertex_location,
            model=config.model_name,
            credentials_json=config.google_application_credentials,
        )

    @property
    def uses_vertex(self) -> bool:
        return not self.api_key

    @property
    def endpoint(self) -> str:
        if self.uses_vertex:
            return (f"https://{self.location}-aiplatform.googleapis.com/v1/projects/{self.project}"
                    f"/locations/{self.location}/publishers/google/models/{self.model}:generateContent")
        return f"{GEMINI_API_BASE}/models/{self.model}:generateContent"

    def _refresh_token(self):
        """Refresh the OAuth token for Vertex API calls."""
        if self.credentials_json:
            creds = service_account.Credentials.from_service_account_file(
                self.credentials_json,
                scopes=["https://www.googleapis.com/auth/cloud-platform"],
            )
        else:
            creds, _ = google.auth.default(scopes=["https://www.googleapis.com/auth/cloud-platform"])

        auth_req = google.auth.transport.requests.Request()
        creds.refresh(auth_req)
        self._token = creds.token

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.uses_vertex:
            if not self._token:
                self._refresh_token()
            headers["Authorization"] = f"Bearer {self._token}"
        else:
            headers["x-goog-api-key"] = self.api_key
        return headers

    def generate_content(
        self,
        prompt_text: str,
        temperature: float = 0.0,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
        inline_parts: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        """Generate content; ``inline_parts`` are sent before the text part."""
        parts: List[Dict[str, Any]] = list(inline_parts or [])
        parts.append({"text": prompt_text})

        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": float(temperature),
                "maxOutputTokens": int(max_output_tokens),
            },
        }

        try:
            headers = self._headers()
        except (google.auth.exceptions.GoogleAuthError, OSError, ValueError) as e:
            raise LLMRequestError(f"Google credentials unusable: {e}") from e

        try:
            resp = self._session.post(self.endpoint, headers=headers, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise LLMRequestError(f"Gemini request failed: {e}") from e

        if resp.status_code >= 400:
            raise LLMRequestError(f"Gemini REST error {resp.status_code}: {resp.text}", resp.status_code)

        try:
            resp_json = resp.json()
        except ValueError as e:
            raise LLMRequestError(f"Gemini returned a non-JSON body: {resp.text[:200]}", resp.status_code) from e
        if not isinstance(resp_json, dict):
            raise LLMRequestError(f"Unexpected Gemini response: {resp.text[:200]}", resp.status_code)
        return self._parse_response_text(resp_json)

    def generate_from_audio(self, prompt_text: str, audio: bytes, mime_type: str) -> str:
        """Send an audio clip inline with an instruction prompt."""
        audio_part = {
            "inline_data": {
                "mime_type": mime_type,
                "data": base64.b64encode(audio).decode("ascii"),
            }
        }
        return self.generate_content(prompt_text, temperature=0.0, inline_parts=[audio_part])

    def _parse_response_text(self, resp_json: Dict[str, Any]) -> str:
        """
        Parse response JSON to extract text content.
        Returns an empty string when the model produced no text part.
        """
        cands = resp_json.get("candidates") or []
        if cands:
            content = cands[0].get("content") or {}
            for part in content.get("parts") or []:
                if isinstance(part, dict) and isinstance(part.get("text"), str):
                    return part["text"]

        if isinstance(resp_json.get("text"), str):
            return resp_json["text"]

        logger.warning("No text in Gemini response: %s", json.dumps(resp_json, separators=(",", ":"))[:500])
        return ""

    def generate_json(self, prompt: str) -> Dict[str, Any]:
        """
        Generate JSON response from LLM and parse it tolerantly.
        Automatically appends instruction to respond with JSON only.
        """
        prompt_json = prompt.strip() + "\n\nRespond ONLY with minified JSON."
        text = self.generate_content(prompt_json, temperature=0.0)
        logger.debug("Raw LLM output: %s", repr(text))
        return extract_json(text)


def extract_json(text: str) -> Dict[str, Any]:
    """Parse a JSON object from model output, tolerating code fences and prose."""
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            parsed = json.loads(text[start:end + 1])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError as e:
            logger.warning("Substring parse failed: %s", e)

    raise ValueError(f"LLM did not return valid JSON: {text}")
