"""
Mock Interview Configuration System
===================================

This file contains ALL configuration for the mock interview orchestrator.
- User settings at the top (things users might want to change)
- Scoring policy in the middle (tiers, vocabularies, sentinels)
- Internal constants at the bottom (technical defaults)
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


# =============================================================================
# USER SETTINGS - Edit these to customize the interview
# =============================================================================

# Credentials (environment variables take precedence)
GEMINI_API_KEY = None  # Google AI Studio key for the Gemini REST API
GOOGLE_CLOUD_PROJECT = None  # Optional: use Vertex AI instead of an API key
GOOGLE_APPLICATION_CREDENTIALS = None  # Optional: path to credentials JSON
ASSEMBLYAI_API_KEY = None

# Interview settings
MAX_TURNS = 5
WORKDIR = "./_interview"
TARGET_ROLE = "Software Engineer"

# Question and scoring services: "llm" or "static" / "llm" or "heuristic"
QUESTION_SOURCE = "llm"
SCORER = "llm"

# Speech settings
ENABLE_TTS = True
LANGUAGE_CODE = "en-US"
TTS_VOICE = "en-US-Neural2-F"
ESPEAK_VOICE = "en-us"

# Provider preference orders (first available wins)
TRANSCRIPTION_PROVIDERS = ("gemini", "assemblyai", "google")
SYNTHESIS_PROVIDERS = ("google", "espeak")

# Logging
LOG_FILE = "./_interview/interview.log"
LOG_LEVEL = "INFO"


# =============================================================================
# SCORING POLICY
# =============================================================================

# Descending floors: the first tier whose floor is <= the average wins
PERFORMANCE_TIERS: Tuple[Tuple[int, str], ...] = (
    (85, "Excellent"),
    (70, "Good"),
    (55, "Needs Improvement"),
    (0, "Requires Practice"),
)
NOT_RATED_TIER = "Not Rated"

# Canonical labels matched (case-insensitive substring) against per-turn feedback.
# Each entry is (label reported, keywords that indicate it).
STRENGTH_VOCABULARY: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("Clear communication", ("clear", "articulate", "communicat")),
    ("Well-structured answers", ("structure", "organized", "organised", "star method")),
    ("Concrete examples", ("example", "specific")),
    ("Problem-solving", ("problem-solving", "problem solving", "debug", "analytical")),
    ("Technical depth", ("technical", "in-depth", "depth")),
    ("Focus on outcomes", ("outcome", "result", "impact")),
    ("Leadership", ("leadership", "led ", "ownership")),
    ("Teamwork", ("team", "collaborat")),
    ("Confidence", ("confident", "confidence")),
    ("Conciseness", ("concise", "to the point")),
)
IMPROVEMENT_VOCABULARY: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("Add more specific examples", ("example", "specific")),
    ("Structure answers with the STAR method", ("star", "structure")),
    ("Emphasise outcomes and results", ("outcome", "result", "impact")),
    ("Provide more detail", ("more detail", "elaborate", "detail")),
    ("Be more concise", ("concise", "shorter", "brevity")),
    ("Show more technical depth", ("technical", "depth")),
    ("Speak with more confidence", ("confiden", "hesita")),
    ("Answer the question directly", ("directly", "relevan", "off-topic")),
)
FALLBACK_STRENGTHS = [
    "You communicate your thoughts clearly",
    "You provide good context in your answers",
    "You demonstrate problem-solving abilities",
]
FALLBACK_IMPROVEMENTS = [
    "Use more specific examples when describing your experiences",
    "Focus more on outcomes and results in your answers",
    "Structure your responses using the STAR method (Situation, Task, Action, Result)",
]

# Sentinels
NO_ANSWER_SENTINEL = "No answer provided."
FAILED_EVALUATION_STRENGTHS = ["Scoring was unavailable for this answer"]
FAILED_EVALUATION_IMPROVEMENTS = ["This answer could not be evaluated; practise it again in a new session"]

# Per-turn feedback closing remarks (score floor, remark)
FEEDBACK_REMARKS: Tuple[Tuple[int, str], ...] = (
    (75, "Overall, excellent job! Your response was clear and effective."),
    (50, "Good effort! With some refinement, your responses will be even stronger."),
    (0, "Keep practicing! Consider the improvement suggestions to strengthen your interview skills."),
)


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# Audio capture
SAMPLE_RATE_CAPTURE = 48000
SAMPLE_RATE_TARGET = 16000
CHANNELS = 1
FRAME_MS = 30
TARGET_RMS = 0.06
MIN_CAPTURE_SECONDS = 0.3
SILENCE_RMS = 0.005

# Playback
PLAYER_COMMANDS = (("afplay",), ("aplay", "-q"), ("paplay",))
TTS_SAMPLE_RATE = 16000
TTS_PITCH = 55
TTS_AMPLITUDE = 120
TTS_RATE_WPM = 170

# LLM
VERTEX_LOCATION = "us-central1"
MODEL_NAME = "gemini-2.0-flash"
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
MAX_OUTPUT_TOKENS = 512
HTTP_TIMEOUT = 60

# Transcription
GEMINI_TRANSCRIPTION_CONFIDENCE = 0.9
NO_SPEECH_MARKERS = ("[silence]", "[unintelligible]", "[no speech]")
ASSEMBLYAI_API_BASE = "https://api.assemblyai.com/v2"
ASSEMBLYAI_POLL_SECONDS = 1.0
ASSEMBLYAI_LANGUAGE = "en"


# =============================================================================
# MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class Config:
    """Main configuration object."""
    gemini_api_key: Optional[str] = None
    google_cloud_project: Optional[str] = None
    google_application_credentials: Optional[str] = None
    assemblyai_api_key: Optional[str] = None
    max_turns: int = MAX_TURNS
    workdir: str = WORKDIR
    target_role: str = TARGET_ROLE
    question_source: str = QUESTION_SOURCE
    scorer: str = SCORER
    enable_tts: bool = ENABLE_TTS
    language_code: str = LANGUAGE_CODE
    tts_voice: str = TTS_VOICE
    espeak_voice: str = ESPEAK_VOICE
    transcription_providers: List[str] = field(default_factory=lambda: list(TRANSCRIPTION_PROVIDERS))
    synthesis_providers: List[str] = field(default_factory=lambda: list(SYNTHESIS_PROVIDERS))
    model_name: str = MODEL_NAME
    vertex_location: str = VERTEX_LOCATION
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL

    @property
    def has_llm_credentials(self) -> bool:
        return bool(self.gemini_api_key or self.google_cloud_project)

    @property
    def uses_llm(self) -> bool:
        return self.question_source == "llm" or self.scorer == "llm"


def _env_list(name: str, default: Tuple[str, ...]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


def get_config(question_source: Optional[str] = None, scorer: Optional[str] = None) -> Config:
    """Load configuration from the environment over the module defaults."""
    workdir = os.getenv("INTERVIEW_WORKDIR") or WORKDIR
    config = Config(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or GEMINI_API_KEY,
        google_cloud_project=os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT,
        google_application_credentials=(
            os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or GOOGLE_APPLICATION_CREDENTIALS
        ),
        assemblyai_api_key=os.getenv("ASSEMBLYAI_API_KEY") or ASSEMBLYAI_API_KEY,
        max_turns=int(os.getenv("INTERVIEW_MAX_TURNS") or MAX_TURNS),
        workdir=workdir,
        target_role=os.getenv("INTERVIEW_TARGET_ROLE") or TARGET_ROLE,
        question_source=question_source or os.getenv("INTERVIEW_QUESTION_SOURCE") or QUESTION_SOURCE,
        scorer=scorer or os.getenv("INTERVIEW_SCORER") or SCORER,
        language_code=os.getenv("INTERVIEW_LANGUAGE") or LANGUAGE_CODE,
        transcription_providers=_env_list("INTERVIEW_STT_PROVIDERS", TRANSCRIPTION_PROVIDERS),
        synthesis_providers=_env_list("INTERVIEW_TTS_PROVIDERS", SYNTHESIS_PROVIDERS),
        log_file=os.path.join(workdir, "interview.log"),
        log_level=os.getenv("INTERVIEW_LOG_LEVEL") or LOG_LEVEL,
    )

    if config.max_turns < 1:
        raise ValueError("INTERVIEW_MAX_TURNS must be at least 1")
    if config.uses_llm and not config.has_llm_credentials:
        raise ValueError(
            "Please set GEMINI_API_KEY or GOOGLE_CLOUD_PROJECT, "
            "or run with --static --heuristic"
        )

    return config
