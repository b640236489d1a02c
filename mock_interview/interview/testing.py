"""
Testing infrastructure with fake devices and services for the interview system.

Nothing here touches hardware or the network. Blocking fakes create their
asyncio events lazily, on first use inside a running loop.
"""
import asyncio
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from ..config import SAMPLE_RATE_CAPTURE
from ..errors import BackendError, DeviceError, InterviewError, NoSpeechDetected, Result
from ..infrastructure.audio.processing import CapturedAudio, Microphone, float_to_pcm16, wav_bytes
from ..infrastructure.audio.speech import (
    AudioPlayer, SynthesisBackend, SynthesizedAudio, TranscriptionBackend, TranscriptionProvider,
    TranscriptResult, VoiceSynthesizer
)
from ..infrastructure.llm import LLMRequestError, extract_json
from .events import InterviewEventBus, InterviewEvent
from .models import Evaluation, InterviewContext
from .orchestrator import InterviewOrchestrator
from .services import QuestionSource, Scorer


def tone_pcm16(seconds: float, sample_rate: int = SAMPLE_RATE_CAPTURE,
               freq: float = 220.0, amplitude: float = 0.3) -> bytes:
    """A sine tone as PCM16, loud enough to pass the silence check."""
    t = np.arange(int(seconds * sample_rate)) / float(sample_rate)
    return float_to_pcm16(amplitude * np.sin(2 * np.pi * freq * t))


class FakeMicrophone(Microphone):
    """Microphone that yields a canned recording."""

    def __init__(self, audio: Optional[bytes] = None, error: Optional[DeviceError] = None,
                 sample_rate: int = SAMPLE_RATE_CAPTURE, tail: Optional[bytes] = None):
        self.audio = tone_pcm16(1.0, sample_rate) if audio is None else audio
        self.error = error
        # Frames the stream still delivers while it is being stopped
        self.tail = tail
        self.sample_rate = sample_rate
        self.channels = 1
        self.opened = 0
        self.closed = 0
        self._open = False
        self._pending: List[bytes] = []

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self.opened += 1
        if self.error is not None:
            raise self.error
        self._open = True
        self._pending = [self.audio] if self.audio else []

    def drain(self) -> List[bytes]:
        frames, self._pending = self._pending, []
        return frames

    def stop(self) -> None:
        if self._open and self.tail:
            self._pending.append(self.tail)

    def close(self) -> None:
        if self._open:
            self.closed += 1
        self._open = False
        self._pending = []


class MicrophoneFactory:
    """Hands out ``FakeMicrophone`` instances and remembers them."""

    def __init__(self, audio: Optional[bytes] = None, error: Optional[DeviceError] = None,
                 tail: Optional[bytes] = None):
        self.audio = audio
        self.error = error
        self.tail = tail
        self.created: List[FakeMicrophone] = []

    def __call__(self) -> FakeMicrophone:
        mic = FakeMicrophone(self.audio, self.error, tail=self.tail)
        self.created.append(mic)
        return mic


class FakeTranscriptionBackend(TranscriptionBackend):
    """Transcription backend returning scripted transcripts or errors."""

    def __init__(self, name: str = "fake",
                 transcripts: Sequence[Union[str, Exception]] = ("This is my answer.",),
                 available: bool = True,
                 prepare_error: Optional[BackendError] = None,
                 block: bool = False):
        self.name = name
        self.features = ("Fake transcription",)
        self.transcripts = list(transcripts)
        self.is_available = available
        self.prepare_error = prepare_error
        self.block = block
        self.prepared = 0
        self.received: List[CapturedAudio] = []
        self._gate: Optional[asyncio.Event] = None

    def available(self) -> bool:
        return self.is_available

    async def prepare(self) -> Result[None]:
        self.prepared += 1
        if self.prepare_error is not None:
            return Result.failure(self.prepare_error)
        return Result.success()

    def release(self) -> None:
        self.block = False
        if self._gate is not None:
            self._gate.set()

    async def transcribe(self, audio: CapturedAudio) -> Result[TranscriptResult]:
        self.received.append(audio)
        if self.block:
            self._gate = self._gate or asyncio.Event()
            await self._gate.wait()

        item = self.transcripts.pop(0) if len(self.transcripts) > 1 else self.transcripts[0]
        if isinstance(item, InterviewError):
            return Result.failure(item)
        if isinstance(item, Exception):
            raise item
        if not item.strip():
            return Result.failure(NoSpeechDetected())
        return Result.success(TranscriptResult(text=item, confidence=0.9, is_final=True, provider=self.name))


class FakeSynthesisBackend(SynthesisBackend):
    """Synthesis backend producing a short silent WAV, or a scripted error."""

    def __init__(self, name: str = "fake-tts", error: Optional[Exception] = None,
                 available: bool = True, block: bool = False):
        self.name = name
        self.error = error
        self.is_available = available
        self.block = block
        self.spoken: List[str] = []
        self._gate: Optional[asyncio.Event] = None

    def available(self) -> bool:
        return self.is_available

    def release(self) -> None:
        self.block = False
        if self._gate is not None:
            self._gate.set()

    async def synthesize(self, text: str) -> Result[SynthesizedAudio]:
        self.spoken.append(text)
        if self.block:
            self._gate = self._gate or asyncio.Event()
            await self._gate.wait()
        if isinstance(self.error, BackendError):
            return Result.failure(self.error)
        if self.error is not None:
            raise self.error
        return Result.success(SynthesizedAudio(wav=wav_bytes(b"\x00\x00" * 1600, 16000), provider=self.name))


class FakeAudioPlayer(AudioPlayer):
    """Player that 'plays' until ``finish()`` is called, or at once with ``auto_finish``."""

    def __init__(self, auto_finish: bool = False, error: Optional[Exception] = None):
        self.auto_finish = auto_finish
        self.error = error
        self.played: List[bytes] = []
        self.stops = 0
        self._gate: Optional[asyncio.Event] = None

    async def play(self, wav: bytes) -> None:
        self.played.append(wav)
        if self.error is not None:
            raise self.error
        if self.auto_finish:
            await asyncio.sleep(0)
            return
        self._gate = asyncio.Event()
        await self._gate.wait()

    def finish(self) -> None:
        if self._gate is not None:
            self._gate.set()

    def stop(self) -> None:
        self.stops += 1


class ScriptedQuestionSource(QuestionSource):
    """Question source replaying a script; entries may be errors or exceptions."""

    def __init__(self, script: Sequence[Union[str, None, InterviewError, Exception]]):
        self.script = list(script)
        self.calls: List[List[str]] = []
        self.block = False
        self._gate: Optional[asyncio.Event] = None

    def release(self) -> None:
        self.block = False
        if self._gate is not None:
            self._gate.set()

    async def next_question(self, history: List[str],
                            context: InterviewContext) -> Result[Optional[str]]:
        self.calls.append(list(history))
        if self.block:
            self._gate = self._gate or asyncio.Event()
            await self._gate.wait()

        item = self.script.pop(0) if self.script else None
        if isinstance(item, InterviewError):
            return Result.failure(item)
        if isinstance(item, Exception):
            raise item
        return Result.success(item)


class ScriptedScorer(Scorer):
    """
    Scorer returning scripted results per call order.

    Entries are ints (score), ``Evaluation``s, ``InterviewError``s or
    exceptions to raise. Calls listed in ``hold`` wait for ``release(n)``.
    """

    def __init__(self, script: Sequence[Any], hold: Sequence[int] = ()):
        self.script = list(script)
        self.hold = set(hold)
        self.calls: List[Dict[str, str]] = []
        self._gates: Dict[int, asyncio.Event] = {}

    def _gate(self, call: int) -> asyncio.Event:
        if call not in self._gates:
            self._gates[call] = asyncio.Event()
        return self._gates[call]

    def release(self, call: int) -> None:
        self.hold.discard(call)
        self._gate(call).set()

    async def evaluate(self, question: str, answer: str,
                       context: InterviewContext) -> Result[Evaluation]:
        call = len(self.calls)
        self.calls.append({"question": question, "answer": answer})
        if call in self.hold:
            await self._gate(call).wait()

        item = self.script[call] if call < len(self.script) else 70
        if isinstance(item, InterviewError):
            return Result.failure(item)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, Evaluation):
            return Result.success(item)
        return Result.success(Evaluation(score=int(item), strengths=("Clear communication",),
                                         improvements=("Add more specific examples",)))


class MockLLMClient:
    """Mock LLM client for testing."""

    def __init__(self, mock_responses: Sequence[Union[str, LLMRequestError]]):
        self.mock_responses = list(mock_responses)
        self.current_response_idx = 0
        self.request_history: List[Dict[str, Any]] = []

    def generate_content(self, prompt: str, temperature: float = 0.0, **kwargs) -> str:
        """Return mock LLM response."""
        self.request_history.append({
            "prompt": prompt,
            "temperature": temperature,
            "kwargs": kwargs
        })

        if self.current_response_idx >= len(self.mock_responses):
            return '{"done": true}'
        response = self.mock_responses[self.current_response_idx]
        self.current_response_idx += 1
        if isinstance(response, LLMRequestError):
            raise response
        return response

    def generate_json(self, prompt: str) -> Dict[str, Any]:
        return extract_json(self.generate_content(prompt))

    def generate_from_audio(self, prompt_text: str, audio: bytes, mime_type: str) -> str:
        return self.generate_content(prompt_text, audio_bytes=len(audio), mime_type=mime_type)


class EventRecorder:
    """Collects every event published on a bus."""

    def __init__(self, bus: InterviewEventBus):
        self.events: List[InterviewEvent] = []
        bus.subscribe_all(self.events.append)

    def types(self) -> List[str]:
        return [e.event_type.value for e in self.events]

    def of_type(self, event_type) -> List[InterviewEvent]:
        return [e for e in self.events if e.event_type == event_type]


def create_test_orchestrator(questions: Sequence[Any] = ("Q1", "Q2", "Q3"),
                             scores: Sequence[Any] = (80, 70, 60),
                             transcripts: Sequence[Any] = ("My answer.",),
                             max_turns: int = 3,
                             with_voice: bool = True,
                             hold_scores: Sequence[int] = ()) -> Dict[str, Any]:
    """Wire an orchestrator entirely from fakes and return its parts."""
    bus = InterviewEventBus()
    recorder = EventRecorder(bus)
    mics = MicrophoneFactory()
    stt_backend = FakeTranscriptionBackend(transcripts=transcripts)
    transcription = TranscriptionProvider([stt_backend], microphone_factory=mics, event_bus=bus)

    player = FakeAudioPlayer()
    tts_backend = FakeSynthesisBackend()
    synthesizer = VoiceSynthesizer([tts_backend], player, event_bus=bus) if with_voice else None

    source = ScriptedQuestionSource(questions)
    scorer = ScriptedScorer(scores, hold=hold_scores)
    orchestrator = InterviewOrchestrator(
        question_source=source,
        scorer=scorer,
        transcription=transcription,
        synthesizer=synthesizer,
        context=InterviewContext(resume_text="Five years of Python.", target_role="Backend Engineer"),
        max_turns=max_turns,
        event_bus=bus,
    )
    return {
        "orchestrator": orchestrator,
        "bus": bus,
        "events": recorder,
        "microphones": mics,
        "stt_backend": stt_backend,
        "tts_backend": tts_backend,
        "player": player,
        "source": source,
        "scorer": scorer,
    }


__all__ = [
    "tone_pcm16", "FakeMicrophone", "MicrophoneFactory", "FakeTranscriptionBackend",
    "FakeSynthesisBackend", "FakeAudioPlayer", "ScriptedQuestionSource", "ScriptedScorer",
    "MockLLMClient", "EventRecorder", "create_test_orchestrator",
]
