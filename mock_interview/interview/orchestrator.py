"""
Interview session state machine.

Drives question asking, answer capture and scoring on a single asyncio loop:

    NOT_STARTED -> ASKING_QUESTION -> RECORDING -> ASKING_QUESTION (loop)
                                               `-> SCORING -> COMPLETE

Every public coroutine returns a ``Result``; none raise for normal control
flow. ``reset()`` is synchronous: it bumps the session epoch and cancels all
outstanding work, and any coroutine that resumes afterwards returns
``SessionCancelled`` without touching session state.
"""
import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Dict, List, Optional, Set

from ..config import Config, MAX_TURNS, LANGUAGE_CODE
from ..errors import (
    AlreadyRecording, InterviewError, InvalidStage, QuestionError, QuestionPending,
    Result, ScoreError, SessionCancelled
)
from ..infrastructure.audio.processing import PyAudioMicrophone
from ..infrastructure.audio.speech import (
    SubprocessAudioPlayer, TranscriptionProvider, TranscriptResult, VoiceSynthesizer,
    build_synthesis_backends, build_transcription_backends
)
from ..infrastructure.llm import GeminiRestClient
from .analysis import aggregate
from .events import (
    InterviewEventBus, EventLogger, InterviewMetrics,
    ErrorOccurredEvent, QuestionChangedEvent, SessionCompletedEvent, SessionResetEvent,
    SessionStartedEvent, StageChangedEvent, TranscriptChangedEvent, TurnScoredEvent,
    TurnSubmittedEvent
)
from .models import InterviewContext, Report, Stage, Turn, failed_evaluation
from .services import QuestionSource, Scorer, answer_or_sentinel, build_services

logger = logging.getLogger("orchestrator")


class InterviewOrchestrator:
    """
    Runs one mock-interview session at a time.

    The question source, scorer, transcription provider and synthesizer are
    constructed elsewhere and passed in; the orchestrator only sequences them
    and recovers from their failures.
    """

    def __init__(self,
                 question_source: QuestionSource,
                 scorer: Scorer,
                 transcription: TranscriptionProvider,
                 synthesizer: Optional[VoiceSynthesizer] = None,
                 context: Optional[InterviewContext] = None,
                 max_turns: int = MAX_TURNS,
                 language: str = LANGUAGE_CODE,
                 preferred_provider: Optional[str] = None,
                 event_bus: Optional[InterviewEventBus] = None,
                 session_id: Optional[str] = None):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")

        self.question_source = question_source
        self.scorer = scorer
        self.transcription = transcription
        self.synthesizer = synthesizer
        self.context = context or InterviewContext()
        self.max_turns = max_turns
        self.language = language
        self.preferred_provider = preferred_provider
        self.session_id = session_id or uuid.uuid4().hex[:12]

        # Initialize event system
        self.event_bus = event_bus or InterviewEventBus()
        self.event_logger = EventLogger()
        self.metrics = InterviewMetrics()
        self.event_bus.subscribe_all(self.event_logger.handle_event)
        self.event_bus.subscribe_all(self.metrics.handle_event)

        # Providers publish on the session bus
        for provider in (self.transcription, self.synthesizer):
            if provider is not None:
                provider.event_bus = provider.event_bus or self.event_bus
                provider.session_id = self.session_id

        self._stage = Stage.NOT_STARTED
        self._history: List[Turn] = []
        self._current_question = ""
        self._transcript = ""
        self._report: Optional[Report] = None

        self._epoch = 0
        self._fetching = False
        self._fetch_failed = False
        self._capture_busy = False
        self._inflight: Set[asyncio.Future] = set()
        self._scoring: Dict[int, asyncio.Task] = {}
        self._speech_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------- properties

    @property
    def stage(self) -> Stage:
        return self._stage

    @property
    def history(self) -> List[Turn]:
        return list(self._history)

    @property
    def current_question(self) -> str:
        return self._current_question

    @property
    def transcript(self) -> str:
        return self._transcript

    @property
    def report(self) -> Optional[Report]:
        return self._report

    @property
    def question_pending(self) -> bool:
        return self._fetching or self._fetch_failed

    def resource_count(self) -> int:
        """Open capture resources plus playback resources."""
        count = self.transcription.open_resources
        if self.synthesizer is not None:
            count += self.synthesizer.open_resources
        return count

    # ------------------------------------------------------------- operations

    async def start(self) -> Result[None]:
        """Fetch the first question and begin asking."""
        if self._stage is not Stage.NOT_STARTED:
            return Result.failure(InvalidStage("start the interview", self._stage.value))
        if self._fetching:
            return Result.failure(QuestionPending())

        epoch = self._epoch
        if self.transcription.current_provider().name == "none":
            init = self.transcription.initialize(self.language, self.preferred_provider)
            if not init.ok:
                logger.warning(f"No transcription provider: {init.error.detail}")
                self._emit_error(init.error, "transcription")

        fetched = await self._fetch_question()
        if epoch != self._epoch:
            return Result.failure(SessionCancelled())
        if not fetched.ok:
            self._fetch_failed = False  # start() itself is the retry path here
            return Result.failure(fetched.error)

        if fetched.value is None:
            logger.info("Question source had no questions; completing with an empty report")
            completed = await self._complete()
            return Result.failure(completed.error) if not completed.ok else Result.success()

        self._set_stage(Stage.ASKING_QUESTION)
        self.event_bus.emit(SessionStartedEvent(self.session_id, time.time(), self.max_turns))
        self._present_question(fetched.value)
        return Result.success()

    async def start_recording(self) -> Result[None]:
        """Stop question playback and open a capture session."""
        if self._awaiting_question():
            return Result.failure(QuestionPending())
        if self._stage is not Stage.ASKING_QUESTION:
            return Result.failure(InvalidStage("start recording", self._stage.value))
        if self._capture_busy:
            return Result.failure(AlreadyRecording())

        self._stop_speaking()
        self._set_transcript("")

        self._capture_busy = True
        epoch = self._epoch
        try:
            result = await self._guarded(self.transcription.start())
        finally:
            if epoch == self._epoch:
                self._capture_busy = False
        if result is None or epoch != self._epoch:
            return Result.failure(SessionCancelled())

        if not result.ok:
            return result
        self._set_stage(Stage.RECORDING)
        return Result.success()

    async def stop_recording(self) -> Result[TranscriptResult]:
        """Stop capture and wait for the transcript; the user reviews it before submitting."""
        if self._stage is not Stage.RECORDING:
            return Result.failure(InvalidStage("stop recording", self._stage.value))
        if self._capture_busy:
            return Result.failure(InvalidStage("stop recording", "finalizing"))

        self._capture_busy = True
        epoch = self._epoch
        try:
            self.transcription.stop()
            result = await self._guarded(self.transcription.wait_result())
        finally:
            # The capture is over either way; the user can record again or type
            if epoch == self._epoch:
                self._capture_busy = False
                self._set_stage(Stage.ASKING_QUESTION)
        if result is None or epoch != self._epoch:
            return Result.failure(SessionCancelled())

        if result.ok:
            self._set_transcript(result.value.text)
        return result

    def edit_transcript(self, text: str) -> Result[None]:
        """Replace the answer buffer before submitting."""
        if self._stage is not Stage.ASKING_QUESTION or self._capture_busy:
            return Result.failure(InvalidStage("edit the transcript", self._stage.value))
        self._set_transcript(text)
        return Result.success()

    async def submit_answer(self) -> Result[Turn]:
        """
        Commit the buffer as the answer to the current question.

        Scoring runs in the background. For the final turn this waits for every
        outstanding evaluation and completes the session.

        Returns:
            Result with the appended ``Turn``; a ``QuestionError`` if the next
            question could not be fetched (the turn is still recorded)
        """
        if self._awaiting_question():
            return Result.failure(QuestionPending())
        if self._stage is not Stage.ASKING_QUESTION or self._capture_busy:
            return Result.failure(InvalidStage("submit an answer", self._stage.value))

        self._stop_speaking()

        turn = Turn(index=len(self._history), question=self._current_question,
                    answer_text=self._transcript or "")
        self._history.append(turn)
        self.event_bus.emit(TurnSubmittedEvent(self.session_id, time.time(), turn.index,
                                               turn.question, turn.answer_text))
        self._set_transcript("")
        self._launch_scoring(turn)
        self._set_stage(Stage.SCORING)

        if len(self._history) >= self.max_turns:
            completed = await self._complete()
            return Result.failure(completed.error) if not completed.ok else Result.success(turn)

        advanced = await self._advance()
        if not advanced.ok:
            return Result.failure(advanced.error)
        return Result.success(turn)

    async def retry_question(self) -> Result[Optional[str]]:
        """Re-issue a next-question fetch that failed."""
        if self._fetching:
            return Result.failure(QuestionPending())
        if not self._fetch_failed:
            return Result.failure(InvalidStage("retry the question", self._stage.value))

        result = await self._advance()
        if not result.ok:
            return Result.failure(result.error)
        return Result.success(self._current_question if self._stage is Stage.ASKING_QUESTION else None)

    def reset(self) -> None:
        """Cancel everything in flight and return to ``NOT_STARTED``."""
        self._epoch += 1
        previous, turn_count = self._stage, len(self._history)

        for task in list(self._inflight) + list(self._scoring.values()):
            if not task.done():
                task.cancel()
        self._inflight.clear()
        self._scoring = {}
        self._stop_speaking()
        self.transcription.cleanup()

        self._history = []
        self._current_question = ""
        self._transcript = ""
        self._report = None
        self._fetching = False
        self._fetch_failed = False
        self._capture_busy = False

        self._set_stage(Stage.NOT_STARTED)
        self.event_bus.emit(SessionResetEvent(self.session_id, time.time(), turn_count, previous.value))
        logger.info(f"Session reset from {previous.value} with {turn_count} turn(s)")

    # -------------------------------------------------------------- internals

    def _awaiting_question(self) -> bool:
        return self.question_pending and self._stage in (Stage.ASKING_QUESTION, Stage.SCORING)

    def _stop_speaking(self) -> None:
        if self._speech_task is not None and not self._speech_task.done():
            self._speech_task.cancel()
        self._speech_task = None
        if self.synthesizer is not None:
            self.synthesizer.cancel()

    async def _guarded(self, awaitable: Awaitable[Any]) -> Optional[Any]:
        """Await ``awaitable`` as a tracked task; ``None`` if the session was reset meanwhile."""
        epoch = self._epoch
        task = asyncio.ensure_future(awaitable)
        self._inflight.add(task)
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            self._inflight.discard(task)

        if task.cancelled() or epoch != self._epoch:
            return None
        return task.result()

    async def _safe_next_question(self, asked: List[str]) -> Result[Optional[str]]:
        try:
            return await self.question_source.next_question(asked, self.context)
        except Exception as e:
            logger.error(f"Question source raised {type(e).__name__}: {e}")
            return Result.failure(QuestionError(f"{type(e).__name__}: {e}"))

    async def _fetch_question(self) -> Result[Optional[str]]:
        """Ask the source for the next question. Turn N is always appended before this runs."""
        asked = [turn.question for turn in self._history]
        epoch = self._epoch
        self._fetching = True
        self._fetch_failed = False
        result = await self._guarded(self._safe_next_question(asked))
        if result is None or epoch != self._epoch:
            return Result.failure(SessionCancelled())

        self._fetching = False
        if not result.ok:
            self._fetch_failed = True
            logger.error(f"Question fetch failed: {result.error.detail}")
            self._emit_error(result.error, "question_source")
        return result

    async def _advance(self) -> Result[None]:
        """Fetch and present the next question, or complete when the source is done."""
        epoch = self._epoch
        fetched = await self._fetch_question()
        if epoch != self._epoch:
            return Result.failure(SessionCancelled())

        if not fetched.ok:
            # Keep the previous question on screen; recording and submit are gated
            self._set_stage(Stage.ASKING_QUESTION)
            return Result.failure(fetched.error)

        if fetched.value is None:
            logger.info("Question source ended the interview early")
            self._set_stage(Stage.SCORING)
            return await self._complete()

        self._set_stage(Stage.ASKING_QUESTION)
        self._present_question(fetched.value)
        return Result.success()

    def _present_question(self, question: str) -> None:
        self._current_question = question
        self._set_transcript("")
        self.event_bus.emit(QuestionChangedEvent(self.session_id, time.time(), len(self._history), question))
        logger.info(f"Question {len(self._history) + 1}: {question}")

        if self.synthesizer is not None:
            self._stop_speaking()
            self._speech_task = asyncio.ensure_future(self.synthesizer.speak(question))

    def _launch_scoring(self, turn: Turn) -> None:
        task = asyncio.ensure_future(self._score_turn(turn, self._epoch))
        self._scoring[turn.index] = task

    async def _score_turn(self, turn: Turn, epoch: int) -> None:
        answer = answer_or_sentinel(turn.answer_text)
        try:
            result = await self.scorer.evaluate(turn.question, answer, self.context)
        except Exception as e:
            logger.error(f"Scorer raised {type(e).__name__} for turn {turn.index}: {e}")
            result = Result.failure(ScoreError(f"{type(e).__name__}: {e}"))

        if epoch != self._epoch:
            return

        if result.ok and result.value is not None:
            evaluation = result.value
        else:
            error = result.error or ScoreError("scorer returned no evaluation")
            self._emit_error(error, "scorer")
            evaluation = failed_evaluation(error.detail or error.message)

        turn.attach_evaluation(evaluation)
        self.event_bus.emit(TurnScoredEvent(self.session_id, time.time(), turn.index,
                                            evaluation.score, evaluation.failed))

    async def _complete(self) -> Result[Report]:
        """Wait for every evaluation, aggregate once and finish the session."""
        epoch = self._epoch
        if self._stage is not Stage.SCORING:
            self._set_stage(Stage.SCORING)

        pending = [task for task in self._scoring.values() if not task.done()]
        if pending:
            logger.info(f"Waiting for {len(pending)} outstanding evaluation(s)")
            done = await self._guarded(asyncio.wait(pending))
            if done is None or epoch != self._epoch:
                return Result.failure(SessionCancelled())

        report = aggregate(self._history)
        self._report = report
        self._set_stage(Stage.COMPLETE)
        self.event_bus.emit(SessionCompletedEvent(self.session_id, time.time(), report))
        return Result.success(report)

    def _set_stage(self, stage: Stage) -> None:
        if stage is self._stage:
            return
        previous, self._stage = self._stage, stage
        self.event_bus.emit(StageChangedEvent(self.session_id, time.time(), previous.value, stage.value))

    def _set_transcript(self, text: str) -> None:
        if text == self._transcript:
            return
        self._transcript = text
        self.event_bus.emit(TranscriptChangedEvent(self.session_id, time.time(), text))

    def _emit_error(self, error: InterviewError, component: str) -> None:
        self.event_bus.emit(ErrorOccurredEvent(self.session_id, time.time(), error, component))


def build_orchestrator(config: Config,
                       context: Optional[InterviewContext] = None,
                       microphone_factory=PyAudioMicrophone,
                       preferred_provider: Optional[str] = None) -> InterviewOrchestrator:
    """Wire real providers and services from a ``Config``."""
    event_bus = InterviewEventBus()
    client = GeminiRestClient.from_config(config)
    question_source, scorer = build_services(config, client)

    transcription = TranscriptionProvider(
        build_transcription_backends(config, client),
        microphone_factory=microphone_factory,
        event_bus=event_bus,
    )
    synthesizer = None
    if config.enable_tts:
        synthesizer = VoiceSynthesizer(build_synthesis_backends(config), SubprocessAudioPlayer(),
                                       event_bus=event_bus)

    return InterviewOrchestrator(
        question_source=question_source,
        scorer=scorer,
        transcription=transcription,
        synthesizer=synthesizer,
        context=context or InterviewContext(target_role=config.target_role),
        max_turns=config.max_turns,
        language=config.language_code,
        preferred_provider=preferred_provider,
        event_bus=event_bus,
    )
