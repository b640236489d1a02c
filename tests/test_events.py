import time

from mock_interview.errors import QuestionError
from mock_interview.interview.events import (
    ErrorOccurredEvent, EventType, InterviewEventBus, InterviewMetrics, SessionStartedEvent,
    TurnScoredEvent
)


def test_subscribers_receive_by_type():
    bus = InterviewEventBus()
    scored, everything = [], []
    bus.subscribe(EventType.TURN_SCORED, scored.append)
    bus.subscribe_all(everything.append)

    bus.emit(SessionStartedEvent("s1", time.time(), 5))
    bus.emit(TurnScoredEvent("s1", time.time(), 0, 80, False))

    assert [e.data["score"] for e in scored] == [80]
    assert [e.event_type for e in everything] == [EventType.SESSION_STARTED, EventType.TURN_SCORED]


def test_failing_handler_does_not_stop_delivery():
    bus = InterviewEventBus()
    received = []

    def broken(event):
        raise RuntimeError("handler bug")

    bus.subscribe(EventType.SESSION_STARTED, broken)
    bus.subscribe(EventType.SESSION_STARTED, received.append)
    bus.emit(SessionStartedEvent("s1", time.time(), 3))

    assert len(received) == 1


def test_unsubscribe_and_clear():
    bus = InterviewEventBus()
    received = []
    bus.subscribe(EventType.SESSION_STARTED, received.append)
    bus.unsubscribe(EventType.SESSION_STARTED, received.append)
    bus.unsubscribe(EventType.SESSION_STARTED, received.append)
    bus.subscribe_all(received.append)
    bus.clear_handlers()

    bus.emit(SessionStartedEvent("s1", time.time(), 3))

    assert received == []


def test_error_event_carries_kind_and_component():
    event = ErrorOccurredEvent("s1", time.time(), QuestionError("timeout"), "question_source")

    assert event.data["kind"] == "upstream"
    assert event.data["error_type"] == "QuestionError"
    assert event.data["detail"] == "timeout"
    assert event.data["component"] == "question_source"


def test_metrics_count_events():
    metrics = InterviewMetrics()
    metrics.handle_event(SessionStartedEvent("s1", time.time(), 3))
    metrics.handle_event(TurnScoredEvent("s1", time.time(), 0, 0, True))
    metrics.handle_event(TurnScoredEvent("s1", time.time(), 1, 70, False))

    snapshot = metrics.get_metrics()
    assert snapshot["sessions_started"] == 1
    assert snapshot["turns_scored"] == 2
    assert snapshot["scoring_failures"] == 1

    metrics.reset()
    assert all(value == 0 for value in metrics.get_metrics().values())
