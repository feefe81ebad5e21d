"""Tests for the analysis session lifecycle."""

from datetime import datetime, timedelta, timezone

import pytest

from bot_detector.core.session_manager import SessionManager
from bot_detector.exceptions import InvalidTransitionError, SessionNotFoundError, ValidationError
from bot_detector.models import SessionStatus


def ticking_clock(start=datetime(2024, 1, 1, tzinfo=timezone.utc)):
    """Clock that advances one minute per call."""
    state = {"now": start}

    def clock():
        state["now"] = state["now"] + timedelta(minutes=1)
        return state["now"]

    return clock


def drive_to(manager, session_id, *statuses):
    for status in statuses:
        manager.transition(session_id, status)


def test_create_session_defaults(session_manager):
    session = session_manager.create_session("testsub")

    assert session.status == SessionStatus.PENDING
    assert session.subreddit == "testsub"
    assert session.session_name.startswith("Analysis ")
    assert session.total_accounts_analyzed == 0
    assert session.bots_detected == 0
    assert session.completed_at is None
    assert session.analysis_parameters["subreddit"] == "testsub"
    assert "created_at" in session.analysis_parameters


def test_create_session_with_name_and_parameters(session_manager):
    session = session_manager.create_session("  testsub ", name="Weekly", parameters={"limit": 50})

    assert session.session_name == "Weekly"
    assert session.subreddit == "testsub"
    assert session.analysis_parameters["limit"] == 50


@pytest.mark.parametrize("community", ["", "   ", None])
def test_create_session_requires_community(session_manager, community):
    with pytest.raises(ValidationError):
        session_manager.create_session(community)


def test_get_session_round_trip(session_manager):
    created = session_manager.create_session("testsub")

    fetched = session_manager.get_session(created.id)

    assert fetched.id == created.id
    assert fetched.status == SessionStatus.PENDING


def test_get_unknown_session(session_manager):
    with pytest.raises(SessionNotFoundError):
        session_manager.get_session("does-not-exist")


def test_get_session_requires_id(session_manager):
    with pytest.raises(ValidationError):
        session_manager.get_session("")


def test_list_sessions_newest_first(store):
    manager = SessionManager(store, clock=ticking_clock())
    first = manager.create_session("one")
    second = manager.create_session("two")
    third = manager.create_session("three")

    assert [s.id for s in manager.list_sessions()] == [third.id, second.id, first.id]
    assert [s.id for s in manager.list_sessions(limit=1)] == [third.id]


def test_list_sessions_empty(session_manager):
    assert session_manager.list_sessions() == []


def test_happy_path_transitions(session_manager):
    session = session_manager.create_session("testsub")

    drive_to(session_manager, session.id,
             SessionStatus.EXTRACTING_DATA, SessionStatus.DATA_EXTRACTED, SessionStatus.ANALYZING)
    done = session_manager.complete(session.id, total_accounts_analyzed=3, bots_detected=1)

    assert done.status == SessionStatus.COMPLETED
    assert done.completed_at is not None
    assert done.total_accounts_analyzed == 3
    assert done.bots_detected == 1


@pytest.mark.parametrize("target", [
    SessionStatus.DATA_EXTRACTED,
    SessionStatus.ANALYZING,
    SessionStatus.COMPLETED,
    SessionStatus.PENDING,
])
def test_invalid_transitions_from_pending(session_manager, target):
    session = session_manager.create_session("testsub")

    with pytest.raises(InvalidTransitionError):
        session_manager.transition(session.id, target)
    assert session_manager.get_session(session.id).status == SessionStatus.PENDING


def test_completed_session_cannot_go_back_to_pending(session_manager):
    session = session_manager.create_session("testsub")
    drive_to(session_manager, session.id,
             SessionStatus.EXTRACTING_DATA, SessionStatus.DATA_EXTRACTED, SessionStatus.ANALYZING)
    session_manager.complete(session.id, 0, 0)

    with pytest.raises(InvalidTransitionError):
        session_manager.transition(session.id, SessionStatus.PENDING)


def test_counters_untouched_until_completion(session_manager):
    session = session_manager.create_session("testsub")
    drive_to(session_manager, session.id, SessionStatus.EXTRACTING_DATA, SessionStatus.DATA_EXTRACTED)

    current = session_manager.get_session(session.id)
    assert current.total_accounts_analyzed == 0
    assert current.completed_at is None


def test_fail_records_message(session_manager):
    session = session_manager.create_session("testsub")
    session_manager.transition(session.id, SessionStatus.EXTRACTING_DATA)

    failed = session_manager.fail(session.id, "upstream unavailable")

    assert failed.status == SessionStatus.FAILED
    assert failed.error_message == "upstream unavailable"
    assert failed.completed_at is not None


def test_resubmission_clears_terminal_fields(session_manager):
    session = session_manager.create_session("testsub")
    session_manager.transition(session.id, SessionStatus.EXTRACTING_DATA)
    session_manager.fail(session.id, "boom")

    rerun = session_manager.transition(session.id, SessionStatus.EXTRACTING_DATA)

    assert rerun.status == SessionStatus.EXTRACTING_DATA
    assert rerun.completed_at is None
    assert rerun.error_message is None


def test_delete_session(session_manager):
    session = session_manager.create_session("testsub")

    session_manager.delete_session(session.id)

    with pytest.raises(SessionNotFoundError):
        session_manager.get_session(session.id)


def test_delete_unknown_session(session_manager):
    with pytest.raises(SessionNotFoundError):
        session_manager.delete_session("does-not-exist")


def test_delete_in_flight_session_is_rejected(session_manager):
    session = session_manager.create_session("testsub")
    session_manager.transition(session.id, SessionStatus.EXTRACTING_DATA)

    with pytest.raises(ValidationError):
        session_manager.delete_session(session.id)
    assert session_manager.get_session(session.id).status == SessionStatus.EXTRACTING_DATA


def test_forced_delete_of_in_flight_session(session_manager):
    session = session_manager.create_session("testsub")
    session_manager.transition(session.id, SessionStatus.EXTRACTING_DATA)

    session_manager.delete_session(session.id, force=True)

    with pytest.raises(SessionNotFoundError):
        session_manager.get_session(session.id)


@pytest.mark.parametrize(
    "stranded",
    [SessionStatus.EXTRACTING_DATA, SessionStatus.DATA_EXTRACTED, SessionStatus.ANALYZING],
)
def test_forced_resubmission_from_in_flight_status(session_manager, stranded):
    session = session_manager.create_session("testsub")
    session_manager.transition(session.id, stranded, force=True)

    with pytest.raises(InvalidTransitionError):
        session_manager.transition(session.id, SessionStatus.EXTRACTING_DATA)

    rerun = session_manager.transition(session.id, SessionStatus.EXTRACTING_DATA, force=True)

    assert rerun.status == SessionStatus.EXTRACTING_DATA
    assert rerun.completed_at is None
