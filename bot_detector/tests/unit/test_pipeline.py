"""Tests for the pipeline orchestrator."""

import asyncio

import pytest

from bot_detector.core.pipeline import PipelineOrchestrator
from bot_detector.detection.engine import BotProbabilityEngine
from bot_detector.exceptions import InvalidTransitionError, PipelineError, SessionNotFoundError
from bot_detector.models import AccountORM, BotVerdictORM, SessionStatus
from bot_detector.tests.stubs.upstream_stub import fixed_clock


@pytest.mark.asyncio
async def test_run_pipeline_completes_session(orchestrator, session_manager, store):
    session = session_manager.create_session("testsub")

    result = await orchestrator.run_pipeline(session.id)

    assert result.session_id == session.id
    assert result.extraction.activity_count == 5
    assert result.detection.users_analyzed == 3
    assert result.detection.bots_detected == 1

    finished = session_manager.get_session(session.id)
    assert finished.status == SessionStatus.COMPLETED
    assert finished.total_accounts_analyzed == 3
    assert finished.bots_detected == 1
    assert finished.completed_at is not None
    assert store.count(BotVerdictORM) == 3


@pytest.mark.asyncio
async def test_verdicts_match_rules(orchestrator, session_manager, store):
    session = session_manager.create_session("testsub")
    await orchestrator.run_pipeline(session.id)

    bob = store.get(BotVerdictORM, "bob")
    assert bob.bot_probability == 1.0
    assert bob.risk_factors == ["Very new account"]
    assert bob.confidence_score == pytest.approx(0.8)
    assert bob.detection_method == "rule_based_scoring"
    assert bob.features_analyzed["post_count"] == 1

    alice = store.get(BotVerdictORM, "alice")
    assert alice.bot_probability == 0.0
    assert alice.risk_factors == []
    assert alice.confidence_score == 0.5
    assert alice.features_analyzed["avg_post_score"] == 7.0

    assert store.get(BotVerdictORM, "carol").bot_probability == pytest.approx(0.2)


@pytest.mark.asyncio
async def test_extraction_failure_marks_session_failed(orchestrator, session_manager, stub_source, store):
    stub_source.page_error = RuntimeError("feed unavailable")
    session = session_manager.create_session("testsub")

    with pytest.raises(PipelineError) as excinfo:
        await orchestrator.run_pipeline(session.id)

    assert excinfo.value.stage == "extraction"
    failed = session_manager.get_session(session.id)
    assert failed.status == SessionStatus.FAILED
    assert "feed unavailable" in failed.error_message
    assert failed.completed_at is not None
    assert failed.bots_detected == 0
    assert store.count(BotVerdictORM) == 0


@pytest.mark.asyncio
async def test_analysis_failure_marks_session_failed(orchestrator, session_manager, mocker):
    mocker.patch.object(orchestrator.engine, "score_batch", side_effect=RuntimeError("scoring broke"))
    session = session_manager.create_session("testsub")

    with pytest.raises(PipelineError) as excinfo:
        await orchestrator.run_pipeline(session.id)

    assert excinfo.value.stage == "analysis"
    assert session_manager.get_session(session.id).status == SessionStatus.FAILED


@pytest.mark.asyncio
async def test_failed_session_can_be_rerun(orchestrator, session_manager, stub_source):
    stub_source.page_error = RuntimeError("feed unavailable")
    session = session_manager.create_session("testsub")
    with pytest.raises(PipelineError):
        await orchestrator.run_pipeline(session.id)

    stub_source.page_error = None
    await orchestrator.run_pipeline(session.id)

    rerun = session_manager.get_session(session.id)
    assert rerun.status == SessionStatus.COMPLETED
    assert rerun.error_message is None


@pytest.mark.asyncio
async def test_unknown_session(orchestrator):
    with pytest.raises(SessionNotFoundError):
        await orchestrator.run_pipeline("does-not-exist")


@pytest.mark.asyncio
async def test_running_session_is_not_restarted(orchestrator, session_manager, stub_source):
    session = session_manager.create_session("testsub")
    session_manager.transition(session.id, SessionStatus.EXTRACTING_DATA)

    with pytest.raises(InvalidTransitionError):
        await orchestrator.run_pipeline(session.id)
    assert stub_source.auth_calls == 0


@pytest.mark.asyncio
async def test_cancelled_extraction_marks_session_failed(orchestrator, session_manager, stub_source):
    stub_source.page_error = asyncio.CancelledError()
    session = session_manager.create_session("testsub")

    with pytest.raises(asyncio.CancelledError):
        await orchestrator.run_pipeline(session.id)

    cancelled = session_manager.get_session(session.id)
    assert cancelled.status == SessionStatus.FAILED
    assert cancelled.error_message == "CancelledError"
    assert cancelled.completed_at is not None

    stub_source.page_error = None
    await orchestrator.run_pipeline(session.id)
    assert session_manager.get_session(session.id).status == SessionStatus.COMPLETED


@pytest.mark.asyncio
async def test_interrupted_analysis_marks_session_failed(orchestrator, session_manager, mocker):
    mocker.patch.object(orchestrator.engine, "score_batch", side_effect=KeyboardInterrupt)
    session = session_manager.create_session("testsub")

    with pytest.raises(KeyboardInterrupt):
        await orchestrator.run_pipeline(session.id)

    assert session_manager.get_session(session.id).status == SessionStatus.FAILED


@pytest.mark.asyncio
async def test_forced_rerun_recovers_stranded_session(orchestrator, session_manager, stub_source):
    session = session_manager.create_session("testsub")
    session_manager.transition(session.id, SessionStatus.ANALYZING, force=True)

    result = await orchestrator.run_pipeline(session.id, force=True)

    assert result.detection.users_analyzed == 3
    recovered = session_manager.get_session(session.id)
    assert recovered.status == SessionStatus.COMPLETED
    assert stub_source.auth_calls == 1


@pytest.mark.asyncio
async def test_pipeline_metrics(session_manager, extraction_stage, store, config, mocker):
    exporter = mocker.MagicMock()
    orchestrator = PipelineOrchestrator(
        session_manager,
        extraction_stage,
        BotProbabilityEngine(config.detection, clock=fixed_clock),
        store,
        detection_config=config.detection,
        prometheus_exporter=exporter,
    )
    session = session_manager.create_session("testsub")

    await orchestrator.run_pipeline(session.id)

    exporter.record_pipeline_run.assert_called_once_with("completed")
    assert sorted(c.args[0] for c in exporter.record_verdict.call_args_list) == [False, False, True]


def test_run_detection_without_accounts(orchestrator, store):
    result = orchestrator.run_detection()

    assert result.users_analyzed == 0
    assert result.bots_detected == 0
    assert result.verdicts == []
    assert store.count(BotVerdictORM) == 0


@pytest.mark.asyncio
async def test_run_detection_restricted_to_usernames(orchestrator, extraction_stage, store):
    await extraction_stage.run("testsub")

    result = orchestrator.run_detection(["bob", "nobody"])

    assert [v.username for v in result.verdicts] == ["bob"]
    assert result.bots_detected == 1
    assert store.count(BotVerdictORM) == 1


def test_run_detection_scores_accounts_without_activity(orchestrator, store):
    store.upsert(AccountORM, [{"username": "lurker", "account_age_days": 400, "comment_karma": 50}], "username")

    result = orchestrator.run_detection()

    verdict = result.verdicts[0]
    assert verdict.features_analyzed["post_count"] == 0
    # Average post score below 1, unverified email, old unverified account
    assert verdict.bot_probability == pytest.approx(0.25)


def test_threshold_is_strictly_greater(session_manager, extraction_stage, store, config):
    config.detection.bot_threshold = 0.25
    orchestrator = PipelineOrchestrator(
        session_manager,
        extraction_stage,
        BotProbabilityEngine(config.detection, clock=fixed_clock),
        store,
        detection_config=config.detection,
    )
    store.upsert(AccountORM, [{"username": "lurker", "account_age_days": 400, "comment_karma": 50}], "username")

    assert orchestrator.run_detection().bots_detected == 0
