"""Tests for end-to-end reconciliation of one deploy event."""

from unittest.mock import AsyncMock

from deploysync.clients.github_client import CompareResult
from deploysync.handlers.commit_range import CommitRangeResolver
from deploysync.handlers.reconcile import (
    ReconcileStatus,
    ReconciliationOrchestrator,
    handle_deploy_event,
)
from deploysync.handlers.ticket_sync import TicketStateSync
from deploysync.schemas.events import (
    Commit,
    Deploy,
    DeployCommit,
    DeploymentEvent,
    IssueState,
    LinearIssue,
    Service,
    WorkflowState,
)


def _event(status: str = "succeeded", deploy_id: str = "dep-2") -> DeploymentEvent:
    return DeploymentEvent.model_validate(
        {
            "type": "deploy_ended",
            "timestamp": "2026-10-17T10:00:00Z",
            "data": {"id": deploy_id, "serviceId": "srv-1", "serviceName": "api", "status": status},
        }
    )


def _render(branch: str | None = "main", deploys: list[Deploy] | None = None) -> AsyncMock:
    render = AsyncMock()
    render.get_service.return_value = Service(
        id="srv-1", name="api", repo="https://github.com/acme/api", branch=branch
    )
    render.list_deploys.return_value = deploys if deploys is not None else [
        Deploy(id="dep-3", status="build_in_progress"),
        Deploy(id="dep-2", status="live", commit=DeployCommit(id="b2", message="HQ-7 fix bug")),
        Deploy(id="dep-1", status="deactivated", commit=DeployCommit(id="a1", message="older")),
    ]
    return render


def _linear(state_name: str = "In Progress") -> AsyncMock:
    linear = AsyncMock()
    linear.get_issue.return_value = LinearIssue(
        id="uuid-7", identifier="HQ-7", title="Fix bug", state=IssueState(id="st-1", name=state_name)
    )
    linear.find_done_state.return_value = WorkflowState(id="st-done", name="Done")
    linear.update_issue_state.return_value = True
    return linear


def _orchestrator(ledger, render, github, linear, **kwargs) -> ReconciliationOrchestrator:
    options = {"ticket_prefixes": ["HQ"], "branch_filter": "main", "dry_run": False}
    options.update(kwargs)
    return ReconciliationOrchestrator(
        render=render,
        ledger=ledger,
        resolver=CommitRangeResolver(ledger, github),
        ticket_sync=TicketStateSync(linear, ledger),
        **options,
    )


async def test_end_to_end_moves_ticket_and_advances_watermark(ledger):
    await ledger.set_last_processed_commit("srv-1", "api", "main", "a1")
    github = AsyncMock()
    github.compare_commits.return_value = CompareResult(
        commits=[Commit(sha="b2", message="HQ-7 fix bug")], accessible=True
    )
    linear = _linear()

    outcome = await _orchestrator(ledger, _render(), github, linear).reconcile(_event())

    assert outcome.status is ReconcileStatus.PROCESSED
    assert outcome.tickets == ["HQ-7"]
    assert outcome.sync.moved == 1
    github.compare_commits.assert_awaited_once_with("acme", "api", "a1", "b2")
    linear.update_issue_state.assert_awaited_once_with("uuid-7", "st-done")

    history = await ledger.get_ticket_history("HQ-7")
    assert [(r.ticket_id, r.deploy_id, r.commit_id) for r in history] == [("HQ-7", "dep-2", "b2")]
    assert await ledger.get_last_processed_commit("srv-1", "main") == "b2"


async def test_redelivered_event_is_idempotent(ledger):
    github = AsyncMock()
    linear = _linear()
    orchestrator = _orchestrator(ledger, _render(), github, linear)

    await orchestrator.reconcile(_event())
    await orchestrator.reconcile(_event())

    assert linear.update_issue_state.await_count == 1
    assert len(await ledger.get_ticket_history("HQ-7")) == 1


async def test_no_tickets_still_advances_watermark(ledger):
    deploys = [Deploy(id="dep-2", status="live", commit=DeployCommit(id="b2", message="chore: bump"))]
    linear = _linear()

    outcome = await _orchestrator(ledger, _render(deploys=deploys), AsyncMock(), linear).reconcile(_event())

    assert outcome.status is ReconcileStatus.NO_TICKETS
    assert await ledger.get_last_processed_commit("srv-1", "main") == "b2"
    linear.get_issue.assert_not_awaited()


async def test_partial_ticket_errors_still_advance_watermark(ledger):
    linear = _linear()
    linear.update_issue_state.side_effect = RuntimeError("linear down")

    outcome = await _orchestrator(ledger, _render(), AsyncMock(), linear).reconcile(_event())

    assert outcome.status is ReconcileStatus.PROCESSED
    assert outcome.sync.errors == 1
    assert await ledger.get_last_processed_commit("srv-1", "main") == "b2"
    assert await ledger.get_ticket_history("HQ-7") == []


async def test_dry_run_advances_watermark_but_records_nothing(ledger):
    linear = _linear()

    outcome = await _orchestrator(ledger, _render(), AsyncMock(), linear, dry_run=True).reconcile(_event())

    assert outcome.sync.moved == 1
    linear.update_issue_state.assert_not_awaited()
    assert await ledger.list_processed_tickets() == []
    assert await ledger.get_last_processed_commit("srv-1", "main") == "b2"


async def test_non_succeeded_event_is_skipped(ledger):
    render = _render()

    outcome = await _orchestrator(ledger, render, AsyncMock(), _linear()).reconcile(_event(status="failed"))

    assert outcome.status is ReconcileStatus.SKIPPED_STATUS
    render.get_service.assert_not_awaited()


async def test_unknown_service_aborts(ledger):
    render = _render()
    render.get_service.return_value = None

    outcome = await _orchestrator(ledger, render, AsyncMock(), _linear()).reconcile(_event())

    assert outcome.status is ReconcileStatus.SERVICE_NOT_FOUND
    render.list_deploys.assert_not_awaited()


async def test_branch_mismatch_is_skipped(ledger):
    outcome = await _orchestrator(ledger, _render(branch="staging"), AsyncMock(), _linear()).reconcile(_event())

    assert outcome.status is ReconcileStatus.BRANCH_MISMATCH
    assert await ledger.get_last_processed_commit("srv-1", "staging") is None


async def test_disabled_branch_filter_processes_any_branch(ledger):
    orchestrator = _orchestrator(ledger, _render(branch="staging"), AsyncMock(), _linear(), branch_filter=None)

    outcome = await orchestrator.reconcile(_event())

    assert outcome.status is ReconcileStatus.PROCESSED
    assert await ledger.get_last_processed_commit("srv-1", "staging") == "b2"


async def test_missing_live_deploy_or_commit_aborts(ledger):
    no_live = _render(deploys=[Deploy(id="dep-2", status="build_failed")])
    no_commit = _render(deploys=[Deploy(id="dep-2", status="live")])

    first = await _orchestrator(ledger, no_live, AsyncMock(), _linear()).reconcile(_event())
    second = await _orchestrator(ledger, no_commit, AsyncMock(), _linear()).reconcile(_event())

    assert first.status is ReconcileStatus.NO_LIVE_DEPLOY
    assert second.status is ReconcileStatus.MISSING_COMMIT
    assert await ledger.get_last_processed_commit("srv-1", "main") is None


async def test_handle_deploy_event_swallows_and_logs_failures(ledger, caplog):
    render = _render()
    render.get_service.side_effect = RuntimeError("render exploded")

    outcome = await handle_deploy_event(_orchestrator(ledger, render, AsyncMock(), _linear()), _event())

    assert outcome.status is ReconcileStatus.FAILED
    assert "Error processing deploy dep-2" in caplog.text
