"""Move shipped Linear tickets to Done and record each transition.

Per ticket: fetched -> already done | pending move -> moved | move failed.
A failure on one ticket never aborts the batch; failed tickets are picked up
again when a later deploy's commit range mentions them.
"""

from __future__ import annotations

import asyncio
import logging

from deploysync.clients.linear_client import LinearClient
from deploysync.errors import LedgerConstraintError
from deploysync.ledger import Ledger
from deploysync.schemas.events import (
    DeployTicketInfo,
    LinearIssue,
    ProcessedTicketRecord,
    SyncResult,
    WorkflowState,
)

logger = logging.getLogger(__name__)

DONE_MARKERS = ("done", "announced")


def is_done_state(state_name: str) -> bool:
    name = state_name.lower()
    return any(marker in name for marker in DONE_MARKERS)


class _DoneStateLookup:
    """Resolves the Done workflow state once per sync, shared by all moves."""

    def __init__(self, tracker: LinearClient) -> None:
        self._tracker = tracker
        self._lock = asyncio.Lock()
        self._resolved = False
        self._state: WorkflowState | None = None

    async def get(self) -> WorkflowState | None:
        async with self._lock:
            if not self._resolved:
                try:
                    self._state = await self._tracker.find_done_state()
                except Exception as exc:
                    logger.error("Could not load Linear workflow states: %s", exc)
                    self._state = None
                self._resolved = True
                if self._state is None:
                    logger.error('Could not find "Done" state in Linear')
            return self._state


class TicketStateSync:
    def __init__(self, tracker: LinearClient, ledger: Ledger, concurrency: int = 10) -> None:
        self._tracker = tracker
        self._ledger = ledger
        self._concurrency = max(1, concurrency)

    async def _fetch(
        self, ticket_id: str, semaphore: asyncio.Semaphore
    ) -> tuple[str, LinearIssue | None]:
        async with semaphore:
            try:
                issue = await self._tracker.get_issue(ticket_id)
            except Exception as exc:
                logger.error("Failed to fetch Linear issue %s: %s", ticket_id, exc)
                return ticket_id, None
        if issue is None:
            logger.warning("Issue %s not found in Linear", ticket_id)
        return ticket_id, issue

    async def _record(
        self, issue: LinearIssue, new_state: WorkflowState, deploy: DeployTicketInfo
    ) -> None:
        ticket_id = issue.identifier.upper()
        if await self._ledger.was_ticket_processed_for_deploy(ticket_id, deploy.deploy_id):
            logger.info("%s already recorded for deploy %s", ticket_id, deploy.deploy_id)
            return
        record = ProcessedTicketRecord(
            ticket_id=ticket_id,
            ticket_title=issue.title,
            previous_state=issue.state.name,
            new_state=new_state.name,
            deploy_id=deploy.deploy_id,
            service_id=deploy.service_id,
            service_name=deploy.service_name,
            commit_id=deploy.commit_id,
            commit_message=deploy.commit_message,
        )
        try:
            await self._ledger.record_processed_ticket(record)
        except LedgerConstraintError:
            # Same deploy processed concurrently; the other task wrote the row.
            logger.info("%s recorded concurrently for deploy %s", ticket_id, deploy.deploy_id)

    async def _move(
        self,
        issue: LinearIssue,
        deploy: DeployTicketInfo,
        done_state: _DoneStateLookup,
        semaphore: asyncio.Semaphore,
    ) -> bool:
        async with semaphore:
            state = await done_state.get()
            if state is None:
                return False
            try:
                current = await self._tracker.get_issue(issue.identifier)
                if current is None:
                    logger.error("Issue %s not found in Linear", issue.identifier)
                    return False
                if current.state.id == state.id:
                    logger.info("Issue %s is already in %s", current.identifier, current.state.name)
                elif not await self._tracker.update_issue_state(current.id, state.id):
                    return False
            except Exception as exc:
                logger.error("Failed to move %s to Done: %s", issue.identifier, exc)
                return False

        try:
            await self._record(issue, state, deploy)
        except Exception:
            logger.exception("Moved %s but could not record it in the ledger", issue.identifier)
        return True

    async def sync(
        self, tickets: list[str], deploy: DeployTicketInfo, dry_run: bool = False
    ) -> SyncResult:
        result = SyncResult(dry_run=dry_run)
        if not tickets:
            return result

        logger.info("Checking %d Linear ticket(s): %s", len(tickets), ", ".join(tickets))
        semaphore = asyncio.Semaphore(self._concurrency)
        fetched = await asyncio.gather(*(self._fetch(t, semaphore) for t in tickets))

        pending: list[LinearIssue] = []
        for ticket_id, issue in fetched:
            if issue is None:
                result.errors += 1
            elif is_done_state(issue.state.name):
                result.already_done += 1
            elif dry_run:
                logger.info(
                    "[DRY RUN] Would move %s (%s) to Done (currently: %s)",
                    ticket_id,
                    issue.title,
                    issue.state.name,
                )
                result.moved += 1
            elif await self._ledger.was_ticket_processed_for_deploy(
                ticket_id.upper(), deploy.deploy_id
            ):
                logger.info("%s already moved for deploy %s", ticket_id, deploy.deploy_id)
                result.already_done += 1
            else:
                pending.append(issue)

        if pending:
            done_state = _DoneStateLookup(self._tracker)
            outcomes = await asyncio.gather(
                *(self._move(issue, deploy, done_state, semaphore) for issue in pending)
            )
            for moved in outcomes:
                if moved:
                    result.moved += 1
                else:
                    result.errors += 1

        if result.already_done:
            logger.info("%d ticket(s) already completed/announced", result.already_done)
        if result.moved:
            suffix = " (DRY RUN)" if dry_run else ""
            verb = "would be moved" if dry_run else "moved"
            logger.info("%d ticket(s) %s to Done%s", result.moved, verb, suffix)
        if result.errors:
            logger.warning("%d ticket(s) had errors", result.errors)
        return result
