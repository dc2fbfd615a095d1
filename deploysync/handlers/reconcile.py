"""Orchestrates one Render deploy event end to end.

1. Skip events that are not ``succeeded``.
2. Load the service; abort if Render does not return it.
3. Skip services on a branch other than the configured filter.
4. Find the live deploy and its commit.
5. Resolve the commit range and extract tickets.
6. Move the tickets to Done.
7. Advance the watermark, also when no tickets were found.

A crash before step 7 leaves the watermark untouched, so the next event for
the service recomputes the same range.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from deploysync.clients.render_client import RenderClient
from deploysync.handlers.commit_range import CommitRangeResolver
from deploysync.handlers.ticket_sync import TicketStateSync
from deploysync.handlers.tickets import extract_from_commits, extract_from_message
from deploysync.ledger import Ledger
from deploysync.schemas.events import (
    DeploymentEvent,
    DeploymentStatus,
    DeployTicketInfo,
    SyncResult,
)

logger = logging.getLogger(__name__)

RECENT_DEPLOYS_LIMIT = 5


class ReconcileStatus(str, Enum):
    SKIPPED_STATUS = "skipped_status"
    SERVICE_NOT_FOUND = "service_not_found"
    MISSING_BRANCH = "missing_branch"
    BRANCH_MISMATCH = "branch_mismatch"
    NO_LIVE_DEPLOY = "no_live_deploy"
    MISSING_COMMIT = "missing_commit"
    NO_TICKETS = "no_tickets"
    PROCESSED = "processed"
    FAILED = "failed"


@dataclass
class ReconcileOutcome:
    status: ReconcileStatus
    deploy_id: str
    commit_id: str | None = None
    tickets: list[str] = field(default_factory=list)
    sync: SyncResult | None = None


class ReconciliationOrchestrator:
    def __init__(
        self,
        render: RenderClient,
        ledger: Ledger,
        resolver: CommitRangeResolver,
        ticket_sync: TicketStateSync,
        ticket_prefixes: list[str],
        branch_filter: str | None = "main",
        dry_run: bool = False,
    ) -> None:
        self._render = render
        self._ledger = ledger
        self._resolver = resolver
        self._ticket_sync = ticket_sync
        self._prefixes = ticket_prefixes
        self._branch_filter = branch_filter
        self._dry_run = dry_run

    async def reconcile(self, event: DeploymentEvent) -> ReconcileOutcome:
        data = event.data
        if not event.succeeded:
            logger.info("Skipping deploy %s - status: %s", data.id, data.status or "unknown")
            return ReconcileOutcome(ReconcileStatus.SKIPPED_STATUS, data.id)

        service = await self._render.get_service(data.service_id)
        if service is None:
            logger.warning("Could not fetch service %s", data.service_id)
            return ReconcileOutcome(ReconcileStatus.SERVICE_NOT_FOUND, data.id)
        service_name = service.name or data.service_name

        if not service.branch:
            logger.warning("Service %s has no branch information", service_name)
            return ReconcileOutcome(ReconcileStatus.MISSING_BRANCH, data.id)

        if self._branch_filter and service.branch != self._branch_filter:
            logger.info(
                'Skipping deploy %s - service %s branch "%s" does not match "%s"',
                data.id,
                service_name,
                service.branch,
                self._branch_filter,
            )
            return ReconcileOutcome(ReconcileStatus.BRANCH_MISMATCH, data.id)

        logger.info("Processing deploy webhook: %s (%s)", service_name, data.id)

        deploys = await self._render.list_deploys(service.id, RECENT_DEPLOYS_LIMIT)
        live = next((d for d in deploys if d.status == DeploymentStatus.LIVE.value), None)
        if live is None:
            logger.warning("No live deploy found for service %s", service_name)
            return ReconcileOutcome(ReconcileStatus.NO_LIVE_DEPLOY, data.id)
        if live.commit is None or not live.commit.id:
            logger.warning("No commit id found for deploy %s", live.id)
            return ReconcileOutcome(ReconcileStatus.MISSING_COMMIT, data.id)

        commit_id = live.commit.id
        commit_range = await self._resolver.resolve(service, live)
        tickets, authors = extract_from_commits(commit_range.commits, self._prefixes)

        if not tickets:
            logger.info("No tickets found in %d commit(s)", len(commit_range.commits))
            await self._ledger.set_last_processed_commit(
                service.id, service_name, service.branch, commit_id
            )
            return ReconcileOutcome(ReconcileStatus.NO_TICKETS, data.id, commit_id)

        ticket_commits = [
            c for c in commit_range.commits if extract_from_message(c.message, self._prefixes)
        ]
        if len(ticket_commits) > 1:
            commit_message = f"Range: {len(ticket_commits)} commits"
        elif ticket_commits:
            commit_message = ticket_commits[0].message
        else:
            commit_message = live.commit.message

        logger.info(
            "Found %d ticket(s): %s in %d commit(s)",
            len(tickets),
            ", ".join(tickets),
            len(ticket_commits),
        )

        deploy_info = DeployTicketInfo(
            deploy_id=live.id,
            service_id=service.id,
            service_name=service_name,
            commit_id=commit_id,
            commit_message=commit_message,
            tickets=tickets,
            authors=authors,
        )
        sync_result = await self._ticket_sync.sync(tickets, deploy_info, dry_run=self._dry_run)

        await self._ledger.set_last_processed_commit(
            service.id, service_name, service.branch, commit_id
        )
        return ReconcileOutcome(
            ReconcileStatus.PROCESSED, data.id, commit_id, tickets, sync_result
        )


async def handle_deploy_event(
    orchestrator: ReconciliationOrchestrator, event: DeploymentEvent
) -> ReconcileOutcome:
    """Background-task entry point: never lets an exception escape."""
    try:
        return await orchestrator.reconcile(event)
    except Exception:
        logger.exception("Error processing deploy %s", event.deploy_id)
        return ReconcileOutcome(ReconcileStatus.FAILED, event.deploy_id)
