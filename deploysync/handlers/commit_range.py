"""Resolve which commits a deploy shipped since the last reconciled one."""

from __future__ import annotations

import logging

from deploysync.clients.github_client import GitHubClient, parse_github_repo
from deploysync.ledger import Ledger
from deploysync.schemas.events import Commit, CommitRange, Deploy, Service

logger = logging.getLogger(__name__)


def _current_commit(deploy: Deploy) -> Commit:
    commit = deploy.commit
    return Commit(sha=commit.id, message=commit.message)


class CommitRangeResolver:
    """Read-only: the orchestrator owns watermark updates."""

    def __init__(self, ledger: Ledger, github: GitHubClient) -> None:
        self._ledger = ledger
        self._github = github

    async def resolve(self, service: Service, current_deploy: Deploy) -> CommitRange:
        current = _current_commit(current_deploy)
        fallback = CommitRange(commits=[current], range_accessible=True, fallback=True)

        last_commit = await self._ledger.get_last_processed_commit(service.id, service.branch or "")
        if not last_commit:
            logger.info("No watermark for %s@%s, using current commit only", service.name, service.branch)
            return fallback
        if last_commit == current.sha:
            logger.info("Commit %s already reconciled for %s", current.sha[:7], service.name)
            return fallback

        repo = parse_github_repo(service.repo)
        if repo is None:
            logger.warning("Repository URL %r is not a GitHub repository", service.repo)
            return fallback

        logger.info(
            "Fetching commits between %s and %s for %s/%s",
            last_commit[:7],
            current.sha[:7],
            repo.owner,
            repo.repo,
        )
        result = await self._github.compare_commits(repo.owner, repo.repo, last_commit, current.sha)
        if not result.accessible:
            logger.warning("Could not access GitHub commits, falling back to current commit only")
            return CommitRange(commits=[current], range_accessible=False, fallback=True)
        if not result.commits:
            return fallback

        logger.info("Found %d commit(s) in range", len(result.commits))
        for commit in result.commits:
            logger.info("  %s %s", commit.sha[:7], commit.message)
        return CommitRange(commits=result.commits, range_accessible=True)
