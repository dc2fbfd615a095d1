"""GitHub REST API client for the commit compare endpoint."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

import httpx

from deploysync.errors import from_status_error
from deploysync.retry import RetryingInvoker
from deploysync.schemas.events import Commit

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"

_REPO_RE = re.compile(r"github\.com[/:]([\w-]+)/([\w.-]+?)(?:\.git)?/?$")


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str


@dataclass
class CompareResult:
    commits: list[Commit] = field(default_factory=list)
    accessible: bool = True


def parse_github_repo(repo_url: str | None) -> RepoRef | None:
    """``https://github.com/acme/api.git`` -> ``RepoRef("acme", "api")``."""
    if not repo_url:
        return None
    match = _REPO_RE.search(repo_url.strip())
    if not match:
        return None
    return RepoRef(owner=match.group(1), repo=match.group(2))


class GitHubClient:
    """Fetch the commits between two revisions of a repository."""

    def __init__(
        self,
        invoker: RetryingInvoker,
        token: str = "",
        timeout: float = 15.0,
        base_url: str = GITHUB_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "deploysync",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._invoker = invoker
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def _inaccessible(self, resp: httpx.Response) -> bool:
        if resp.status_code == 404:
            return True
        # Anonymous callers hit the 60 req/h limit quickly; treat as data, not failure.
        return not self._token and resp.status_code in (403, 429)

    async def compare_commits(self, owner: str, repo: str, base: str, head: str) -> CompareResult:
        url = f"{self._base_url}/repos/{owner}/{repo}/compare/{base}...{head}"

        async def call() -> httpx.Response:
            resp = await self._client.get(url, headers=self._headers)
            if not self._inaccessible(resp):
                resp.raise_for_status()
            return resp

        try:
            resp = await self._invoker.invoke(call)
        except httpx.HTTPStatusError as exc:
            raise from_status_error("GitHub", exc) from exc

        if self._inaccessible(resp):
            if resp.status_code == 404:
                logger.warning("Compare %s/%s %s...%s not found", owner, repo, base[:7], head[:7])
            else:
                logger.warning(
                    "GitHub API rate limit reached; set DEPLOYSYNC_GITHUB_TOKEN for higher limits"
                )
            return CompareResult(accessible=False)

        commits: list[Commit] = []
        for item in resp.json().get("commits", []):
            full_message = (item.get("commit") or {}).get("message") or ""
            message = full_message.split("\n", 1)[0] or full_message
            if not message:
                continue
            author = (item.get("author") or {}).get("login")
            commits.append(Commit(sha=item["sha"], message=message, author=author))
        return CompareResult(commits=commits, accessible=True)

    async def close(self) -> None:
        await self._client.aclose()
