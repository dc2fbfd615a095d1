"""Linear GraphQL API client (API key auth)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from deploysync.errors import TrackerError, from_status_error
from deploysync.retry import RetryingInvoker
from deploysync.schemas.events import LinearIssue, WorkflowState

logger = logging.getLogger(__name__)

LINEAR_API_URL = "https://api.linear.app/graphql"

_GET_ISSUE = """
query GetIssue($id: String!) {
  issue(id: $id) {
    id
    identifier
    title
    state {
      id
      name
    }
  }
}
"""

_LIST_STATES = """
query GetStates {
  workflowStates {
    nodes {
      id
      name
      type
    }
  }
}
"""

_UPDATE_ISSUE = """
mutation UpdateIssue($id: String!, $stateId: String!) {
  issueUpdate(id: $id, input: { stateId: $stateId }) {
    success
    issue {
      id
      identifier
      state {
        name
      }
    }
  }
}
"""


def _is_not_found(errors: list[dict]) -> bool:
    for error in errors:
        code = (error.get("extensions") or {}).get("code", "")
        if code == "ENTITY_NOT_FOUND" or "not found" in str(error.get("message", "")).lower():
            return True
    return False


class LinearClient:
    """Read issues and workflow states, and move issues between states."""

    def __init__(
        self,
        api_key: str,
        invoker: RetryingInvoker,
        timeout: float = 15.0,
        api_url: str = LINEAR_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise RuntimeError("Linear not configured — set DEPLOYSYNC_LINEAR_API_KEY")
        self._api_url = api_url
        self._headers = {
            "Authorization": api_key,
            "Content-Type": "application/json",
        }
        self._invoker = invoker
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def _graphql(
        self, query: str, variables: dict | None = None, allow_not_found: bool = False
    ) -> dict[str, Any] | None:
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        async def call() -> dict:
            resp = await self._client.post(self._api_url, json=payload, headers=self._headers)
            resp.raise_for_status()
            return resp.json()

        try:
            body = await self._invoker.invoke(call)
        except httpx.HTTPStatusError as exc:
            raise from_status_error("Linear", exc) from exc

        errors = body.get("errors") or []
        if errors:
            if allow_not_found and _is_not_found(errors):
                return None
            messages = "; ".join(str(e.get("message", e)) for e in errors)
            raise TrackerError(f"Linear GraphQL error: {messages}")
        return body.get("data") or {}

    async def get_issue(self, identifier: str) -> LinearIssue | None:
        """Fetch an issue by identifier (``HQ-123``), or None if it does not exist."""
        data = await self._graphql(_GET_ISSUE, {"id": identifier}, allow_not_found=True)
        if not data or not data.get("issue"):
            return None
        return LinearIssue.model_validate(data["issue"])

    async def list_workflow_states(self) -> list[WorkflowState]:
        data = await self._graphql(_LIST_STATES) or {}
        nodes = (data.get("workflowStates") or {}).get("nodes") or []
        return [WorkflowState.model_validate(node) for node in nodes]

    async def find_done_state(self) -> WorkflowState | None:
        for state in await self.list_workflow_states():
            if state.name.strip().lower() == "done":
                return state
        return None

    async def update_issue_state(self, issue_id: str, state_id: str) -> bool:
        data = await self._graphql(_UPDATE_ISSUE, {"id": issue_id, "stateId": state_id}) or {}
        result = data.get("issueUpdate") or {}
        if not result.get("success"):
            logger.error("Linear refused to update issue %s", issue_id)
            return False
        issue = result.get("issue") or {}
        logger.info(
            "Issue %s moved to %s",
            issue.get("identifier", issue_id),
            (issue.get("state") or {}).get("name", "?"),
        )
        return True

    async def close(self) -> None:
        await self._client.aclose()
