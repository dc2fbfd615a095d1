"""Exceptions raised across the reconciliation pipeline."""

from __future__ import annotations

import httpx


class DeploySyncError(Exception):
    """Base class for deploysync errors."""


class ExternalServiceError(DeploySyncError):
    """An external API answered with a status we do not retry."""

    def __init__(self, service: str, status_code: int | None, message: str = "") -> None:
        self.service = service
        self.status_code = status_code
        detail = f"{service} API error"
        if status_code is not None:
            detail += f": {status_code}"
        if message:
            detail += f" {message}"
        super().__init__(detail)


class AuthenticationError(ExternalServiceError):
    """401/403 from an external API while credentials were sent."""


class TrackerError(DeploySyncError):
    """Linear answered 200 but the GraphQL payload carried errors."""


class UnrecognizedResponseShape(DeploySyncError):
    """A Render response did not match any known envelope."""


class LedgerConstraintError(DeploySyncError):
    """A (ticket_id, deploy_id) pair was recorded twice."""

    def __init__(self, ticket_id: str, deploy_id: str) -> None:
        self.ticket_id = ticket_id
        self.deploy_id = deploy_id
        super().__init__(f"Ticket {ticket_id} already recorded for deploy {deploy_id}")


def from_status_error(service: str, exc: httpx.HTTPStatusError) -> ExternalServiceError:
    """Map a final, non-retried HTTP error onto the error taxonomy."""
    status = exc.response.status_code
    body = exc.response.text[:200]
    if status in (401, 403):
        return AuthenticationError(service, status, body)
    return ExternalServiceError(service, status, body)
