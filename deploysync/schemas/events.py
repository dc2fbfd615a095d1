"""Pydantic models for webhook payloads and external API records."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DeploymentStatus(str, Enum):
    QUEUED = "queued"
    BUILDING = "building"
    LIVE = "live"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class DeploymentEventData(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str
    service_id: str = Field(alias="serviceId")
    service_name: str = Field(default="", alias="serviceName")
    # Kept as a string: unknown statuses must parse and simply not trigger.
    status: str = ""


class DeploymentEvent(BaseModel):
    """A Render deploy notification, as delivered to ``POST /webhook``."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    type: str
    timestamp: Optional[str] = None
    data: DeploymentEventData

    @property
    def deploy_id(self) -> str:
        return self.data.id

    @property
    def succeeded(self) -> bool:
        return self.data.status == DeploymentStatus.SUCCEEDED.value


class Service(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    repo: Optional[str] = None
    branch: Optional[str] = None


class DeployCommit(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = ""
    message: str = ""
    created_at: Optional[str] = Field(default=None, alias="createdAt")


class Deploy(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    status: str = ""
    commit: Optional[DeployCommit] = None


class Commit(BaseModel):
    sha: str
    message: str
    author: Optional[str] = None


class CommitRange(BaseModel):
    """Commits shipped by a deploy, oldest to newest as the git host returns them."""

    commits: list[Commit] = Field(default_factory=list)
    range_accessible: bool = True
    fallback: bool = False


class WorkflowState(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    type: str = ""


class IssueState(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str


class LinearIssue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    identifier: str
    title: str = ""
    state: IssueState


class DeployTicketInfo(BaseModel):
    deploy_id: str
    service_id: str
    service_name: str
    commit_id: str
    commit_message: str = ""
    tickets: list[str] = Field(default_factory=list)
    authors: dict[str, set[str]] = Field(default_factory=dict)


class ProcessedTicketRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticket_id: str
    ticket_title: str
    previous_state: str
    new_state: str
    processed_at: Optional[datetime] = None
    deploy_id: str
    service_id: str
    service_name: str
    commit_id: str
    commit_message: str = ""


class SyncResult(BaseModel):
    already_done: int = 0
    moved: int = 0
    errors: int = 0
    dry_run: bool = False


class WebhookResponse(BaseModel):
    status: str
    message: Optional[str] = None
    deploy_id: Optional[str] = None
    delivery_id: Optional[str] = None
