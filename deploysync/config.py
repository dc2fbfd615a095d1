"""Configuration for deploysync."""

from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./deploysync.db"
    debug: bool = False
    dry_run: bool = False

    # Linear
    linear_api_key: str = ""
    ticket_prefixes: Annotated[list[str], NoDecode] = ["HQ"]

    # Render
    render_api_key: str = ""
    render_workspace_id: str = ""
    # None/unset -> "main"; "" disables the branch filter and service discovery
    branch: str = "main"
    webhook_secret: str = ""

    # GitHub (optional, raises the compare API rate limit)
    github_token: str = ""

    # Outbound calls
    http_timeout: float = Field(default=15.0, gt=0)
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay: float = Field(default=1.0, ge=0)
    ticket_concurrency: int = Field(default=10, ge=1)

    model_config = {"env_prefix": "DEPLOYSYNC_"}

    @field_validator("ticket_prefixes", mode="before")
    @classmethod
    def _parse_ticket_prefixes(cls, value: object) -> object:
        if value in (None, ""):
            return []
        if isinstance(value, str):
            return [part.strip().upper() for part in value.split(",") if part.strip()]
        if isinstance(value, (list, tuple)):
            return [str(part).strip().upper() for part in value if str(part).strip()]
        raise TypeError("ticket_prefixes must be a list or comma-separated string")

    @field_validator("branch", mode="before")
    @classmethod
    def _default_branch(cls, value: object) -> object:
        if value is None:
            return "main"
        if isinstance(value, str):
            return value.strip()
        return value

    @property
    def mode(self) -> str:
        return "dry-run" if self.dry_run else "live"

    @property
    def branch_filter(self) -> str | None:
        return self.branch or None


settings = Settings()
