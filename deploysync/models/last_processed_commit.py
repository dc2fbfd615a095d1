"""Watermark: last reconciled commit per (service, branch)."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, UniqueConstraint

from deploysync.database import Base


class LastProcessedCommit(Base):
    __tablename__ = "last_processed_commits"
    __table_args__ = (
        UniqueConstraint("service_id", "branch", name="uq_last_commit_service_branch"),
        Index("ix_last_commit_service_branch", "service_id", "branch"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_id = Column(String, nullable=False)
    service_name = Column(String, nullable=False)
    branch = Column(String, nullable=False)
    commit_id = Column(String, nullable=False)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
