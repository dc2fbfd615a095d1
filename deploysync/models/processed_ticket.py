"""Append-only audit log of ticket transitions, one row per (ticket, deploy)."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from deploysync.database import Base


class ProcessedTicket(Base):
    __tablename__ = "processed_tickets"
    __table_args__ = (
        UniqueConstraint("ticket_id", "deploy_id", name="uq_processed_ticket_deploy"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticket_id = Column(String, nullable=False, index=True)
    ticket_title = Column(String, nullable=False)
    previous_state = Column(String, nullable=False)
    new_state = Column(String, nullable=False)
    processed_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False, index=True
    )
    deploy_id = Column(String, nullable=False, index=True)
    service_id = Column(String, nullable=False)
    service_name = Column(String, nullable=False)
    commit_id = Column(String, nullable=False)
    commit_message = Column(Text, nullable=False, default="")
