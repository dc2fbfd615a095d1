"""Read-only views over the processed-ticket ledger."""

from fastapi import APIRouter, Query, Request

from deploysync.schemas.events import ProcessedTicketRecord

router = APIRouter(tags=["audit"])


@router.get("/processed-tickets", response_model=list[ProcessedTicketRecord])
async def list_processed_tickets(
    request: Request, limit: int = Query(default=100, ge=1, le=1000)
) -> list[ProcessedTicketRecord]:
    return await request.app.state.ledger.list_processed_tickets(limit)


@router.get("/processed-tickets/{ticket_id}", response_model=list[ProcessedTicketRecord])
async def ticket_history(request: Request, ticket_id: str) -> list[ProcessedTicketRecord]:
    """Every deploy that moved this ticket, newest first."""
    return await request.app.state.ledger.get_ticket_history(ticket_id)
