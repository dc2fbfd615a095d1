"""Tests for the persisted idempotency and watermark ledger."""

import pytest

from deploysync.errors import LedgerConstraintError
from deploysync.ledger import Ledger
from deploysync.schemas.events import ProcessedTicketRecord


def _record(**overrides) -> ProcessedTicketRecord:
    values = {
        "ticket_id": "HQ-7",
        "ticket_title": "Fix the bug",
        "previous_state": "In Review",
        "new_state": "Done",
        "deploy_id": "dep-1",
        "service_id": "srv-1",
        "service_name": "api",
        "commit_id": "b2",
        "commit_message": "HQ-7 fix bug",
    }
    values.update(overrides)
    return ProcessedTicketRecord(**values)


async def test_record_and_check_processed_ticket(ledger):
    assert await ledger.was_ticket_processed_for_deploy("HQ-7", "dep-1") is False

    await ledger.record_processed_ticket(_record())

    assert await ledger.was_ticket_processed_for_deploy("HQ-7", "dep-1") is True
    assert await ledger.was_ticket_processed_for_deploy("HQ-7", "dep-2") is False


async def test_duplicate_ticket_deploy_pair_is_rejected(ledger):
    await ledger.record_processed_ticket(_record())

    with pytest.raises(LedgerConstraintError):
        await ledger.record_processed_ticket(_record(ticket_title="again"))

    assert len(await ledger.get_ticket_history("HQ-7")) == 1


async def test_same_ticket_different_deploys_both_recorded(ledger):
    await ledger.record_processed_ticket(_record(deploy_id="dep-1"))
    await ledger.record_processed_ticket(_record(deploy_id="dep-2"))

    history = await ledger.get_ticket_history("hq-7")
    assert {r.deploy_id for r in history} == {"dep-1", "dep-2"}
    assert all(r.processed_at is not None for r in history)


async def test_watermark_missing_then_upserted(ledger):
    assert await ledger.get_last_processed_commit("srv-1", "main") is None

    await ledger.set_last_processed_commit("srv-1", "api", "main", "a1")
    assert await ledger.get_last_processed_commit("srv-1", "main") == "a1"

    await ledger.set_last_processed_commit("srv-1", "api", "main", "b2")
    assert await ledger.get_last_processed_commit("srv-1", "main") == "b2"


async def test_watermark_is_keyed_by_service_and_branch(ledger):
    await ledger.set_last_processed_commit("srv-1", "api", "main", "a1")
    await ledger.set_last_processed_commit("srv-1", "api", "staging", "s1")
    await ledger.set_last_processed_commit("srv-2", "web", "main", "w1")

    assert await ledger.get_last_processed_commit("srv-1", "main") == "a1"
    assert await ledger.get_last_processed_commit("srv-1", "staging") == "s1"
    assert await ledger.get_last_processed_commit("srv-2", "main") == "w1"


async def test_list_processed_tickets_respects_limit(ledger):
    for n in range(5):
        await ledger.record_processed_ticket(_record(ticket_id=f"HQ-{n}"))

    recent = await ledger.list_processed_tickets(limit=3)

    assert len(recent) == 3
    assert recent[0].ticket_id == "HQ-4"


async def test_ledger_survives_reopen(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'durable.db'}"
    first = Ledger.open(url)
    await first.init_schema()
    await first.record_processed_ticket(_record())
    await first.set_last_processed_commit("srv-1", "api", "main", "b2")
    await first.close()

    second = Ledger.open(url)
    await second.init_schema()
    try:
        assert await second.was_ticket_processed_for_deploy("HQ-7", "dep-1") is True
        assert await second.get_last_processed_commit("srv-1", "main") == "b2"
    finally:
        await second.close()
