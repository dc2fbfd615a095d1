"""Shared test configuration — must be loaded before deploysync modules."""

import os

# Keep the module-level app away from any real credentials or database.
os.environ["DEPLOYSYNC_DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.pop("DEPLOYSYNC_WEBHOOK_SECRET", None)
os.environ.pop("DEPLOYSYNC_DRY_RUN", None)

import pytest

from deploysync.ledger import Ledger
from deploysync.retry import RetryingInvoker


@pytest.fixture
async def ledger(tmp_path):
    """A fresh on-disk ledger per test."""
    ledger = Ledger.open(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await ledger.init_schema()
    yield ledger
    await ledger.close()


@pytest.fixture
def invoker():
    async def _no_sleep(_delay: float) -> None:
        return None

    return RetryingInvoker(max_attempts=3, base_delay=0.01, sleep=_no_sleep)
