"""Test configuration and fixtures."""

from __future__ import annotations

import importlib
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

SERVICE_MODULES = (
    "waitlist.services.email_blast_service",
    "waitlist.services.blast_recipient_service",
    "waitlist.services.tier_service",
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def blast_row(**overrides) -> dict:
    """A full email_blasts row as asyncpg would return it."""
    row = {
        "id": uuid.uuid4(),
        "campaign_id": uuid.uuid4(),
        "segment_id": uuid.uuid4(),
        "template_id": uuid.uuid4(),
        "name": "Launch day",
        "subject": "We are live",
        "scheduled_at": None,
        "started_at": None,
        "completed_at": None,
        "status": "draft",
        "total_recipients": 0,
        "sent_count": 0,
        "delivered_count": 0,
        "opened_count": 0,
        "clicked_count": 0,
        "bounced_count": 0,
        "failed_count": 0,
        "batch_size": 100,
        "current_batch": 0,
        "last_batch_at": None,
        "error_message": None,
        "send_throttle_per_second": None,
        "created_by": None,
        "created_at": NOW,
        "updated_at": NOW,
        "deleted_at": None,
    }
    row.update(overrides)
    return row


def recipient_row(**overrides) -> dict:
    """A full blast_recipients row as asyncpg would return it."""
    row = {
        "id": uuid.uuid4(),
        "blast_id": uuid.uuid4(),
        "user_id": uuid.uuid4(),
        "email": "someone@example.com",
        "status": "pending",
        "email_log_id": None,
        "queued_at": None,
        "sent_at": None,
        "delivered_at": None,
        "opened_at": None,
        "clicked_at": None,
        "bounced_at": None,
        "failed_at": None,
        "error_message": None,
        "batch_number": 0,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


@pytest.fixture
def fake_conn() -> MagicMock:
    """Stand-in for an asyncpg connection; transaction() works as an async context manager."""
    conn = MagicMock()
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=None)
    conn.execute = AsyncMock(return_value="UPDATE 1")
    conn.executemany = AsyncMock(return_value=None)
    return conn


@pytest.fixture
def patched_db(monkeypatch, fake_conn) -> MagicMock:
    """Route every service's pooled connection to fake_conn."""
    # waitlist.services re-exports singletons under the submodule names, so patch the module objects
    for name in SERVICE_MODULES:
        module = importlib.import_module(name)
        monkeypatch.setattr(module, "get_db_connection", AsyncMock(return_value=fake_conn))
        monkeypatch.setattr(module, "release_db_connection", AsyncMock())
    return fake_conn
