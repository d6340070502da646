"""End-to-end behaviour of the blast services against PostgreSQL."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from waitlist.errors import BlastNotFoundError, InvalidStateTransition
from waitlist.models.email_blast import (
    BlastStatus,
    CreateEmailBlastParams,
    RecipientStatus,
    WaitlistUser,
)
from waitlist.services.blast_recipient_service import blast_recipient_service
from waitlist.services.email_blast_service import email_blast_service
from waitlist.services.tier_service import default_free_tier, tier_service


def make_users(count):
    return [WaitlistUser(id=uuid.uuid4(), email=f"user{i}@example.com") for i in range(count)]


async def new_blast(**overrides):
    values = {
        "campaign_id": uuid.uuid4(),
        "segment_id": uuid.uuid4(),
        "template_id": uuid.uuid4(),
        "name": "Launch day",
        "subject": "We are live",
    }
    values.update(overrides)
    return await email_blast_service.create_blast(CreateEmailBlastParams(**values))


@pytest.mark.asyncio
async def test_start_blast_partitions_recipients(db_pool):
    blast = await new_blast(batch_size=2)
    users = make_users(5)

    started = await email_blast_service.start_blast(blast.id, users)

    assert started.status == BlastStatus.PROCESSING
    assert started.total_recipients == 5
    assert started.started_at is not None
    assert await blast_recipient_service.get_max_batch_number(blast.id) == 2

    last_batch = await blast_recipient_service.get_recipients_by_batch(blast.id, 2)
    assert [r.user_id for r in last_batch] == [users[4].id]

    first_batch = await blast_recipient_service.get_pending_recipients(blast.id, 0, 10)
    assert [r.user_id for r in first_batch] == [users[0].id, users[1].id]


@pytest.mark.asyncio
async def test_bulk_insert_is_idempotent(db_pool):
    blast = await new_blast()
    users = make_users(3)

    await blast_recipient_service.bulk_insert_recipients(blast.id, users, 10)
    await blast_recipient_service.bulk_insert_recipients(blast.id, users, 10)

    assert await blast_recipient_service.count_recipients(blast.id) == 3


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost(db_pool):
    blast = await new_blast()

    await asyncio.gather(*[email_blast_service.increment_sent_count(blast.id) for _ in range(20)])

    refreshed = await email_blast_service.get_blast(blast.id)
    assert refreshed.sent_count == 20


@pytest.mark.asyncio
async def test_concurrent_claims_never_overlap(db_pool):
    blast = await new_blast()
    await blast_recipient_service.bulk_insert_recipients(blast.id, make_users(5), 10)

    first, second = await asyncio.gather(
        blast_recipient_service.claim_pending_recipients(blast.id, 0, 3),
        blast_recipient_service.claim_pending_recipients(blast.id, 0, 3),
    )

    first_ids = {r.id for r in first}
    second_ids = {r.id for r in second}
    assert not first_ids & second_ids
    assert len(first_ids | second_ids) == 5
    assert all(r.status == RecipientStatus.QUEUED for r in first + second)


@pytest.mark.asyncio
async def test_opened_at_keeps_first_open(db_pool):
    blast = await new_blast()
    recipient = await blast_recipient_service.create_recipient(
        blast.id, uuid.uuid4(), "reader@example.com", 0
    )

    await blast_recipient_service.update_recipient_status(recipient.id, RecipientStatus.OPENED)
    first_open = (await blast_recipient_service.get_recipient(recipient.id)).opened_at
    await blast_recipient_service.update_recipient_status(recipient.id, RecipientStatus.OPENED)

    again = await blast_recipient_service.get_recipient(recipient.id)
    assert first_open is not None
    assert again.opened_at == first_open


@pytest.mark.asyncio
async def test_scheduled_blasts_are_due_in_order(db_pool):
    now = datetime.now(timezone.utc)
    later = await new_blast(name="later", scheduled_at=now + timedelta(hours=2))
    sooner = await new_blast(name="sooner", scheduled_at=now + timedelta(hours=1))
    await new_blast(name="not yet", scheduled_at=now + timedelta(hours=5))
    await new_blast(name="draft")

    due = await email_blast_service.get_scheduled_blasts(now + timedelta(hours=3))

    assert [b.id for b in due] == [sooner.id, later.id]


@pytest.mark.asyncio
async def test_state_errors_are_told_apart(db_pool):
    blast = await new_blast()
    await email_blast_service.start_blast(blast.id, make_users(1))

    with pytest.raises(InvalidStateTransition):
        await email_blast_service.delete_blast(blast.id)
    with pytest.raises(BlastNotFoundError):
        await email_blast_service.delete_blast(uuid.uuid4())

    await email_blast_service.cancel_blast(blast.id)
    await email_blast_service.delete_blast(blast.id)
    with pytest.raises(BlastNotFoundError):
        await email_blast_service.get_blast(blast.id)


@pytest.mark.asyncio
async def test_reconcile_counts_from_ledger(db_pool):
    blast = await new_blast()
    await email_blast_service.start_blast(blast.id, make_users(4))
    recipients = await blast_recipient_service.claim_pending_recipients(blast.id, 0, 10)

    outcomes = [
        RecipientStatus.SENT,
        RecipientStatus.DELIVERED,
        RecipientStatus.CLICKED,
        RecipientStatus.FAILED,
    ]
    for recipient, outcome in zip(recipients, outcomes):
        await blast_recipient_service.update_recipient_status(recipient.id, outcome)

    reconciled = await email_blast_service.reconcile_counters(blast.id)

    assert reconciled.total_recipients == 4
    assert reconciled.sent_count == 3
    assert reconciled.delivered_count == 2
    assert reconciled.clicked_count == 1
    assert reconciled.failed_count == 1


@pytest.mark.asyncio
async def test_tier_from_subscription_and_free_fallback(db_pool):
    async with db_pool.acquire() as conn:
        pro_id = await conn.fetchval("INSERT INTO prices (description) VALUES ('pro') RETURNING id")
        campaigns_id = await conn.fetchval(
            "INSERT INTO features (name) VALUES ('campaigns') RETURNING id"
        )
        blasts_id = await conn.fetchval(
            "INSERT INTO features (name) VALUES ('email_blasts') RETURNING id"
        )
        limit_id = await conn.fetchval("""
            INSERT INTO limits (feature_id, limit_name, limit_value)
            VALUES ($1, 'campaigns', 10) RETURNING id
        """, campaigns_id)
        await conn.execute("""
            INSERT INTO plan_feature_limits (plan_id, feature_id, limit_id, enabled)
            VALUES ($1, $2, $3, true), ($1, $4, NULL, true)
        """, pro_id, campaigns_id, limit_id, blasts_id)

        subscriber = uuid.uuid4()
        await conn.execute("""
            INSERT INTO subscriptions (user_id, price_id, status)
            VALUES ($1, $2, 'active')
        """, subscriber, pro_id)

    tier = await tier_service.get_tier_info_by_user_id(subscriber)
    assert tier.price_id == pro_id
    assert tier.limits == {"campaigns": 10}
    assert tier.features == {"email_blasts": True}

    assert await tier_service.get_tier_info_by_user_id(uuid.uuid4()) == default_free_tier()
