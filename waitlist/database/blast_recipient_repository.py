# waitlist/database/blast_recipient_repository.py
import asyncpg
from typing import Optional, List, Sequence, Tuple
from uuid import UUID
from waitlist.errors import DuplicateRecipientError, wrap_store_error
from waitlist.models.email_blast import (
    BlastRecipient, BlastRecipientStats, RecipientStatus, WaitlistUser
)
from waitlist.database.email_blast_repository import affected_rows
import logging

logger = logging.getLogger(__name__)

RECIPIENT_COLUMNS = """
    id, blast_id, user_id, email, status, email_log_id, queued_at, sent_at, delivered_at,
    opened_at, clicked_at, bounced_at, failed_at, error_message, batch_number,
    created_at, updated_at
"""

def assign_batches(
    blast_id: UUID,
    users: Sequence[WaitlistUser],
    batch_size: int
) -> List[Tuple[UUID, UUID, str, int]]:
    """Insert rows for a blast; the i-th user lands in batch i // batch_size"""
    return [
        (blast_id, user.id, str(user.email), index // batch_size)
        for index, user in enumerate(users)
    ]

def _to_recipient(row) -> Optional[BlastRecipient]:
    return BlastRecipient(**dict(row)) if row else None

class BlastRecipientRepository:
    def __init__(self, connection: asyncpg.Connection):
        self.conn = connection

    async def create_recipient(
        self,
        blast_id: UUID,
        user_id: UUID,
        email: str,
        batch_number: Optional[int] = None
    ) -> BlastRecipient:
        try:
            result = await self.conn.fetchrow(f"""
                INSERT INTO blast_recipients (blast_id, user_id, email, batch_number)
                VALUES ($1, $2, $3, $4)
                RETURNING {RECIPIENT_COLUMNS}
            """, blast_id, user_id, email, batch_number)

            return _to_recipient(result)

        except asyncpg.UniqueViolationError:
            logger.warning(f"Recipient already exists: user {user_id} in blast {blast_id}")
            raise DuplicateRecipientError(blast_id, user_id)
        except Exception as e:
            logger.error(f"Failed to create blast recipient for blast {blast_id}: {e}")
            raise wrap_store_error("create blast recipient", e) from e

    async def bulk_insert_recipients(
        self,
        blast_id: UUID,
        users: Sequence[WaitlistUser],
        batch_size: int
    ) -> None:
        """Insert all users in one transaction, skipping pairs that already exist"""
        rows = assign_batches(blast_id, users, batch_size)
        if not rows:
            return

        try:
            async with self.conn.transaction():
                await self.conn.executemany("""
                    INSERT INTO blast_recipients (blast_id, user_id, email, batch_number)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (blast_id, user_id) DO NOTHING
                """, rows)

            logger.info(f"Inserted up to {len(rows)} recipients into blast {blast_id}")

        except Exception as e:
            logger.error(f"Failed to bulk insert recipients for blast {blast_id}: {e}")
            raise wrap_store_error("insert blast recipients", e) from e

    async def get_recipient_by_id(self, recipient_id: UUID) -> Optional[BlastRecipient]:
        try:
            result = await self.conn.fetchrow(f"""
                SELECT {RECIPIENT_COLUMNS}
                FROM blast_recipients
                WHERE id = $1
            """, recipient_id)
            return _to_recipient(result)

        except Exception as e:
            logger.error(f"Failed to get blast recipient {recipient_id}: {e}")
            raise wrap_store_error("get blast recipient", e) from e

    async def get_pending_recipients(
        self,
        blast_id: UUID,
        batch_number: int,
        limit: int
    ) -> List[BlastRecipient]:
        try:
            rows = await self.conn.fetch(f"""
                SELECT {RECIPIENT_COLUMNS}
                FROM blast_recipients
                WHERE blast_id = $1 AND batch_number = $2 AND status = 'pending'
                ORDER BY created_at ASC
                LIMIT $3
            """, blast_id, batch_number, limit)

            return [_to_recipient(row) for row in rows]

        except Exception as e:
            logger.error(f"Failed to get pending recipients for blast {blast_id} batch {batch_number}: {e}")
            raise wrap_store_error("get pending blast recipients", e) from e

    async def claim_pending_recipients(
        self,
        blast_id: UUID,
        batch_number: int,
        limit: int
    ) -> List[BlastRecipient]:
        """Move up to `limit` pending rows to queued and return them.

        Rows locked by another claimer are skipped, so two workers pulling the
        same batch never receive the same recipient.
        """
        try:
            rows = await self.conn.fetch(f"""
                UPDATE blast_recipients
                SET status = 'queued',
                    queued_at = CURRENT_TIMESTAMP,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id IN (
                    SELECT id
                    FROM blast_recipients
                    WHERE blast_id = $1 AND batch_number = $2 AND status = 'pending'
                    ORDER BY created_at ASC
                    LIMIT $3
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING {RECIPIENT_COLUMNS}
            """, blast_id, batch_number, limit)

            recipients = [_to_recipient(row) for row in rows]
            # RETURNING has no defined order
            recipients.sort(key=lambda r: r.created_at)
            return recipients

        except Exception as e:
            logger.error(f"Failed to claim recipients for blast {blast_id} batch {batch_number}: {e}")
            raise wrap_store_error("claim pending blast recipients", e) from e

    async def get_recipients_by_blast(self, blast_id: UUID, limit: int, offset: int) -> List[BlastRecipient]:
        try:
            rows = await self.conn.fetch(f"""
                SELECT {RECIPIENT_COLUMNS}
                FROM blast_recipients
                WHERE blast_id = $1
                ORDER BY created_at ASC
                LIMIT $2 OFFSET $3
            """, blast_id, limit, offset)

            return [_to_recipient(row) for row in rows]

        except Exception as e:
            logger.error(f"Failed to get recipients for blast {blast_id}: {e}")
            raise wrap_store_error("get blast recipients", e) from e

    async def get_recipients_by_batch(self, blast_id: UUID, batch_number: int) -> List[BlastRecipient]:
        try:
            rows = await self.conn.fetch(f"""
                SELECT {RECIPIENT_COLUMNS}
                FROM blast_recipients
                WHERE blast_id = $1 AND batch_number = $2
                ORDER BY created_at ASC
            """, blast_id, batch_number)

            return [_to_recipient(row) for row in rows]

        except Exception as e:
            logger.error(f"Failed to get recipients for blast {blast_id} batch {batch_number}: {e}")
            raise wrap_store_error("get blast recipients by batch", e) from e

    async def count_recipients(self, blast_id: UUID) -> int:
        try:
            count = await self.conn.fetchval("""
                SELECT COUNT(*)
                FROM blast_recipients
                WHERE blast_id = $1
            """, blast_id)
            return count or 0

        except Exception as e:
            logger.error(f"Failed to count recipients for blast {blast_id}: {e}")
            raise wrap_store_error("count blast recipients", e) from e

    async def count_recipients_by_status(self, blast_id: UUID, status: RecipientStatus) -> int:
        try:
            count = await self.conn.fetchval("""
                SELECT COUNT(*)
                FROM blast_recipients
                WHERE blast_id = $1 AND status = $2
            """, blast_id, RecipientStatus(status).value)
            return count or 0

        except Exception as e:
            logger.error(f"Failed to count {status} recipients for blast {blast_id}: {e}")
            raise wrap_store_error("count blast recipients by status", e) from e

    async def update_recipient_status(
        self,
        recipient_id: UUID,
        status: RecipientStatus,
        email_log_id: Optional[UUID] = None,
        error_message: Optional[str] = None
    ) -> bool:
        """Set a status and its timestamp; opened_at and clicked_at keep their first value"""
        try:
            result = await self.conn.execute("""
                UPDATE blast_recipients
                SET status = $2::varchar,
                    email_log_id = COALESCE($3, email_log_id),
                    queued_at = CASE WHEN $2::varchar = 'queued' THEN CURRENT_TIMESTAMP ELSE queued_at END,
                    sent_at = CASE WHEN $2::varchar = 'sent' THEN CURRENT_TIMESTAMP ELSE sent_at END,
                    delivered_at = CASE WHEN $2::varchar = 'delivered' THEN CURRENT_TIMESTAMP ELSE delivered_at END,
                    opened_at = CASE WHEN $2::varchar = 'opened' THEN COALESCE(opened_at, CURRENT_TIMESTAMP) ELSE opened_at END,
                    clicked_at = CASE WHEN $2::varchar = 'clicked' THEN COALESCE(clicked_at, CURRENT_TIMESTAMP) ELSE clicked_at END,
                    bounced_at = CASE WHEN $2::varchar = 'bounced' THEN CURRENT_TIMESTAMP ELSE bounced_at END,
                    failed_at = CASE WHEN $2::varchar = 'failed' THEN CURRENT_TIMESTAMP ELSE failed_at END,
                    error_message = COALESCE($4, error_message),
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1
            """, recipient_id, RecipientStatus(status).value, email_log_id, error_message)

            return affected_rows(result) > 0

        except Exception as e:
            logger.error(f"Failed to update status of blast recipient {recipient_id}: {e}")
            raise wrap_store_error("update blast recipient status", e) from e

    async def get_recipient_stats(self, blast_id: UUID) -> BlastRecipientStats:
        try:
            result = await self.conn.fetchrow("""
                SELECT
                    COUNT(*) AS total,
                    COUNT(*) FILTER (WHERE status = 'pending') AS pending,
                    COUNT(*) FILTER (WHERE status = 'queued') AS queued,
                    COUNT(*) FILTER (WHERE status = 'sending') AS sending,
                    COUNT(*) FILTER (WHERE status = 'sent') AS sent,
                    COUNT(*) FILTER (WHERE status = 'delivered') AS delivered,
                    COUNT(*) FILTER (WHERE status = 'opened') AS opened,
                    COUNT(*) FILTER (WHERE status = 'clicked') AS clicked,
                    COUNT(*) FILTER (WHERE status = 'bounced') AS bounced,
                    COUNT(*) FILTER (WHERE status = 'failed') AS failed
                FROM blast_recipients
                WHERE blast_id = $1
            """, blast_id)

            return BlastRecipientStats(**dict(result)) if result else BlastRecipientStats()

        except Exception as e:
            logger.error(f"Failed to get recipient stats for blast {blast_id}: {e}")
            raise wrap_store_error("get blast recipient stats", e) from e

    async def get_max_batch_number(self, blast_id: UUID) -> int:
        try:
            max_batch = await self.conn.fetchval("""
                SELECT COALESCE(MAX(batch_number), 0)
                FROM blast_recipients
                WHERE blast_id = $1
            """, blast_id)
            return max_batch or 0

        except Exception as e:
            logger.error(f"Failed to get max batch number for blast {blast_id}: {e}")
            raise wrap_store_error("get max batch number", e) from e
