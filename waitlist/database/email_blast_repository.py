# waitlist/database/email_blast_repository.py
import asyncpg
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from waitlist.errors import wrap_store_error
from waitlist.models.email_blast import (
    EmailBlast, BlastStatus, CreateEmailBlastParams, UpdateEmailBlastParams
)
import logging

logger = logging.getLogger(__name__)

BLAST_COLUMNS = """
    id, campaign_id, segment_id, template_id, name, subject, scheduled_at, started_at,
    completed_at, status, total_recipients, sent_count, delivered_count, opened_count,
    clicked_count, bounced_count, failed_count, batch_size, current_batch, last_batch_at,
    error_message, send_throttle_per_second, created_by, created_at, updated_at, deleted_at
"""

def affected_rows(status: str) -> int:
    """Row count from an asyncpg command tag such as 'UPDATE 3'"""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0

def _to_blast(row) -> Optional[EmailBlast]:
    return EmailBlast(**dict(row)) if row else None

class EmailBlastRepository:
    def __init__(self, connection: asyncpg.Connection):
        self.conn = connection

    async def create_blast(
        self,
        params: CreateEmailBlastParams,
        status: BlastStatus,
        batch_size: int
    ) -> EmailBlast:
        """Insert a blast row with an already computed initial status"""
        try:
            query = f"""
                INSERT INTO email_blasts (
                    campaign_id, segment_id, template_id, name, subject, scheduled_at,
                    batch_size, send_throttle_per_second, created_by, status
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING {BLAST_COLUMNS}
            """

            result = await self.conn.fetchrow(
                query,
                params.campaign_id,
                params.segment_id,
                params.template_id,
                params.name,
                params.subject,
                params.scheduled_at,
                batch_size,
                params.send_throttle_per_second,
                params.created_by,
                BlastStatus(status).value
            )

            return _to_blast(result)

        except Exception as e:
            logger.error(f"Failed to create email blast for campaign {params.campaign_id}: {e}")
            raise wrap_store_error("create email blast", e) from e

    async def get_blast_by_id(self, blast_id: UUID, for_update: bool = False) -> Optional[EmailBlast]:
        """Get a non-deleted blast; for_update locks the row until the transaction ends"""
        try:
            query = f"""
                SELECT {BLAST_COLUMNS}
                FROM email_blasts
                WHERE id = $1 AND deleted_at IS NULL
            """
            if for_update:
                query += " FOR UPDATE"

            result = await self.conn.fetchrow(query, blast_id)
            return _to_blast(result)

        except Exception as e:
            logger.error(f"Failed to get email blast {blast_id}: {e}")
            raise wrap_store_error("get email blast", e) from e

    async def get_blasts_by_campaign(self, campaign_id: UUID, limit: int, offset: int) -> List[EmailBlast]:
        try:
            rows = await self.conn.fetch(f"""
                SELECT {BLAST_COLUMNS}
                FROM email_blasts
                WHERE campaign_id = $1 AND deleted_at IS NULL
                ORDER BY created_at DESC
                LIMIT $2 OFFSET $3
            """, campaign_id, limit, offset)

            return [_to_blast(row) for row in rows]

        except Exception as e:
            logger.error(f"Failed to get email blasts for campaign {campaign_id}: {e}")
            raise wrap_store_error("get email blasts", e) from e

    async def count_blasts_by_campaign(self, campaign_id: UUID) -> int:
        try:
            count = await self.conn.fetchval("""
                SELECT COUNT(*)
                FROM email_blasts
                WHERE campaign_id = $1 AND deleted_at IS NULL
            """, campaign_id)
            return count or 0

        except Exception as e:
            logger.error(f"Failed to count email blasts for campaign {campaign_id}: {e}")
            raise wrap_store_error("count email blasts", e) from e

    async def update_blast(self, blast_id: UUID, params: UpdateEmailBlastParams) -> Optional[EmailBlast]:
        """Partial update, matches only draft blasts"""
        try:
            updates = []
            values = []
            param_count = 2

            for column in ("name", "subject", "scheduled_at", "batch_size"):
                value = getattr(params, column)
                if value is not None:
                    updates.append(f"{column} = ${param_count}")
                    values.append(value)
                    param_count += 1

            updates.append("updated_at = CURRENT_TIMESTAMP")

            query = f"""
                UPDATE email_blasts
                SET {', '.join(updates)}
                WHERE id = $1 AND deleted_at IS NULL AND status = 'draft'
                RETURNING {BLAST_COLUMNS}
            """

            result = await self.conn.fetchrow(query, blast_id, *values)
            return _to_blast(result)

        except Exception as e:
            logger.error(f"Failed to update email blast {blast_id}: {e}")
            raise wrap_store_error("update email blast", e) from e

    async def schedule_blast(self, blast_id: UUID, scheduled_at: datetime) -> Optional[EmailBlast]:
        try:
            result = await self.conn.fetchrow(f"""
                UPDATE email_blasts
                SET status = 'scheduled',
                    scheduled_at = $2,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND deleted_at IS NULL AND status = 'draft'
                RETURNING {BLAST_COLUMNS}
            """, blast_id, scheduled_at)

            return _to_blast(result)

        except Exception as e:
            logger.error(f"Failed to schedule email blast {blast_id}: {e}")
            raise wrap_store_error("schedule email blast", e) from e

    async def soft_delete_blast(self, blast_id: UUID) -> bool:
        try:
            status = await self.conn.execute("""
                UPDATE email_blasts
                SET deleted_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND deleted_at IS NULL
                  AND status NOT IN ('processing', 'sending')
            """, blast_id)
            return affected_rows(status) > 0

        except Exception as e:
            logger.error(f"Failed to delete email blast {blast_id}: {e}")
            raise wrap_store_error("delete email blast", e) from e

    async def update_blast_status(
        self,
        blast_id: UUID,
        status: BlastStatus,
        error_message: Optional[str] = None
    ) -> Optional[EmailBlast]:
        """Write a status and its timestamp side effects; no transition check here"""
        try:
            result = await self.conn.fetchrow(f"""
                UPDATE email_blasts
                SET status = $2::varchar,
                    error_message = $3,
                    started_at = CASE
                        WHEN $2::varchar IN ('processing', 'sending') AND started_at IS NULL
                        THEN CURRENT_TIMESTAMP ELSE started_at END,
                    completed_at = CASE
                        WHEN $2::varchar IN ('completed', 'cancelled', 'failed')
                        THEN CURRENT_TIMESTAMP ELSE completed_at END,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND deleted_at IS NULL
                RETURNING {BLAST_COLUMNS}
            """, blast_id, BlastStatus(status).value, error_message)

            return _to_blast(result)

        except Exception as e:
            logger.error(f"Failed to update status of email blast {blast_id}: {e}")
            raise wrap_store_error("update email blast status", e) from e

    async def update_total_recipients(self, blast_id: UUID, total_recipients: int) -> bool:
        try:
            status = await self.conn.execute("""
                UPDATE email_blasts
                SET total_recipients = $2,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND deleted_at IS NULL
            """, blast_id, total_recipients)
            return affected_rows(status) > 0

        except Exception as e:
            logger.error(f"Failed to update total recipients of email blast {blast_id}: {e}")
            raise wrap_store_error("update email blast total recipients", e) from e

    async def increment_sent_count(self, blast_id: UUID) -> bool:
        try:
            status = await self.conn.execute("""
                UPDATE email_blasts
                SET sent_count = sent_count + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND deleted_at IS NULL
            """, blast_id)
            return affected_rows(status) > 0

        except Exception as e:
            logger.error(f"Failed to increment sent count of email blast {blast_id}: {e}")
            raise wrap_store_error("increment email blast sent count", e) from e

    async def increment_failed_count(self, blast_id: UUID) -> bool:
        try:
            status = await self.conn.execute("""
                UPDATE email_blasts
                SET failed_count = failed_count + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND deleted_at IS NULL
            """, blast_id)
            return affected_rows(status) > 0

        except Exception as e:
            logger.error(f"Failed to increment failed count of email blast {blast_id}: {e}")
            raise wrap_store_error("increment email blast failed count", e) from e

    async def update_progress(
        self,
        blast_id: UUID,
        current_batch: int,
        sent_count: Optional[int] = None
    ) -> bool:
        """Move the batch pointer, and overwrite sent_count when one is given"""
        try:
            if sent_count is None:
                status = await self.conn.execute("""
                    UPDATE email_blasts
                    SET current_batch = $2,
                        last_batch_at = CURRENT_TIMESTAMP,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = $1 AND deleted_at IS NULL
                """, blast_id, current_batch)
            else:
                status = await self.conn.execute("""
                    UPDATE email_blasts
                    SET sent_count = $2,
                        current_batch = $3,
                        last_batch_at = CURRENT_TIMESTAMP,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = $1 AND deleted_at IS NULL
                """, blast_id, sent_count, current_batch)
            return affected_rows(status) > 0

        except Exception as e:
            logger.error(f"Failed to update progress of email blast {blast_id}: {e}")
            raise wrap_store_error("update email blast progress", e) from e

    async def get_scheduled_blasts(self, before_time: datetime) -> List[EmailBlast]:
        try:
            rows = await self.conn.fetch(f"""
                SELECT {BLAST_COLUMNS}
                FROM email_blasts
                WHERE status = 'scheduled' AND scheduled_at <= $1 AND deleted_at IS NULL
                ORDER BY scheduled_at ASC
            """, before_time)

            return [_to_blast(row) for row in rows]

        except Exception as e:
            logger.error(f"Failed to get scheduled email blasts: {e}")
            raise wrap_store_error("get scheduled email blasts", e) from e

    async def sync_counters_from_recipients(self, blast_id: UUID) -> Optional[EmailBlast]:
        """Overwrite the cached counters with the recipient ledger's aggregation"""
        try:
            result = await self.conn.fetchrow(f"""
                UPDATE email_blasts
                SET total_recipients = s.total,
                    sent_count = s.sent,
                    delivered_count = s.delivered,
                    opened_count = s.opened,
                    clicked_count = s.clicked,
                    bounced_count = s.bounced,
                    failed_count = s.failed,
                    updated_at = CURRENT_TIMESTAMP
                FROM (
                    SELECT
                        COUNT(*) AS total,
                        COUNT(*) FILTER (WHERE status IN ('sent', 'delivered', 'opened', 'clicked')) AS sent,
                        COUNT(*) FILTER (WHERE status IN ('delivered', 'opened', 'clicked')) AS delivered,
                        COUNT(*) FILTER (WHERE status IN ('opened', 'clicked')) AS opened,
                        COUNT(*) FILTER (WHERE status = 'clicked') AS clicked,
                        COUNT(*) FILTER (WHERE status = 'bounced') AS bounced,
                        COUNT(*) FILTER (WHERE status = 'failed') AS failed
                    FROM blast_recipients
                    WHERE blast_id = $1
                ) AS s
                WHERE email_blasts.id = $1 AND email_blasts.deleted_at IS NULL
                RETURNING {BLAST_COLUMNS}
            """, blast_id)

            return _to_blast(result)

        except Exception as e:
            logger.error(f"Failed to reconcile counters of email blast {blast_id}: {e}")
            raise wrap_store_error("reconcile email blast counters", e) from e
