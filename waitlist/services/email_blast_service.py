# waitlist/services/email_blast_service.py
from typing import Optional, List, Sequence
from datetime import datetime, timezone
from uuid import UUID
from waitlist.config import settings
from waitlist.database.connection import get_db_connection, release_db_connection, store_transaction
from waitlist.database.email_blast_repository import EmailBlastRepository
from waitlist.database.blast_recipient_repository import BlastRecipientRepository
from waitlist.errors import BlastNotFoundError, ValidationError
from waitlist.models.email_blast import (
    BlastAnalytics,
    BlastStatus,
    CreateEmailBlastParams,
    EmailBlast,
    EmailBlastPage,
    UpdateEmailBlastParams,
    WaitlistUser,
)
from waitlist.services import blast_lifecycle
from waitlist.services.blast_lifecycle import BlastEvent
from waitlist.utils.validation import (
    as_utc,
    normalize_page,
    require_id,
    require_non_negative,
    require_positive,
    require_text,
    total_pages,
)
import logging

logger = logging.getLogger(__name__)

class EmailBlastService:
    """Lifecycle of an email blast: creation, state changes and progress counters.

    Every state change locks the blast row, checks the transition against
    blast_lifecycle and only then writes, so a missing blast
    (BlastNotFoundError) is never confused with a blast in the wrong status
    (InvalidStateTransition).
    """

    async def create_blast(self, params: CreateEmailBlastParams) -> EmailBlast:
        """Create a blast; it starts scheduled when scheduled_at is given, else as a draft"""
        require_id(params.campaign_id, "campaign_id")
        require_id(params.segment_id, "segment_id")
        require_id(params.template_id, "template_id")

        batch_size = params.batch_size
        if batch_size is None:
            batch_size = settings.blast_default_batch_size
        require_positive(batch_size, "batch_size", settings.blast_max_batch_size)

        if params.send_throttle_per_second is not None:
            require_positive(params.send_throttle_per_second, "send_throttle_per_second")

        params = params.model_copy(update={
            "name": require_text(params.name, "name"),
            "subject": require_text(params.subject, "subject"),
            "scheduled_at": as_utc(params.scheduled_at) if params.scheduled_at is not None else None,
        })

        status = blast_lifecycle.initial_status(params.scheduled_at)

        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)

            blast = await blast_repo.create_blast(params, status, batch_size)
            logger.info(f"Created email blast {blast.id} ({blast.status.value}) for campaign {blast.campaign_id}")
            return blast
        finally:
            if connection:
                await release_db_connection(connection)

    async def get_blast(self, blast_id: UUID) -> EmailBlast:
        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)

            blast = await blast_repo.get_blast_by_id(blast_id)
            if not blast:
                raise BlastNotFoundError(blast_id)
            return blast
        finally:
            if connection:
                await release_db_connection(connection)

    async def list_blasts(
        self,
        campaign_id: UUID,
        page: Optional[int] = None,
        limit: Optional[int] = None
    ) -> EmailBlastPage:
        """Blasts of a campaign, newest first"""
        page, limit, offset = normalize_page(
            page, limit, settings.default_page_size, settings.max_page_size
        )

        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)

            blasts = await blast_repo.get_blasts_by_campaign(campaign_id, limit, offset)
            total = await blast_repo.count_blasts_by_campaign(campaign_id)

            return EmailBlastPage(
                blasts=blasts,
                total=total,
                page=page,
                limit=limit,
                total_pages=total_pages(total, limit)
            )
        finally:
            if connection:
                await release_db_connection(connection)

    async def update_blast(self, blast_id: UUID, params: UpdateEmailBlastParams) -> EmailBlast:
        """Edit name, subject, send time or batch size of a draft"""
        changes = {}
        if params.name is not None:
            changes["name"] = require_text(params.name, "name")
        if params.subject is not None:
            changes["subject"] = require_text(params.subject, "subject")
        if params.batch_size is not None:
            require_positive(params.batch_size, "batch_size", settings.blast_max_batch_size)
        if params.scheduled_at is not None:
            changes["scheduled_at"] = as_utc(params.scheduled_at)
        params = params.model_copy(update=changes)

        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)

            async with store_transaction(connection, "update email blast"):
                current = await self._get_locked(blast_repo, blast_id)
                blast_lifecycle.check_editable(current.status)

                blast = await blast_repo.update_blast(blast_id, params)

            logger.info(f"Updated email blast {blast_id}")
            return blast
        finally:
            if connection:
                await release_db_connection(connection)

    async def schedule_blast(self, blast_id: UUID, scheduled_at: datetime) -> EmailBlast:
        """Schedule a draft for sending at scheduled_at (must be in the future)"""
        if scheduled_at is None:
            raise ValidationError("scheduled_at is required", field="scheduled_at")
        scheduled_at = as_utc(scheduled_at)
        if scheduled_at <= datetime.now(timezone.utc):
            raise ValidationError("scheduled time must be in the future", field="scheduled_at")

        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)

            async with store_transaction(connection, "schedule email blast"):
                current = await self._get_locked(blast_repo, blast_id)
                blast_lifecycle.next_status(current.status, BlastEvent.SCHEDULE)

                blast = await blast_repo.schedule_blast(blast_id, scheduled_at)

            logger.info(f"Scheduled email blast {blast_id} for {scheduled_at.isoformat()}")
            return blast
        finally:
            if connection:
                await release_db_connection(connection)

    async def start_blast(self, blast_id: UUID, users: Sequence[WaitlistUser]) -> EmailBlast:
        """Attach the segment's users and hand the blast over to the sender.

        Recipients, the total and the move to 'processing' are written in one
        transaction. An unknown blast is reported before an empty user list.
        """
        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)
            recipient_repo = BlastRecipientRepository(connection)

            async with store_transaction(connection, "start email blast"):
                current = await self._get_locked(blast_repo, blast_id)
                target = blast_lifecycle.next_status(current.status, BlastEvent.START)
                if not users:
                    raise ValidationError("segment has no matching users", field="users")

                await recipient_repo.bulk_insert_recipients(blast_id, users, current.batch_size)
                total = await recipient_repo.count_recipients(blast_id)
                await blast_repo.update_total_recipients(blast_id, total)

                blast = await blast_repo.update_blast_status(blast_id, target)

            logger.info(f"Started email blast {blast_id} with {total} recipients")
            return blast
        finally:
            if connection:
                await release_db_connection(connection)

    async def update_blast_status(
        self,
        blast_id: UUID,
        status: BlastStatus,
        error_message: Optional[str] = None
    ) -> EmailBlast:
        """Overwrite the status after checking the move is a legal forward transition"""
        try:
            target = BlastStatus(status)
        except ValueError:
            raise ValidationError(f"unknown email blast status: {status}", field="status")

        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)

            async with store_transaction(connection, "update email blast status"):
                current = await self._get_locked(blast_repo, blast_id)
                blast_lifecycle.check_transition(current.status, target)
                # the scheduler only picks up blasts with a send time
                if target == BlastStatus.SCHEDULED and current.scheduled_at is None:
                    raise ValidationError(
                        "email blast has no send time; use schedule_blast", field="scheduled_at"
                    )

                blast = await blast_repo.update_blast_status(blast_id, target, error_message)

            logger.info(f"Email blast {blast_id} moved from {current.status.value} to {target.value}")
            return blast
        finally:
            if connection:
                await release_db_connection(connection)

    async def _apply_event(
        self,
        blast_id: UUID,
        event: BlastEvent,
        error_message: Optional[str] = None
    ) -> EmailBlast:
        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)

            async with store_transaction(connection, f"{event.value} email blast"):
                current = await self._get_locked(blast_repo, blast_id)
                target = blast_lifecycle.next_status(current.status, event)

                blast = await blast_repo.update_blast_status(blast_id, target, error_message)

            logger.info(f"Email blast {blast_id}: {event.value} ({current.status.value} -> {target.value})")
            return blast
        finally:
            if connection:
                await release_db_connection(connection)

    async def begin_sending(self, blast_id: UUID) -> EmailBlast:
        return await self._apply_event(blast_id, BlastEvent.BEGIN_SENDING)

    async def pause_blast(self, blast_id: UUID) -> EmailBlast:
        return await self._apply_event(blast_id, BlastEvent.PAUSE)

    async def resume_blast(self, blast_id: UUID) -> EmailBlast:
        return await self._apply_event(blast_id, BlastEvent.RESUME)

    async def complete_blast(self, blast_id: UUID) -> EmailBlast:
        return await self._apply_event(blast_id, BlastEvent.COMPLETE)

    async def cancel_blast(self, blast_id: UUID) -> EmailBlast:
        return await self._apply_event(blast_id, BlastEvent.CANCEL)

    async def fail_blast(self, blast_id: UUID, error_message: str) -> EmailBlast:
        return await self._apply_event(blast_id, BlastEvent.FAIL, error_message)

    async def delete_blast(self, blast_id: UUID) -> None:
        """Soft delete; refused while the blast is processing or sending"""
        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)

            async with store_transaction(connection, "delete email blast"):
                current = await self._get_locked(blast_repo, blast_id)
                blast_lifecycle.check_deletable(current.status)

                await blast_repo.soft_delete_blast(blast_id)

            logger.info(f"Deleted email blast {blast_id}")
        finally:
            if connection:
                await release_db_connection(connection)

    async def update_progress(self, blast_id: UUID, current_batch: int) -> None:
        """Record the last processed batch; last write wins"""
        require_non_negative(current_batch, "current_batch")
        await self._write_counter(
            blast_id, lambda repo: repo.update_progress(blast_id, current_batch)
        )

    async def update_progress_with_sent(self, blast_id: UUID, sent_count: int, current_batch: int) -> None:
        """Record the batch pointer and the full sent count; last write wins"""
        require_non_negative(sent_count, "sent_count")
        require_non_negative(current_batch, "current_batch")
        await self._write_counter(
            blast_id, lambda repo: repo.update_progress(blast_id, current_batch, sent_count)
        )

    async def increment_sent_count(self, blast_id: UUID) -> None:
        await self._write_counter(blast_id, lambda repo: repo.increment_sent_count(blast_id))

    async def increment_failed_count(self, blast_id: UUID) -> None:
        await self._write_counter(blast_id, lambda repo: repo.increment_failed_count(blast_id))

    async def update_total_recipients(self, blast_id: UUID, total_recipients: int) -> None:
        require_non_negative(total_recipients, "total_recipients")
        await self._write_counter(
            blast_id, lambda repo: repo.update_total_recipients(blast_id, total_recipients)
        )

    async def _write_counter(self, blast_id: UUID, write) -> None:
        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)

            if not await write(blast_repo):
                raise BlastNotFoundError(blast_id)
        finally:
            if connection:
                await release_db_connection(connection)

    async def get_scheduled_blasts(self, before_time: datetime) -> List[EmailBlast]:
        """Scheduled blasts due at or before before_time, earliest first.

        The caller must move each returned blast out of 'scheduled' (start_blast)
        or it will be returned again on the next poll.
        """
        before_time = as_utc(before_time)

        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)

            return await blast_repo.get_scheduled_blasts(before_time)
        finally:
            if connection:
                await release_db_connection(connection)

    async def reconcile_counters(self, blast_id: UUID) -> EmailBlast:
        """Reset the blast's cached counters to what the recipient ledger says"""
        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)

            blast = await blast_repo.sync_counters_from_recipients(blast_id)
            if not blast:
                raise BlastNotFoundError(blast_id)

            logger.info(
                f"Reconciled email blast {blast_id}: sent={blast.sent_count} "
                f"failed={blast.failed_count} total={blast.total_recipients}"
            )
            return blast
        finally:
            if connection:
                await release_db_connection(connection)

    async def get_blast_analytics(self, blast_id: UUID) -> BlastAnalytics:
        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)
            recipient_repo = BlastRecipientRepository(connection)

            blast = await blast_repo.get_blast_by_id(blast_id)
            if not blast:
                raise BlastNotFoundError(blast_id)

            stats = await recipient_repo.get_recipient_stats(blast_id)
        finally:
            if connection:
                await release_db_connection(connection)

        # Each later stage implies the earlier ones
        clicked = stats.clicked
        opened = stats.opened + clicked
        delivered = stats.delivered + opened
        sent = stats.sent + delivered

        analytics = BlastAnalytics(
            blast_id=blast.id,
            name=blast.name,
            status=blast.status,
            total_recipients=blast.total_recipients,
            sent=sent,
            delivered=delivered,
            opened=opened,
            clicked=clicked,
            bounced=stats.bounced,
            failed=stats.failed,
            started_at=blast.started_at,
            completed_at=blast.completed_at
        )

        if sent > 0:
            analytics.open_rate = opened / sent * 100
            analytics.click_rate = clicked / sent * 100
            analytics.bounce_rate = stats.bounced / sent * 100

        if blast.started_at and blast.completed_at:
            analytics.duration_seconds = int((blast.completed_at - blast.started_at).total_seconds())

        return analytics

    async def _get_locked(self, blast_repo: EmailBlastRepository, blast_id: UUID) -> EmailBlast:
        blast = await blast_repo.get_blast_by_id(blast_id, for_update=True)
        if not blast:
            raise BlastNotFoundError(blast_id)
        return blast

email_blast_service = EmailBlastService()
