# waitlist/services/blast_recipient_service.py
from typing import Optional, List, Sequence
from uuid import UUID
from waitlist.config import settings
from waitlist.database.connection import get_db_connection, release_db_connection, store_transaction
from waitlist.database.email_blast_repository import EmailBlastRepository
from waitlist.database.blast_recipient_repository import BlastRecipientRepository
from waitlist.errors import BlastNotFoundError, RecipientNotFoundError, ValidationError
from waitlist.models.email_blast import (
    BlastRecipient, BlastRecipientPage, BlastRecipientStats, RecipientStatus, WaitlistUser
)
from waitlist.utils.validation import (
    normalize_page, require_id, require_non_negative, require_positive, total_pages, validate_email
)
import logging

logger = logging.getLogger(__name__)

def parse_recipient_status(status) -> RecipientStatus:
    try:
        return RecipientStatus(status)
    except ValueError:
        raise ValidationError(f"unknown recipient status: {status}", field="status")

class BlastRecipientService:
    """Per-recipient delivery ledger of an email blast"""

    async def bulk_insert_recipients(
        self,
        blast_id: UUID,
        users: Sequence[WaitlistUser],
        batch_size: int
    ) -> None:
        """Attach users to a blast, partitioned into batches of batch_size.

        Safe to retry wholesale: users already attached are skipped. An empty
        user list is a no-op and does not touch the database.
        """
        require_id(blast_id, "blast_id")
        require_positive(batch_size, "batch_size", settings.blast_max_batch_size)
        if not users:
            return

        connection = None
        try:
            connection = await get_db_connection()
            blast_repo = EmailBlastRepository(connection)
            recipient_repo = BlastRecipientRepository(connection)

            async with store_transaction(connection, "insert blast recipients"):
                # row lock holds off a concurrent delete
                if not await blast_repo.get_blast_by_id(blast_id, for_update=True):
                    raise BlastNotFoundError(blast_id)

                await recipient_repo.bulk_insert_recipients(blast_id, users, batch_size)
        finally:
            if connection:
                await release_db_connection(connection)

    async def create_recipient(
        self,
        blast_id: UUID,
        user_id: UUID,
        email: str,
        batch_number: Optional[int] = None
    ) -> BlastRecipient:
        require_id(blast_id, "blast_id")
        require_id(user_id, "user_id")
        if not validate_email(email):
            raise ValidationError(f"invalid email address: {email}", field="email")
        if batch_number is not None:
            require_non_negative(batch_number, "batch_number")

        connection = None
        try:
            connection = await get_db_connection()
            recipient_repo = BlastRecipientRepository(connection)

            recipient = await recipient_repo.create_recipient(blast_id, user_id, email, batch_number)
            logger.info(f"Added recipient {recipient.id} to blast {blast_id}")
            return recipient
        finally:
            if connection:
                await release_db_connection(connection)

    async def get_recipient(self, recipient_id: UUID) -> BlastRecipient:
        connection = None
        try:
            connection = await get_db_connection()
            recipient_repo = BlastRecipientRepository(connection)

            recipient = await recipient_repo.get_recipient_by_id(recipient_id)
            if not recipient:
                raise RecipientNotFoundError(recipient_id)
            return recipient
        finally:
            if connection:
                await release_db_connection(connection)

    async def get_pending_recipients(
        self,
        blast_id: UUID,
        batch_number: int,
        limit: int
    ) -> List[BlastRecipient]:
        """Pending recipients of a batch, oldest first; does not claim them"""
        require_non_negative(batch_number, "batch_number")
        require_positive(limit, "limit")

        connection = None
        try:
            connection = await get_db_connection()
            recipient_repo = BlastRecipientRepository(connection)

            return await recipient_repo.get_pending_recipients(blast_id, batch_number, limit)
        finally:
            if connection:
                await release_db_connection(connection)

    async def claim_pending_recipients(
        self,
        blast_id: UUID,
        batch_number: int,
        limit: int
    ) -> List[BlastRecipient]:
        """Atomically take up to `limit` pending recipients (now queued) for sending"""
        require_non_negative(batch_number, "batch_number")
        require_positive(limit, "limit")

        connection = None
        try:
            connection = await get_db_connection()
            recipient_repo = BlastRecipientRepository(connection)

            claimed = await recipient_repo.claim_pending_recipients(blast_id, batch_number, limit)
            logger.info(f"Claimed {len(claimed)} recipients of blast {blast_id} batch {batch_number}")
            return claimed
        finally:
            if connection:
                await release_db_connection(connection)

    async def list_recipients(
        self,
        blast_id: UUID,
        page: Optional[int] = None,
        limit: Optional[int] = None
    ) -> BlastRecipientPage:
        page, limit, offset = normalize_page(
            page, limit, settings.default_page_size, settings.max_page_size
        )

        connection = None
        try:
            connection = await get_db_connection()
            recipient_repo = BlastRecipientRepository(connection)

            recipients = await recipient_repo.get_recipients_by_blast(blast_id, limit, offset)
            total = await recipient_repo.count_recipients(blast_id)

            return BlastRecipientPage(
                recipients=recipients,
                total=total,
                page=page,
                limit=limit,
                total_pages=total_pages(total, limit)
            )
        finally:
            if connection:
                await release_db_connection(connection)

    async def get_recipients_by_batch(self, blast_id: UUID, batch_number: int) -> List[BlastRecipient]:
        connection = None
        try:
            connection = await get_db_connection()
            recipient_repo = BlastRecipientRepository(connection)

            return await recipient_repo.get_recipients_by_batch(blast_id, batch_number)
        finally:
            if connection:
                await release_db_connection(connection)

    async def update_recipient_status(
        self,
        recipient_id: UUID,
        status: RecipientStatus,
        email_log_id: Optional[UUID] = None,
        error_message: Optional[str] = None
    ) -> None:
        """Record a delivery outcome reported by the sender"""
        status = parse_recipient_status(status)

        connection = None
        try:
            connection = await get_db_connection()
            recipient_repo = BlastRecipientRepository(connection)

            updated = await recipient_repo.update_recipient_status(
                recipient_id, status, email_log_id, error_message
            )
            if not updated:
                raise RecipientNotFoundError(recipient_id)
        finally:
            if connection:
                await release_db_connection(connection)

    async def get_recipient_stats(self, blast_id: UUID) -> BlastRecipientStats:
        connection = None
        try:
            connection = await get_db_connection()
            recipient_repo = BlastRecipientRepository(connection)

            return await recipient_repo.get_recipient_stats(blast_id)
        finally:
            if connection:
                await release_db_connection(connection)

    async def count_recipients(self, blast_id: UUID) -> int:
        connection = None
        try:
            connection = await get_db_connection()
            recipient_repo = BlastRecipientRepository(connection)

            return await recipient_repo.count_recipients(blast_id)
        finally:
            if connection:
                await release_db_connection(connection)

    async def count_recipients_by_status(self, blast_id: UUID, status: RecipientStatus) -> int:
        status = parse_recipient_status(status)

        connection = None
        try:
            connection = await get_db_connection()
            recipient_repo = BlastRecipientRepository(connection)

            return await recipient_repo.count_recipients_by_status(blast_id, status)
        finally:
            if connection:
                await release_db_connection(connection)

    async def get_max_batch_number(self, blast_id: UUID) -> int:
        """Highest batch index assigned so far, 0 when the blast has no recipients"""
        connection = None
        try:
            connection = await get_db_connection()
            recipient_repo = BlastRecipientRepository(connection)

            return await recipient_repo.get_max_batch_number(blast_id)
        finally:
            if connection:
                await release_db_connection(connection)

blast_recipient_service = BlastRecipientService()
