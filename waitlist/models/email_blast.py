# waitlist/models/email_blast.py
from pydantic import BaseModel, EmailStr
from typing import Optional, List
from datetime import datetime
from enum import Enum
from uuid import UUID

class BlastStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    SENDING = "sending"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

class RecipientStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"
    BOUNCED = "bounced"
    FAILED = "failed"

class EmailBlast(BaseModel):
    id: UUID
    campaign_id: UUID
    segment_id: UUID
    template_id: UUID
    name: str
    subject: str

    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    status: BlastStatus

    total_recipients: int = 0
    sent_count: int = 0
    delivered_count: int = 0
    opened_count: int = 0
    clicked_count: int = 0
    bounced_count: int = 0
    failed_count: int = 0

    batch_size: int
    current_batch: int = 0
    last_batch_at: Optional[datetime] = None
    error_message: Optional[str] = None

    send_throttle_per_second: Optional[int] = None
    created_by: Optional[UUID] = None

    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

class BlastRecipient(BaseModel):
    id: UUID
    blast_id: UUID
    user_id: UUID
    email: str
    status: RecipientStatus
    email_log_id: Optional[UUID] = None

    queued_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None
    bounced_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    error_message: Optional[str] = None
    batch_number: Optional[int] = None

    created_at: datetime
    updated_at: datetime

class WaitlistUser(BaseModel):
    """The slice of a waitlist user a blast needs: who, and where to mail them"""
    id: UUID
    email: EmailStr

class CreateEmailBlastParams(BaseModel):
    campaign_id: UUID
    segment_id: UUID
    template_id: UUID
    name: str
    subject: str
    scheduled_at: Optional[datetime] = None
    batch_size: Optional[int] = None
    send_throttle_per_second: Optional[int] = None
    created_by: Optional[UUID] = None

class UpdateEmailBlastParams(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    batch_size: Optional[int] = None

class BlastRecipientStats(BaseModel):
    total: int = 0
    pending: int = 0
    queued: int = 0
    sending: int = 0
    sent: int = 0
    delivered: int = 0
    opened: int = 0
    clicked: int = 0
    bounced: int = 0
    failed: int = 0

class BlastAnalytics(BaseModel):
    blast_id: UUID
    name: str
    status: BlastStatus
    total_recipients: int
    sent: int
    delivered: int
    opened: int
    clicked: int
    bounced: int
    failed: int
    open_rate: float = 0.0
    click_rate: float = 0.0
    bounce_rate: float = 0.0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None

class EmailBlastPage(BaseModel):
    blasts: List[EmailBlast]
    total: int
    page: int
    limit: int
    total_pages: int

class BlastRecipientPage(BaseModel):
    recipients: List[BlastRecipient]
    total: int
    page: int
    limit: int
    total_pages: int
