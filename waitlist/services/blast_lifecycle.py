# waitlist/services/blast_lifecycle.py
"""Email blast state machine.

Every legal blast status change is listed in TRANSITIONS; services check
here before writing a new status.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from waitlist.errors import InvalidStateTransition
from waitlist.models.email_blast import BlastStatus
import logging

logger = logging.getLogger(__name__)


class BlastEvent(str, Enum):
    SCHEDULE = "schedule"
    START = "start"
    BEGIN_SENDING = "begin_sending"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"
    FAIL = "fail"
    CANCEL = "cancel"


# event -> (allowed source statuses, resulting status)
TRANSITIONS: Dict[BlastEvent, Tuple[FrozenSet[BlastStatus], BlastStatus]] = {
    BlastEvent.SCHEDULE: (
        frozenset({BlastStatus.DRAFT}),
        BlastStatus.SCHEDULED,
    ),
    BlastEvent.START: (
        frozenset({BlastStatus.DRAFT, BlastStatus.SCHEDULED}),
        BlastStatus.PROCESSING,
    ),
    BlastEvent.BEGIN_SENDING: (
        frozenset({BlastStatus.PROCESSING, BlastStatus.PAUSED}),
        BlastStatus.SENDING,
    ),
    BlastEvent.PAUSE: (
        frozenset({BlastStatus.PROCESSING, BlastStatus.SENDING}),
        BlastStatus.PAUSED,
    ),
    BlastEvent.RESUME: (
        frozenset({BlastStatus.PAUSED}),
        BlastStatus.SENDING,
    ),
    BlastEvent.COMPLETE: (
        frozenset({BlastStatus.PROCESSING, BlastStatus.SENDING}),
        BlastStatus.COMPLETED,
    ),
    BlastEvent.FAIL: (
        frozenset({BlastStatus.SCHEDULED, BlastStatus.PROCESSING, BlastStatus.SENDING, BlastStatus.PAUSED}),
        BlastStatus.FAILED,
    ),
    BlastEvent.CANCEL: (
        frozenset({
            BlastStatus.DRAFT,
            BlastStatus.SCHEDULED,
            BlastStatus.PROCESSING,
            BlastStatus.SENDING,
            BlastStatus.PAUSED,
        }),
        BlastStatus.CANCELLED,
    ),
}

ACTIVE_STATUSES = frozenset({BlastStatus.PROCESSING, BlastStatus.SENDING})

# Soft delete is refused only while mail is going out
DELETABLE_STATUSES = frozenset(set(BlastStatus) - ACTIVE_STATUSES)

EDITABLE_STATUSES = frozenset({BlastStatus.DRAFT})


def initial_status(scheduled_at: Optional[datetime]) -> BlastStatus:
    """A blast with a send time starts out scheduled, otherwise as a draft"""
    return BlastStatus.SCHEDULED if scheduled_at is not None else BlastStatus.DRAFT


def next_status(current: BlastStatus, event: BlastEvent) -> BlastStatus:
    """Apply an event to the current status or raise InvalidStateTransition"""
    current = BlastStatus(current)
    sources, target = TRANSITIONS[BlastEvent(event)]
    if current not in sources:
        logger.warning(f"Rejected {BlastEvent(event).value} of email blast in status {current.value}")
        raise InvalidStateTransition(
            current.value,
            target.value,
            f"cannot {BlastEvent(event).value} an email blast in status '{current.value}'"
        )
    return target


def allowed_targets(current: BlastStatus) -> FrozenSet[BlastStatus]:
    current = BlastStatus(current)
    return frozenset(target for sources, target in TRANSITIONS.values() if current in sources)


def check_transition(current: BlastStatus, target: BlastStatus) -> BlastStatus:
    """Validate a direct status overwrite against the transition table"""
    current = BlastStatus(current)
    target = BlastStatus(target)
    if target not in allowed_targets(current):
        logger.warning(f"Rejected email blast status change {current.value} -> {target.value}")
        raise InvalidStateTransition(current.value, target.value)
    return target


def check_deletable(current: BlastStatus) -> None:
    current = BlastStatus(current)
    if current not in DELETABLE_STATUSES:
        logger.warning(f"Rejected delete of email blast in status {current.value}")
        raise InvalidStateTransition(
            current.value,
            "deleted",
            f"cannot delete an email blast while it is '{current.value}'"
        )


def check_editable(current: BlastStatus) -> None:
    current = BlastStatus(current)
    if current not in EDITABLE_STATUSES:
        raise InvalidStateTransition(
            current.value,
            current.value,
            f"cannot modify an email blast in status '{current.value}'"
        )
