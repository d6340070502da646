"""Tests for the email blast state machine."""

from datetime import datetime, timezone

import pytest

from waitlist.errors import InvalidStateTransition
from waitlist.models.email_blast import BlastStatus
from waitlist.services.blast_lifecycle import (
    BlastEvent,
    allowed_targets,
    check_deletable,
    check_editable,
    check_transition,
    initial_status,
    next_status,
)


class TestInitialStatus:
    def test_without_send_time_is_draft(self):
        assert initial_status(None) == BlastStatus.DRAFT

    def test_with_send_time_is_scheduled(self):
        assert initial_status(datetime(2030, 1, 1, tzinfo=timezone.utc)) == BlastStatus.SCHEDULED


class TestNextStatus:
    @pytest.mark.parametrize(
        "current,event,expected",
        [
            (BlastStatus.DRAFT, BlastEvent.SCHEDULE, BlastStatus.SCHEDULED),
            (BlastStatus.DRAFT, BlastEvent.START, BlastStatus.PROCESSING),
            (BlastStatus.SCHEDULED, BlastEvent.START, BlastStatus.PROCESSING),
            (BlastStatus.PROCESSING, BlastEvent.BEGIN_SENDING, BlastStatus.SENDING),
            (BlastStatus.SENDING, BlastEvent.PAUSE, BlastStatus.PAUSED),
            (BlastStatus.PAUSED, BlastEvent.RESUME, BlastStatus.SENDING),
            (BlastStatus.SENDING, BlastEvent.COMPLETE, BlastStatus.COMPLETED),
            (BlastStatus.PROCESSING, BlastEvent.FAIL, BlastStatus.FAILED),
            (BlastStatus.SCHEDULED, BlastEvent.CANCEL, BlastStatus.CANCELLED),
            (BlastStatus.PROCESSING, BlastEvent.CANCEL, BlastStatus.CANCELLED),
        ],
    )
    def test_legal_events(self, current, event, expected):
        assert next_status(current, event) == expected

    @pytest.mark.parametrize(
        "current",
        [s for s in BlastStatus if s != BlastStatus.DRAFT],
    )
    def test_schedule_only_from_draft(self, current):
        with pytest.raises(InvalidStateTransition) as exc_info:
            next_status(current, BlastEvent.SCHEDULE)
        assert exc_info.value.current == current.value
        assert exc_info.value.target == "scheduled"

    @pytest.mark.parametrize("terminal", ["completed", "cancelled", "failed"])
    def test_terminal_statuses_have_no_way_out(self, terminal):
        assert allowed_targets(terminal) == frozenset()
        for event in BlastEvent:
            with pytest.raises(InvalidStateTransition):
                next_status(terminal, event)

    def test_accepts_plain_strings(self):
        assert next_status("draft", "schedule") == BlastStatus.SCHEDULED


class TestCheckTransition:
    def test_forward_move_is_allowed(self):
        assert check_transition("processing", "sending") == BlastStatus.SENDING

    def test_backward_move_is_rejected(self):
        with pytest.raises(InvalidStateTransition):
            check_transition("sending", "draft")

    def test_same_status_is_rejected(self):
        with pytest.raises(InvalidStateTransition):
            check_transition("sending", "sending")

    def test_completed_cannot_be_reopened(self):
        with pytest.raises(InvalidStateTransition):
            check_transition("completed", "processing")


class TestDeleteAndEditGuards:
    @pytest.mark.parametrize("status", ["processing", "sending"])
    def test_active_blasts_cannot_be_deleted(self, status):
        with pytest.raises(InvalidStateTransition):
            check_deletable(status)

    @pytest.mark.parametrize(
        "status", ["draft", "scheduled", "paused", "completed", "cancelled", "failed"]
    )
    def test_other_blasts_can_be_deleted(self, status):
        check_deletable(status)

    def test_only_drafts_are_editable(self):
        check_editable("draft")
        with pytest.raises(InvalidStateTransition):
            check_editable("scheduled")
