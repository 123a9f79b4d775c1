from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from conftest import client_rec, invoice, jobcard, quotation, vehicle
from garagedesk.errors import IllegalTransitionError
from garagedesk.services.lifecycle import (
    InvoiceAction, InvoiceStatus, JobCardAction, JobCardState, QuotationAction,
    QuotationStatus, allowed_quotation_actions, can_delete_invoice, can_edit_quotation,
    days_overdue, expiry_info, invoice_display_status, is_expiring_soon,
    is_invoice_overdue, jobcard_name, jobcard_state, mark_paid_warning, next_invoice_status,
    next_jobcard_state, next_quotation_status, quotation_display_status,
)

TODAY = date(2024, 6, 15)


# -------------------------
# Quotations
# -------------------------
@pytest.mark.parametrize("current, action, expected", [
    ("DRAFT", "send", QuotationStatus.PENDING),
    ("PENDING", "approve", QuotationStatus.APPROVED),
    ("PENDING", "reject", QuotationStatus.REJECTED),
    ("APPROVED", "convert", QuotationStatus.CONVERTED),
])
def test_quotation_happy_path(current, action, expected):
    assert next_quotation_status(current, action) == expected


@pytest.mark.parametrize("current, action", [
    ("DRAFT", "approve"),
    ("DRAFT", "convert"),
    ("REJECTED", "approve"),
    ("CONVERTED", "convert"),
    ("EXPIRED", "approve"),
    ("APPROVED", "send"),
])
def test_quotation_illegal_transitions(current, action):
    with pytest.raises(IllegalTransitionError) as exc:
        next_quotation_status(current, action)
    assert exc.value.current == QuotationStatus(current)


def test_quotation_cannot_be_converted_twice():
    with pytest.raises(IllegalTransitionError):
        next_quotation_status("APPROVED", QuotationAction.CONVERT, converted_to_job_card=True)
    assert allowed_quotation_actions("APPROVED", converted_to_job_card=True) == []
    assert allowed_quotation_actions("PENDING") == ["approve", "reject"]


def test_only_draft_and_pending_are_editable():
    assert can_edit_quotation("DRAFT")
    assert can_edit_quotation("PENDING")
    for s in ("APPROVED", "REJECTED", "EXPIRED", "CONVERTED"):
        assert not can_edit_quotation(s)


def test_pending_past_valid_until_displays_expired():
    q = quotation(status="PENDING", validUntil=(TODAY - timedelta(days=1)).isoformat())
    assert quotation_display_status(q, TODAY) == QuotationStatus.EXPIRED
    # stored status is untouched
    assert q.status == QuotationStatus.PENDING
    assert expiry_info(q, TODAY)["status"] == "expired"


def test_valid_until_today_is_not_expired():
    q = quotation(status="PENDING", validUntil=TODAY.isoformat())
    assert quotation_display_status(q, TODAY) == QuotationStatus.PENDING
    assert is_expiring_soon(q, TODAY)


def test_approved_quotation_never_expires():
    q = quotation(status="APPROVED", validUntil=(TODAY - timedelta(days=10)).isoformat())
    assert quotation_display_status(q, TODAY) == QuotationStatus.APPROVED


def test_expiry_messages():
    soon = quotation(status="PENDING", validUntil=(TODAY + timedelta(days=1)).isoformat())
    later = quotation(status="PENDING", validUntil=(TODAY + timedelta(days=20)).isoformat())
    assert expiry_info(soon, TODAY) == {"status": "expiring-soon", "message": "Expires in 1 day"}
    assert expiry_info(later, TODAY) == {"status": "valid", "message": "Valid for 20 more days"}
    assert expiry_info(quotation(validUntil=None), TODAY)["status"] == "no-expiry"


# -------------------------
# Invoices
# -------------------------
@pytest.mark.parametrize("current, action, expected", [
    ("DRAFT", "send", InvoiceStatus.SENT),
    ("SENT", "pay", InvoiceStatus.PAID),
    ("OVERDUE", "pay", InvoiceStatus.PAID),
    ("SENT", InvoiceAction.MARK_PAID, InvoiceStatus.PAID),
    ("DRAFT", "cancel", InvoiceStatus.CANCELLED),
    ("OVERDUE", "cancel", InvoiceStatus.CANCELLED),
    ("PAID", "reopen", InvoiceStatus.SENT),
])
def test_invoice_transitions(current, action, expected):
    assert next_invoice_status(current, action) == expected


@pytest.mark.parametrize("current, action", [
    ("DRAFT", "pay"),
    ("DRAFT", "mark-paid"),
    ("PAID", "cancel"),
    ("CANCELLED", "send"),
    ("CANCELLED", "pay"),
    ("SENT", "send"),
])
def test_invoice_illegal_transitions(current, action):
    with pytest.raises(IllegalTransitionError):
        next_invoice_status(current, action)


def test_mark_paid_warning_only_with_open_balance():
    assert mark_paid_warning(0) is None
    assert "outstanding balance of 12.50" in mark_paid_warning(Decimal("12.50"))


def test_only_drafts_can_be_deleted():
    assert can_delete_invoice("DRAFT")
    assert not can_delete_invoice("SENT")
    assert not can_delete_invoice(InvoiceStatus.PAID)


def test_overdue_is_computed_from_due_date():
    inv = invoice(status="SENT", dueDate=(TODAY - timedelta(days=4)).isoformat())
    assert is_invoice_overdue(inv, TODAY)
    assert invoice_display_status(inv, TODAY) == InvoiceStatus.OVERDUE
    assert days_overdue(inv, TODAY) == 4


def test_due_today_is_not_overdue():
    inv = invoice(status="SENT", dueDate=TODAY.isoformat())
    assert not is_invoice_overdue(inv, TODAY)
    assert days_overdue(inv, TODAY) == 0


def test_paid_and_draft_are_never_overdue():
    past = (TODAY - timedelta(days=30)).isoformat()
    assert invoice_display_status(invoice(status="PAID", dueDate=past), TODAY) == InvoiceStatus.PAID
    assert invoice_display_status(invoice(status="DRAFT", dueDate=past), TODAY) == InvoiceStatus.DRAFT


def test_stored_overdue_with_future_due_date_shows_sent():
    inv = invoice(status="OVERDUE", dueDate=(TODAY + timedelta(days=5)).isoformat())
    assert invoice_display_status(inv, TODAY) == InvoiceStatus.SENT


# -------------------------
# Job cards
# -------------------------
def test_jobcard_state_from_timestamps():
    assert jobcard_state(jobcard()) == JobCardState.OPEN
    assert jobcard_state(jobcard(dateAndTimeFrozen=datetime(2024, 1, 1))) == JobCardState.FROZEN
    closed = jobcard(dateAndTimeFrozen=datetime(2024, 1, 1), dateAndTimeClosed=datetime(2024, 1, 2))
    assert jobcard_state(closed) == JobCardState.CLOSED


def test_jobcard_transitions():
    card = jobcard()
    assert next_jobcard_state(card, JobCardAction.FREEZE) == JobCardState.FROZEN
    assert next_jobcard_state(card, "close") == JobCardState.CLOSED
    with pytest.raises(IllegalTransitionError):
        next_jobcard_state(card, "unfreeze")

    frozen = jobcard(dateAndTimeFrozen=datetime(2024, 1, 1))
    assert next_jobcard_state(frozen, "unfreeze") == JobCardState.OPEN
    with pytest.raises(IllegalTransitionError):
        next_jobcard_state(frozen, "close")


def test_jobcard_default_name():
    assert jobcard_name(client_rec(), vehicle()) == "Tendai Moyo - Toyota Hilux ABC1234"
    assert jobcard_name(None, vehicle()) == "Toyota Hilux ABC1234"
    assert jobcard_name(None, None) == "Job Card"
