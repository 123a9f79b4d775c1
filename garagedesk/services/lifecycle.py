"""
Status lifecycles for quotations, invoices and job cards.

Guards run before any request reaches the API. A rejected transition raises
IllegalTransitionError and leaves the record untouched; the API re-validates
and its refusal is reported the same way.
"""
from datetime import date, timedelta
from enum import Enum

from ..errors import IllegalTransitionError


class QuotationStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CONVERTED = "CONVERTED"


class QuotationAction(str, Enum):
    SEND = "send"
    APPROVE = "approve"
    REJECT = "reject"
    CONVERT = "convert"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class InvoiceAction(str, Enum):
    SEND = "send"
    PAY = "pay"                # balance reached zero through payments
    MARK_PAID = "mark-paid"    # explicit action, allowed with an open balance
    CANCEL = "cancel"
    REOPEN = "reopen"          # a refund re-opened the balance


class JobCardState(str, Enum):
    OPEN = "OPEN"
    FROZEN = "FROZEN"
    CLOSED = "CLOSED"


class JobCardAction(str, Enum):
    FREEZE = "freeze"
    UNFREEZE = "unfreeze"
    CLOSE = "close"


QUOTATION_TRANSITIONS = {
    (QuotationStatus.DRAFT, QuotationAction.SEND): QuotationStatus.PENDING,
    (QuotationStatus.PENDING, QuotationAction.APPROVE): QuotationStatus.APPROVED,
    (QuotationStatus.PENDING, QuotationAction.REJECT): QuotationStatus.REJECTED,
    (QuotationStatus.APPROVED, QuotationAction.CONVERT): QuotationStatus.CONVERTED,
}

# OVERDUE may come back stored by the API; it behaves like SENT.
INVOICE_TRANSITIONS = {
    (InvoiceStatus.DRAFT, InvoiceAction.SEND): InvoiceStatus.SENT,
    (InvoiceStatus.SENT, InvoiceAction.PAY): InvoiceStatus.PAID,
    (InvoiceStatus.OVERDUE, InvoiceAction.PAY): InvoiceStatus.PAID,
    (InvoiceStatus.SENT, InvoiceAction.MARK_PAID): InvoiceStatus.PAID,
    (InvoiceStatus.OVERDUE, InvoiceAction.MARK_PAID): InvoiceStatus.PAID,
    (InvoiceStatus.DRAFT, InvoiceAction.CANCEL): InvoiceStatus.CANCELLED,
    (InvoiceStatus.SENT, InvoiceAction.CANCEL): InvoiceStatus.CANCELLED,
    (InvoiceStatus.OVERDUE, InvoiceAction.CANCEL): InvoiceStatus.CANCELLED,
    (InvoiceStatus.PAID, InvoiceAction.REOPEN): InvoiceStatus.SENT,
}

JOBCARD_TRANSITIONS = {
    (JobCardState.OPEN, JobCardAction.FREEZE): JobCardState.FROZEN,
    (JobCardState.FROZEN, JobCardAction.UNFREEZE): JobCardState.OPEN,
    (JobCardState.OPEN, JobCardAction.CLOSE): JobCardState.CLOSED,
}

QUOTATION_EDITABLE = {QuotationStatus.DRAFT, QuotationStatus.PENDING}
INVOICE_OPEN = {InvoiceStatus.SENT, InvoiceStatus.OVERDUE}


def _today(today=None) -> date:
    return today or date.today()


# -------------------------
# Quotations
# -------------------------
def next_quotation_status(current, action, converted_to_job_card: bool = False) -> QuotationStatus:
    current = QuotationStatus(current)
    action = QuotationAction(action)

    if action == QuotationAction.CONVERT and converted_to_job_card:
        raise IllegalTransitionError("quotation", current, action)

    nxt = QUOTATION_TRANSITIONS.get((current, action))
    if nxt is None:
        raise IllegalTransitionError("quotation", current, action)
    return nxt


def allowed_quotation_actions(current, converted_to_job_card: bool = False):
    current = QuotationStatus(current)
    out = []
    for (state, action) in QUOTATION_TRANSITIONS:
        if state != current:
            continue
        if action == QuotationAction.CONVERT and converted_to_job_card:
            continue
        out.append(action.value)
    return out


def can_edit_quotation(status) -> bool:
    return QuotationStatus(status) in QUOTATION_EDITABLE


def is_quotation_expired(q, today=None) -> bool:
    if QuotationStatus(q.status) != QuotationStatus.PENDING or not q.valid_until:
        return False
    return q.valid_until < _today(today)


def quotation_display_status(q, today=None) -> QuotationStatus:
    if is_quotation_expired(q, today):
        return QuotationStatus.EXPIRED
    return QuotationStatus(q.status)


def days_until_expiry(q, today=None):
    if not q.valid_until:
        return None
    return (q.valid_until - _today(today)).days


def is_expiring_soon(q, today=None, within_days: int = 3) -> bool:
    if QuotationStatus(q.status) != QuotationStatus.PENDING or not q.valid_until:
        return False
    t = _today(today)
    return t <= q.valid_until <= t + timedelta(days=within_days)


def expiry_info(q, today=None, within_days: int = 3) -> dict:
    if not q.valid_until:
        return {"status": "no-expiry", "message": "No expiry date"}

    if is_quotation_expired(q, today):
        return {"status": "expired", "message": "Expired"}

    days = days_until_expiry(q, today)
    plural = "s" if days != 1 else ""
    if is_expiring_soon(q, today, within_days):
        return {"status": "expiring-soon", "message": f"Expires in {days} day{plural}"}

    if days and days > 0:
        return {"status": "valid", "message": f"Valid for {days} more day{plural}"}
    return {"status": "valid", "message": "Valid"}


# -------------------------
# Invoices
# -------------------------
def next_invoice_status(current, action) -> InvoiceStatus:
    current = InvoiceStatus(current)
    action = InvoiceAction(action)

    nxt = INVOICE_TRANSITIONS.get((current, action))
    if nxt is None:
        raise IllegalTransitionError("invoice", current, action)
    return nxt


def mark_paid_warning(balance):
    if balance is not None and balance > 0:
        return f"Invoice marked as paid with an outstanding balance of {balance}."
    return None


def can_delete_invoice(status) -> bool:
    return InvoiceStatus(status) == InvoiceStatus.DRAFT


def is_invoice_overdue(inv, today=None) -> bool:
    if InvoiceStatus(inv.status) not in INVOICE_OPEN or not inv.due_date:
        return False
    return inv.due_date < _today(today)


def invoice_display_status(inv, today=None) -> InvoiceStatus:
    if is_invoice_overdue(inv, today):
        return InvoiceStatus.OVERDUE
    status = InvoiceStatus(inv.status)
    # a stored OVERDUE whose due date has moved is shown as SENT again
    if status == InvoiceStatus.OVERDUE:
        return InvoiceStatus.SENT
    return status


def days_overdue(inv, today=None) -> int:
    if not is_invoice_overdue(inv, today):
        return 0
    return (_today(today) - inv.due_date).days


# -------------------------
# Job cards
# -------------------------
def jobcard_state(card) -> JobCardState:
    if card.date_and_time_closed:
        return JobCardState.CLOSED
    if card.date_and_time_frozen:
        return JobCardState.FROZEN
    return JobCardState.OPEN


def next_jobcard_state(card, action) -> JobCardState:
    current = jobcard_state(card)
    action = JobCardAction(action)

    nxt = JOBCARD_TRANSITIONS.get((current, action))
    if nxt is None:
        raise IllegalTransitionError("job card", current, action)
    return nxt


def jobcard_name(client, vehicle) -> str:
    """Default job card name, e.g. "Tendai Moyo - Toyota Hilux ABC1234"."""
    parts = []
    if client is not None:
        who = " ".join(p for p in (client.client_name, client.client_surname) if p)
        if who:
            parts.append(who)
    if vehicle is not None:
        what = " ".join(
            str(p) for p in (vehicle.make, vehicle.model, vehicle.registration_number) if p
        )
        if what:
            parts.append(what)
    return " - ".join(parts) or "Job Card"
