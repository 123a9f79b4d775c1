"""
Payment reconciliation against an invoice.

The balance is never stored: it is recomputed from the invoice total and the
list of payments every time it is read.
"""
from collections import namedtuple

from ..errors import IllegalTransitionError, NotFoundError, ValidationError
from .lifecycle import INVOICE_OPEN, InvoiceAction, InvoiceStatus, next_invoice_status
from .money import ZERO, to_decimal

REFUNDED = "REFUNDED"

PaymentCheck = namedtuple("PaymentCheck", ["amount", "balance", "warning"])


def is_refunded(payment) -> bool:
    return (payment.status or "").upper() == REFUNDED


def amount_paid(payments):
    total = ZERO
    for p in payments:
        if not is_refunded(p):
            total += to_decimal(p.amount, "amount")
    return total


def invoice_paid(invoice):
    """
    Paid amount of an invoice record. Recomputed from its payments when they
    are loaded; list rows only carry the server's running ``amountPaid``.
    """
    if invoice.payments or invoice.reported_paid is None:
        return amount_paid(invoice.payments)
    return to_decimal(invoice.reported_paid, "amountPaid")


def balance_due(total_amount, payments):
    """Raw arithmetic; negative on overpayment."""
    return to_decimal(total_amount, "totalAmount") - amount_paid(payments)


def outstanding(total_amount, payments):
    """Balance as shown to the user, never below zero."""
    return max(balance_due(total_amount, payments), ZERO)


def payment_progress(total_amount, payments):
    total = to_decimal(total_amount, "totalAmount")
    if total == 0:
        return ZERO
    return amount_paid(payments) / total * 100


def check_payment(status, total_amount, payments, amount) -> PaymentCheck:
    """
    Hard checks: amount > 0 and the invoice is open for payment.
    Soft check: an amount above the balance only produces a warning.
    """
    amt = to_decimal(amount, "amount")
    if amt <= 0:
        raise ValidationError("Amount must be greater than 0.", fields={"amount": "positive"})

    status = InvoiceStatus(status)
    if status not in INVOICE_OPEN:
        raise IllegalTransitionError("invoice", status, InvoiceAction.PAY)

    balance = balance_due(total_amount, payments)
    warning = None
    if amt > balance:
        warning = f"Payment exceeds the balance due of {max(balance, ZERO)}."
    return PaymentCheck(amount=amt, balance=balance, warning=warning)


def record_payment(invoice, payment):
    """
    Returns (updated invoice, warning). The invoice moves to PAID once the
    balance reaches zero.
    """
    total = invoice.totals().total_amount
    check = check_payment(invoice.status, total, invoice.payments, payment.amount)

    payments = list(invoice.payments) + [payment]
    status = InvoiceStatus(invoice.status)
    if balance_due(total, payments) <= 0:
        status = next_invoice_status(status, InvoiceAction.PAY)

    return invoice.model_copy(update={"payments": payments, "status": status}), check.warning


def refund_payment(invoice, payment_id):
    """
    Marks one payment refunded. A PAID invoice whose balance re-opens goes
    back to SENT; any other status is kept.
    """
    payments = []
    found = False
    for p in invoice.payments:
        if p.payment_id == payment_id:
            if is_refunded(p):
                raise ValidationError("Payment has already been refunded.",
                                      fields={"paymentId": "refunded"})
            p = p.model_copy(update={"status": REFUNDED})
            found = True
        payments.append(p)

    if not found:
        raise NotFoundError(f"Payment {payment_id} not found on this invoice.")

    status = InvoiceStatus(invoice.status)
    total = invoice.totals().total_amount
    if status == InvoiceStatus.PAID and balance_due(total, payments) > 0:
        status = next_invoice_status(status, InvoiceAction.REOPEN)

    return invoice.model_copy(update={"payments": payments, "status": status})
