import logging
from datetime import date

from flask import Blueprint, flash
from flask_login import login_required

from ..errors import GarageDeskError
from ..invoices.routes import invoice_view
from ..mutations import run_mutation
from ..schemas import Payment, PaymentMethod, PaymentPayload, parse
from ..services.lifecycle import InvoiceStatus
from ..services import payments as reconcile
from ..utils import dump, error_response, form_data, guard, ok, repo

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__)


@payments_bp.route("/methods", methods=["GET"])
@login_required
def payment_methods():
    return ok([m.value for m in PaymentMethod])


@payments_bp.route("/invoice/<invoice_id>", methods=["GET"])
@login_required
def list_payments(invoice_id):
    try:
        inv = repo().invoice_with_payments(invoice_id)
    except GarageDeskError as e:
        return error_response(e)
    view = invoice_view(inv)
    return ok([dump(p) for p in inv.payments],
              balanceDue=view["balanceDue"], amountPaid=view["amountPaid"],
              paymentProgress=view["paymentProgress"])


@payments_bp.route("/invoice/<invoice_id>", methods=["POST"])
@login_required
def add_payment(invoice_id):
    """
    Record a payment.

    Local checks run first (amount > 0, invoice SENT/OVERDUE). Paying more
    than the balance is allowed with a warning. Once the balance reaches
    zero the invoice is moved to PAID unless the API already did it.
    """
    r = repo()
    data = dict(form_data())
    data["invoiceId"] = invoice_id
    if not data.get("paymentDate"):
        data["paymentDate"] = date.today().isoformat()

    def _submit(payload, settles):
        payment = r.gateway.record_payment(invoice_id, payload)
        if settles:
            fresh = r.gateway.fetch_one("invoices", invoice_id)
            if InvoiceStatus(fresh.status) != InvoiceStatus.PAID:
                r.gateway.transition_status("invoices", invoice_id, InvoiceStatus.PAID,
                                            "Paid in full")
        return payment

    try:
        payload = parse(PaymentPayload, data)
        inv = r.invoice_with_payments(invoice_id)
        pending = Payment(payment_id="pending", invoice_id=invoice_id, amount=payload.amount,
                          payment_method=payload.payment_method, payment_date=payload.payment_date)
        updated, warning = reconcile.record_payment(inv, pending)
        settles = updated.status == InvoiceStatus.PAID
        try:
            payment = run_mutation(r, guard(), "invoices", invoice_id, "pay",
                                   lambda: _submit(payload, settles))
        finally:
            r.invalidate_payments(invoice_id)
        inv = r.invoice_with_payments(invoice_id)
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("record payment on invoice %s failed", invoice_id)
        return error_response(None, "Failed to record payment.")

    if warning:
        flash(warning, "warning")
    return ok(invoice_view(inv), message="Payment recorded ✅", status=201,
              payment=dump(payment), warning=warning)


@payments_bp.route("/invoice/<invoice_id>/refund/<payment_id>", methods=["POST"])
@login_required
def refund(invoice_id, payment_id):
    r = repo()
    reason = form_data().get("reason")

    def _submit(before, after):
        r.gateway.refund_payment(payment_id, reason)
        if after != before:
            r.gateway.transition_status("invoices", invoice_id, after, "Payment refunded")

    try:
        inv = r.invoice_with_payments(invoice_id)
        updated = reconcile.refund_payment(inv, payment_id)
        try:
            run_mutation(r, guard(), "invoices", invoice_id, f"refund:{payment_id}",
                         lambda: _submit(InvoiceStatus(inv.status), InvoiceStatus(updated.status)))
        finally:
            r.invalidate_payments(invoice_id)
        inv = r.invoice_with_payments(invoice_id)
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("refund payment %s failed", payment_id)
        return error_response(None, "Failed to refund payment.")
    return ok(invoice_view(inv), message="Payment refunded.")
