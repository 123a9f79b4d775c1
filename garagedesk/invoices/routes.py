import logging
import re
from datetime import date, timedelta

from flask import Blueprint, current_app, flash, request
from flask_login import login_required

from ..errors import GarageDeskError, ValidationError
from ..mutations import run_mutation
from ..schemas import InvoicePayload, parse
from ..services.lifecycle import (
    InvoiceAction, can_delete_invoice, days_overdue, invoice_display_status,
    mark_paid_warning, next_invoice_status,
)
from ..services.money import compute_totals, quantize_money, require_items, totals_as_dict
from ..services.projections import (
    filter_records, in_date_range, invoice_summary, overdue_invoices, recent_invoices,
    search_records,
)
from ..utils import dump, error_response, form_data, guard, ok, parse_date, repo
from ..viewstate import ViewState

logger = logging.getLogger(__name__)

invoices_bp = Blueprint("invoices", __name__)

SEARCH_FIELDS = ("invoice_number", "client_name", "vehicle_info", "notes")


def invoice_view(inv):
    """Invoice as JSON with its derived money figures (display-rounded)."""
    totals = inv.totals()
    body = dump(inv)
    body.update(totals_as_dict(totals, rounded=True))
    for row, item in zip(body["items"], inv.items):
        row["totalPrice"] = str(item.total_price)
    body["amountPaid"] = str(quantize_money(inv.paid_amount))
    body["balanceDue"] = str(quantize_money(inv.outstanding))
    body["paymentProgress"] = str(quantize_money(inv.payment_progress))
    body["displayStatus"] = invoice_display_status(inv).value
    body["daysOverdue"] = days_overdue(inv)
    body["canDelete"] = can_delete_invoice(inv.status)
    return body


def _money(d: dict) -> dict:
    return {k: (str(quantize_money(v)) if k.endswith("Amount") or k.endswith("Rate") else v)
            for k, v in d.items()}


def _terms_days(terms) -> int:
    m = re.search(r"(\d+)", terms or "")
    return int(m.group(1)) if m else 0


def _payload(data, apply_defaults=True):
    data = dict(data)
    if apply_defaults:
        if data.get("taxRate") in (None, "") and data.get("tax_rate") in (None, ""):
            data["taxRate"] = current_app.config.get("DEFAULT_TAX_RATE", "15")
        terms = data.get("paymentTerms") or current_app.config.get("DEFAULT_PAYMENT_TERMS", "Net 30")
        data["paymentTerms"] = terms

        inv_date = parse_date(data.get("invoiceDate"), "invoiceDate") or date.today()
        data["invoiceDate"] = inv_date.isoformat()
        if not data.get("dueDate"):
            data["dueDate"] = (inv_date + timedelta(days=_terms_days(terms))).isoformat()

    payload = parse(InvoicePayload, data)
    require_items(payload.items)
    compute_totals(payload.items, payload.tax_rate, payload.discount_percentage)
    return payload


# -------------------------
# Lists & dashboard
# -------------------------
@invoices_bp.route("/", methods=["GET"])
@login_required
def list_invoices():
    status = (request.args.get("status") or "").strip().upper()
    try:
        date_from = parse_date(request.args.get("dateFrom"), "dateFrom")
        date_to = parse_date(request.args.get("dateTo"), "dateTo")
        rows = repo().list("invoices")
    except GarageDeskError as e:
        return error_response(e)

    rows = filter_records(rows, client_id=request.args.get("clientId") or None)
    if status:
        rows = [inv for inv in rows if invoice_display_status(inv).value == status]
    if date_from or date_to:
        rows = in_date_range(rows, "invoice_date", date_from, date_to)
    rows = search_records(rows, request.args.get("search"), SEARCH_FIELDS)
    return ok([invoice_view(inv) for inv in rows])


@invoices_bp.route("/dashboard", methods=["GET"])
@login_required
def dashboard():
    try:
        rows = repo().list("invoices")
    except GarageDeskError as e:
        return error_response(e)

    limit = current_app.config.get("RECENT_INVOICES_LIMIT", 10)
    return ok({
        "summary": _money(invoice_summary(rows)),
        "overdue": [invoice_view(inv) for inv in overdue_invoices(rows)],
        "recent": [invoice_view(inv) for inv in recent_invoices(rows, limit)],
    })


# -------------------------
# Single invoice
# -------------------------
@invoices_bp.route("/<invoice_id>", methods=["GET"])
@login_required
def view_invoice(invoice_id):
    try:
        inv = repo().invoice_with_payments(invoice_id)
    except GarageDeskError as e:
        return error_response(e)
    return ok(invoice_view(inv))


@invoices_bp.route("/", methods=["POST"])
@login_required
def create_invoice():
    r = repo()
    try:
        payload = _payload(form_data())
        inv = run_mutation(r, guard(), "invoices", None, f"create:{payload.client_id}",
                           lambda: r.gateway.create_record("invoices", payload))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("create invoice failed")
        return error_response(None, "Failed to create invoice.")
    return ok(invoice_view(inv), message="Invoice created (Draft) ✅", status=201)


@invoices_bp.route("/<invoice_id>", methods=["PUT"])
@login_required
def edit_invoice(invoice_id):
    # no status guard here: the API decides which invoices may still change
    r = repo()
    try:
        payload = _payload(form_data(), apply_defaults=False)
        inv = run_mutation(r, guard(), "invoices", invoice_id, "update",
                           lambda: r.gateway.update_record("invoices", invoice_id, payload))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("update invoice %s failed", invoice_id)
        return error_response(None, "Failed to update invoice.")
    return ok(invoice_view(inv), message="Invoice updated ✅")


@invoices_bp.route("/<invoice_id>", methods=["DELETE"])
@login_required
def delete_invoice(invoice_id):
    r = repo()
    try:
        current = r.get("invoices", invoice_id)
        if not can_delete_invoice(current.status):
            raise ValidationError("Only draft invoices can be deleted.",
                                  fields={"status": current.status.value})
        run_mutation(r, guard(), "invoices", invoice_id, "delete",
                     lambda: r.gateway.delete_record("invoices", invoice_id))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("delete invoice %s failed", invoice_id)
        return error_response(None, "Failed to delete invoice.")
    return ok(None, message="Invoice deleted.", state=ViewState.IDLE)


# -------------------------
# Status actions
# -------------------------
@invoices_bp.route("/<invoice_id>/send", methods=["POST"])
@login_required
def send_invoice(invoice_id):
    r = repo()

    def _send(new_status):
        r.gateway.send_invoice(invoice_id)
        return r.gateway.transition_status("invoices", invoice_id, new_status)

    try:
        current = r.get("invoices", invoice_id)
        new_status = next_invoice_status(current.status, InvoiceAction.SEND)
        run_mutation(r, guard(), "invoices", invoice_id, InvoiceAction.SEND.value,
                     lambda: _send(new_status))
        inv = r.invoice_with_payments(invoice_id)
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("send invoice %s failed", invoice_id)
        return error_response(None, "Failed to send invoice.")
    return ok(invoice_view(inv), message="Invoice sent ✅")


@invoices_bp.route("/<invoice_id>/mark-paid", methods=["POST"])
@login_required
def mark_paid(invoice_id):
    r = repo()
    try:
        current = r.invoice_with_payments(invoice_id)
        new_status = next_invoice_status(current.status, InvoiceAction.MARK_PAID)
        warning = mark_paid_warning(quantize_money(current.outstanding))
        notes = form_data().get("notes")
        run_mutation(r, guard(), "invoices", invoice_id, InvoiceAction.MARK_PAID.value,
                     lambda: r.gateway.transition_status("invoices", invoice_id, new_status, notes))
        inv = r.invoice_with_payments(invoice_id)
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("mark invoice %s paid failed", invoice_id)
        return error_response(None, "Failed to mark invoice as paid.")

    if warning:
        flash(warning, "warning")
    return ok(invoice_view(inv), message="Invoice marked as paid ✅", warning=warning)


@invoices_bp.route("/<invoice_id>/cancel", methods=["POST"])
@login_required
def cancel_invoice(invoice_id):
    r = repo()
    try:
        current = r.get("invoices", invoice_id)
        new_status = next_invoice_status(current.status, InvoiceAction.CANCEL)
        notes = form_data().get("notes")
        run_mutation(r, guard(), "invoices", invoice_id, InvoiceAction.CANCEL.value,
                     lambda: r.gateway.transition_status("invoices", invoice_id, new_status, notes))
        inv = r.invoice_with_payments(invoice_id)
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("cancel invoice %s failed", invoice_id)
        return error_response(None, "Failed to cancel invoice.")
    return ok(invoice_view(inv), message="Invoice cancelled.")
