import logging
from datetime import date, timedelta

from flask import Blueprint, current_app, request
from flask_login import login_required

from ..errors import GarageDeskError, ValidationError
from ..mutations import run_mutation
from ..schemas import QuotationPayload, parse
from ..services.lifecycle import (
    QuotationAction, allowed_quotation_actions, can_edit_quotation, expiry_info,
    next_quotation_status, quotation_display_status,
)
from ..services.money import compute_totals, quantize_money, require_items, totals_as_dict
from ..services.projections import filter_records, quotation_metrics, search_records
from ..utils import dump, error_response, form_data, guard, ok, repo

logger = logging.getLogger(__name__)

quotations_bp = Blueprint("quotations", __name__)

SEARCH_FIELDS = ("quotation_number", "client_name", "client_surname", "vehicle_info", "notes")


def _expiring_days():
    return current_app.config.get("EXPIRING_SOON_DAYS", 3)


def _view(q):
    body = dump(q)
    body.update(totals_as_dict(q.totals(), rounded=True))
    for row, item in zip(body["items"], q.items):
        row["totalPrice"] = str(item.total_price)
    body["displayStatus"] = quotation_display_status(q).value
    body["expiry"] = expiry_info(q, within_days=_expiring_days())
    body["editable"] = can_edit_quotation(q.status)
    body["actions"] = allowed_quotation_actions(q.status, q.converted_to_job_card)
    return body


def _has(data, camel, snake):
    return data.get(camel) not in (None, "") or data.get(snake) not in (None, "")


def _payload(data, apply_defaults=True):
    data = dict(data)
    if apply_defaults:
        if not _has(data, "taxRate", "tax_rate"):
            data["taxRate"] = current_app.config.get("DEFAULT_TAX_RATE", "15")
        if not _has(data, "validUntil", "valid_until"):
            days = current_app.config.get("DEFAULT_QUOTATION_VALID_DAYS", 30)
            data["validUntil"] = (date.today() + timedelta(days=days)).isoformat()

    payload = parse(QuotationPayload, data)
    require_items(payload.items)
    # range and sign checks on the computed figures
    compute_totals(payload.items, payload.tax_rate, payload.discount_percentage)
    return payload


# -------------------------
# Lists & metrics
# -------------------------
@quotations_bp.route("/", methods=["GET"])
@login_required
def list_quotations():
    status = (request.args.get("status") or "").strip().upper()
    try:
        rows = repo().list("quotations")
    except GarageDeskError as e:
        return error_response(e)

    rows = filter_records(rows, client_id=request.args.get("clientId") or None)
    if status:
        rows = [q for q in rows if quotation_display_status(q).value == status]
    rows = search_records(rows, request.args.get("search"), SEARCH_FIELDS)
    return ok([_view(q) for q in rows])


@quotations_bp.route("/metrics", methods=["GET"])
@login_required
def metrics():
    try:
        rows = repo().list("quotations")
    except GarageDeskError as e:
        return error_response(e)
    m = quotation_metrics(rows, within_days=_expiring_days())
    return ok({k: v if isinstance(v, int) else str(quantize_money(v)) for k, v in m.items()})


@quotations_bp.route("/totals", methods=["POST"])
@login_required
def preview_totals():
    data = form_data()
    try:
        totals = compute_totals(
            data.get("items") or [],
            data.get("taxRate", current_app.config.get("DEFAULT_TAX_RATE", "15")),
            data.get("discountPercentage", 0),
        )
    except ValidationError as e:
        return error_response(e)
    return ok({"exact": totals_as_dict(totals), "display": totals_as_dict(totals, rounded=True)})


# -------------------------
# Single quotation
# -------------------------
@quotations_bp.route("/<quotation_id>", methods=["GET"])
@login_required
def view_quotation(quotation_id):
    try:
        q = repo().get("quotations", quotation_id)
    except GarageDeskError as e:
        return error_response(e)
    return ok(_view(q))


@quotations_bp.route("/", methods=["POST"])
@login_required
def create_quotation():
    r = repo()
    try:
        payload = _payload(form_data())
        q = run_mutation(r, guard(), "quotations", None, f"create:{payload.client_id}",
                         lambda: r.gateway.create_record("quotations", payload))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("create quotation failed")
        return error_response(None, "Failed to create quotation.")
    return ok(_view(q), message="Quotation created (Draft) ✅", status=201)


@quotations_bp.route("/<quotation_id>", methods=["PUT", "POST"])
@login_required
def edit_quotation(quotation_id):
    r = repo()
    try:
        current = r.get("quotations", quotation_id)
        if not can_edit_quotation(current.status):
            raise ValidationError("Quotation is locked in its current status.",
                                  fields={"status": current.status.value})
        payload = _payload(form_data(), apply_defaults=False)
        q = run_mutation(r, guard(), "quotations", quotation_id, "update",
                         lambda: r.gateway.update_record("quotations", quotation_id, payload))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("update quotation %s failed", quotation_id)
        return error_response(None, "Failed to update quotation.")
    return ok(_view(q), message="Quotation updated ✅")


# -------------------------
# Status actions
# -------------------------
def _transition(quotation_id, action: QuotationAction):
    r = repo()
    try:
        current = r.get("quotations", quotation_id)
        new_status = next_quotation_status(current.status, action, current.converted_to_job_card)
        notes = form_data().get("notes")
        q = run_mutation(r, guard(), "quotations", quotation_id, action.value,
                         lambda: r.gateway.transition_status("quotations", quotation_id, new_status, notes))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("quotation %s %s failed", quotation_id, action.value)
        return error_response(None, "Failed to update quotation status.")
    return ok(_view(q), message=f"Quotation {new_status.value.lower()} ✅")


@quotations_bp.route("/<quotation_id>/send", methods=["POST"])
@login_required
def send_quotation(quotation_id):
    return _transition(quotation_id, QuotationAction.SEND)


@quotations_bp.route("/<quotation_id>/approve", methods=["POST"])
@login_required
def approve_quotation(quotation_id):
    return _transition(quotation_id, QuotationAction.APPROVE)


@quotations_bp.route("/<quotation_id>/reject", methods=["POST"])
@login_required
def reject_quotation(quotation_id):
    return _transition(quotation_id, QuotationAction.REJECT)


@quotations_bp.route("/<quotation_id>/convert", methods=["POST"])
@login_required
def convert_quotation(quotation_id):
    r = repo()
    try:
        current = r.get("quotations", quotation_id)
        next_quotation_status(current.status, QuotationAction.CONVERT, current.converted_to_job_card)
        job_card_id = form_data().get("jobCardId")
        run_mutation(r, guard(), "quotations", quotation_id, QuotationAction.CONVERT.value,
                     lambda: r.gateway.convert_quotation(quotation_id, job_card_id),
                     also_invalidate=("jobcards",))
        q = r.get("quotations", quotation_id)
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("convert quotation %s failed", quotation_id)
        return error_response(None, "Failed to convert quotation.")
    return ok(_view(q), message="Quotation converted to a job card ✅")
