import logging

from flask import Blueprint, request
from flask_login import login_required

from ..errors import GarageDeskError, NotFoundError, ValidationError
from ..mutations import run_mutation
from ..schemas import JobCardPayload, parse
from ..services.lifecycle import (
    JobCardAction, JobCardState, jobcard_name, jobcard_state, next_jobcard_state,
)
from ..services.projections import filter_records, search_records
from ..utils import dump, error_response, form_data, guard, ok, repo

logger = logging.getLogger(__name__)

jobcards_bp = Blueprint("jobcards", __name__)

SEARCH_FIELDS = ("job_card_name", "job_card_number", "client_name", "vehicle_name")

_TRUE = {"1", "true", "yes", "on"}


def _view(card):
    body = dump(card)
    body["state"] = jobcard_state(card).value
    return body


def _flag(raw):
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in _TRUE


def _lookup(kind, record_id):
    if not record_id:
        return None
    try:
        return repo().get(kind, record_id)
    except NotFoundError:
        return None


def _payload(data):
    data = dict(data)
    if not (data.get("jobCardName") or "").strip():
        client = _lookup("clients", data.get("clientId"))
        vehicle = _lookup("vehicles", data.get("vehicleId"))
        data["jobCardName"] = jobcard_name(client, vehicle)
    return parse(JobCardPayload, data)


@jobcards_bp.route("/", methods=["GET"])
@login_required
def list_jobcards():
    args = request.args
    try:
        rows = repo().list("jobcards")
    except GarageDeskError as e:
        return error_response(e)

    rows = filter_records(
        rows,
        client_id=args.get("clientId") or None,
        vehicle_id=args.get("vehicleId") or None,
        service_advisor_id=args.get("serviceAdvisorId") or None,
        supervisor_id=args.get("supervisorId") or None,
        priority=_flag(args.get("priority")),
    )
    state = (args.get("state") or "").strip().upper()
    if state:
        rows = [c for c in rows if jobcard_state(c).value == state]
    rows = search_records(rows, args.get("search"), SEARCH_FIELDS)
    return ok([_view(c) for c in rows])


@jobcards_bp.route("/<card_id>", methods=["GET"])
@login_required
def view_jobcard(card_id):
    try:
        card = repo().get("jobcards", card_id)
    except GarageDeskError as e:
        return error_response(e)
    return ok(_view(card))


@jobcards_bp.route("/", methods=["POST"])
@login_required
def create_jobcard():
    r = repo()
    try:
        payload = _payload(form_data())
        card = run_mutation(r, guard(), "jobcards", None, f"create:{payload.vehicle_id}",
                            lambda: r.gateway.create_record("jobcards", payload))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("create job card failed")
        return error_response(None, "Failed to create job card.")
    return ok(_view(card), message="Job card opened ✅", status=201)


@jobcards_bp.route("/<card_id>", methods=["PUT"])
@login_required
def edit_jobcard(card_id):
    r = repo()
    try:
        current = r.get("jobcards", card_id)
        if jobcard_state(current) == JobCardState.CLOSED:
            raise ValidationError("Closed job cards cannot be edited.",
                                  fields={"state": JobCardState.CLOSED.value})
        payload = _payload(form_data())
        card = run_mutation(r, guard(), "jobcards", card_id, "update",
                            lambda: r.gateway.update_record("jobcards", card_id, payload))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("update job card %s failed", card_id)
        return error_response(None, "Failed to update job card.")
    return ok(_view(card), message="Job card updated ✅")


# -------------------------
# State actions
# -------------------------
def _act(card_id, action: JobCardAction, call, message):
    r = repo()
    try:
        current = r.get("jobcards", card_id)
        next_jobcard_state(current, action)
        card = run_mutation(r, guard(), "jobcards", card_id, action.value, call)
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("job card %s %s failed", card_id, action.value)
        return error_response(None, "Failed to update job card.")
    return ok(_view(card), message=message)


@jobcards_bp.route("/<card_id>/freeze", methods=["POST"])
@login_required
def freeze(card_id):
    reason = form_data().get("reason")
    return _act(card_id, JobCardAction.FREEZE,
                lambda: repo().gateway.freeze_jobcard(card_id, reason), "Job card frozen.")


@jobcards_bp.route("/<card_id>/unfreeze", methods=["POST"])
@login_required
def unfreeze(card_id):
    return _act(card_id, JobCardAction.UNFREEZE,
                lambda: repo().gateway.unfreeze_jobcard(card_id), "Job card reopened ✅")


@jobcards_bp.route("/<card_id>/close", methods=["POST"])
@login_required
def close(card_id):
    notes = form_data().get("notes")
    return _act(card_id, JobCardAction.CLOSE,
                lambda: repo().gateway.close_jobcard(card_id, notes), "Job card closed ✅")


@jobcards_bp.route("/<card_id>/priority", methods=["POST"])
@login_required
def set_priority(card_id):
    r = repo()
    priority = bool(_flag(form_data().get("priority")))
    try:
        current = r.get("jobcards", card_id)
        if jobcard_state(current) == JobCardState.CLOSED:
            raise ValidationError("Closed job cards cannot change priority.",
                                  fields={"state": JobCardState.CLOSED.value})
        card = run_mutation(r, guard(), "jobcards", card_id, "priority",
                            lambda: r.gateway.set_priority(card_id, priority))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("priority change on job card %s failed", card_id)
        return error_response(None, "Failed to change priority.")
    return ok(_view(card), message="Priority updated.")
