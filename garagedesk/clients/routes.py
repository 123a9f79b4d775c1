import logging

from flask import Blueprint, request
from flask_login import login_required

from ..errors import GarageDeskError
from ..mutations import run_mutation
from ..schemas import ClientPayload, parse
from ..services.projections import filter_records, search_records
from ..utils import dump, error_response, form_data, guard, ok, repo

logger = logging.getLogger(__name__)

clients_bp = Blueprint("clients", __name__)

SEARCH_FIELDS = ("client_name", "client_surname", "company", "phone", "email")


def _clean(s):
    return (s or "").strip()


@clients_bp.route("/", methods=["GET"])
@login_required
def list_clients():
    try:
        rows = repo().list("clients")
    except GarageDeskError as e:
        return error_response(e)

    rows = filter_records(rows, gender=_clean(request.args.get("gender")).upper() or None)
    rows = search_records(rows, _clean(request.args.get("q") or request.args.get("search")),
                          SEARCH_FIELDS)
    rows.sort(key=lambda c: (c.client_surname.lower(), c.client_name.lower()))
    return ok([dump(c) for c in rows])


@clients_bp.route("/<client_id>", methods=["GET"])
@login_required
def view_client(client_id):
    try:
        c = repo().get("clients", client_id)
    except GarageDeskError as e:
        return error_response(e)
    return ok(dump(c))


@clients_bp.route("/", methods=["POST"])
@login_required
def create_client():
    r = repo()
    try:
        payload = parse(ClientPayload, form_data())
        c = run_mutation(r, guard(), "clients", None, f"create:{payload.phone}",
                         lambda: r.gateway.create_record("clients", payload))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("create client failed")
        return error_response(None, "Failed to create client.")
    return ok(dump(c), message="Client created ✅", status=201)


@clients_bp.route("/<client_id>", methods=["PUT"])
@login_required
def edit_client(client_id):
    r = repo()
    try:
        payload = parse(ClientPayload, form_data())
        c = run_mutation(r, guard(), "clients", client_id, "update",
                         lambda: r.gateway.update_record("clients", client_id, payload))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("update client %s failed", client_id)
        return error_response(None, "Failed to update client.")
    return ok(dump(c), message="Client updated ✅")
