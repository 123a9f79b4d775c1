import logging

from flask import Blueprint, request
from flask_login import login_required

from ..errors import GarageDeskError
from ..mutations import run_mutation
from ..schemas import VehiclePayload, parse
from ..services.projections import filter_records, search_records
from ..utils import dump, error_response, form_data, guard, ok, repo

logger = logging.getLogger(__name__)

vehicles_bp = Blueprint("vehicles", __name__)

SEARCH_FIELDS = ("registration_number", "make", "model", "vin_number")


@vehicles_bp.route("/", methods=["GET"])
@login_required
def list_vehicles():
    try:
        rows = repo().list("vehicles")
    except GarageDeskError as e:
        return error_response(e)

    rows = filter_records(rows, client_id=request.args.get("clientId") or None)
    make = (request.args.get("make") or "").strip().lower()
    if make:
        rows = [v for v in rows if (v.make or "").lower() == make]
    rows = search_records(rows, request.args.get("search"), SEARCH_FIELDS)
    return ok([dump(v) for v in rows])


@vehicles_bp.route("/<vehicle_id>", methods=["GET"])
@login_required
def view_vehicle(vehicle_id):
    try:
        v = repo().get("vehicles", vehicle_id)
    except GarageDeskError as e:
        return error_response(e)
    return ok(dump(v))


@vehicles_bp.route("/", methods=["POST"])
@login_required
def create_vehicle():
    r = repo()
    try:
        payload = parse(VehiclePayload, form_data())
        # the owner's embedded vehicle list changes too
        v = run_mutation(r, guard(), "vehicles", None, f"create:{payload.client_id}",
                         lambda: r.gateway.create_record("vehicles", payload),
                         also_invalidate=("clients",))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("create vehicle failed")
        return error_response(None, "Failed to create vehicle.")
    r.invalidate("clients", payload.client_id)
    return ok(dump(v), message="Vehicle added ✅", status=201)


@vehicles_bp.route("/<vehicle_id>", methods=["PUT"])
@login_required
def edit_vehicle(vehicle_id):
    r = repo()
    try:
        payload = parse(VehiclePayload, form_data())
        v = run_mutation(r, guard(), "vehicles", vehicle_id, "update",
                         lambda: r.gateway.update_record("vehicles", vehicle_id, payload),
                         also_invalidate=("clients",))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("update vehicle %s failed", vehicle_id)
        return error_response(None, "Failed to update vehicle.")
    r.invalidate("clients", payload.client_id)
    return ok(dump(v), message="Vehicle updated ✅")
