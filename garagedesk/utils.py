import logging
from datetime import date

from flask import current_app, flash, jsonify, request, session
from flask_login import current_user, logout_user

from .errors import (
    AuthenticationError, ConflictError, GarageDeskError, MutationInFlightError, NetworkError,
    NotFoundError, ValidationError,
)
from .viewstate import ViewState, envelope

logger = logging.getLogger(__name__)


def ext(name: str):
    return current_app.extensions["garagedesk"][name]


def repo():
    return ext("repository")


def guard():
    return ext("guard")


def form_data() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _clean(s):
    return (s or "").strip()


def parse_date(raw, field: str):
    raw = _clean(raw)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD).", fields={field: "invalid"})


def dump(record):
    return record.model_dump(mode="json", by_alias=True)


def ok(data=None, message=None, status=200, state=None, **extra):
    if message:
        flash(message, "success")
    return jsonify(envelope(data, state, **extra)), status


def error_response(exc, fallback="Something went wrong."):
    """
    Turn a failure into a toast plus a JSON body; views never raise past here.
    """
    if exc is None:
        flash(fallback, "danger")
        return jsonify(envelope(None, ViewState.ERROR, error=fallback, retry=True)), 500

    message = str(exc) or fallback
    body = {"error": message, "kind": type(exc).__name__}

    if isinstance(exc, ValidationError):
        flash(message, "danger")
        body["fields"] = exc.fields
        body["remote"] = exc.remote
        state = ViewState.ERROR
    elif isinstance(exc, NotFoundError):
        state = ViewState.NOT_FOUND
    elif isinstance(exc, (ConflictError, MutationInFlightError)):
        flash(message, "warning")
        state = ViewState.ERROR
    elif isinstance(exc, AuthenticationError):
        # token rejected by the API: drop the local session too
        flash(message, "danger")
        if current_user.is_authenticated:
            session.pop("operator", None)
            logout_user()
        state = ViewState.ERROR
    elif isinstance(exc, NetworkError):
        flash(message, "danger")
        body["retry"] = True
        state = ViewState.ERROR
    else:
        flash(message, "danger")
        state = ViewState.ERROR

    status = exc.status_code if isinstance(exc, GarageDeskError) else 500
    return jsonify(envelope(None, state, **body)), status
