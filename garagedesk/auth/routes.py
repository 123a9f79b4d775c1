from flask import Blueprint, jsonify, session
from flask_login import UserMixin, current_user, login_required, login_user, logout_user

from .. import login_manager
from ..errors import GarageDeskError, ValidationError
from ..utils import error_response, ext, form_data, ok
from ..viewstate import ViewState, envelope

auth_bp = Blueprint("auth", __name__)

SESSION_KEY = "operator"


class SessionUser(UserMixin):
    """Signed-in operator; the API token travels with the Flask session."""

    def __init__(self, id, name="", role=None, token=None):
        self.id = id
        self.name = name
        self.role = role
        self.token = token

    def to_session(self):
        return {"id": self.id, "name": self.name, "role": self.role, "token": self.token}


@login_manager.user_loader
def load_user(user_id):
    data = session.get(SESSION_KEY)
    if data and str(data.get("id")) == str(user_id):
        return SessionUser(**data)
    return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify(envelope(None, ViewState.ERROR, error="Please sign in.")), 401


@auth_bp.route("/login", methods=["POST"])
def login():
    data = form_data()
    username = (data.get("username") or data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    try:
        if not username or not password:
            raise ValidationError("Username and password are required.",
                                  fields={"username": "required", "password": "required"})
        result = ext("gateway").authenticate(username, password)
    except GarageDeskError as e:
        return error_response(e)

    user = SessionUser(result.user_id, name=result.name, role=result.role, token=result.access_token)
    session[SESSION_KEY] = user.to_session()
    login_user(user)
    return ok({"id": user.id, "name": user.name, "role": user.role})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    session.pop(SESSION_KEY, None)
    logout_user()
    return ok(None, state=ViewState.IDLE)


@auth_bp.route("/me")
@login_required
def me():
    return ok({"id": current_user.id, "name": current_user.name, "role": current_user.role})
