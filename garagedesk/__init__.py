import logging

from flask import Flask, current_app, get_flashed_messages, jsonify
from flask_caching import Cache
from flask_login import LoginManager, current_user

from config import Config

from .errors import GarageDeskError
from .mutations import MutationGuard

cache = Cache()
login_manager = LoginManager()

logger = logging.getLogger(__name__)


def _current_token():
    if current_user and current_user.is_authenticated:
        return current_user.token
    return current_app.config.get("API_TOKEN")


def create_app(config_object=Config, gateway=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))

    cache.init_app(app)
    login_manager.init_app(app)

    from .gateway import ApiGateway
    from .repository import Repository

    if gateway is None:
        gateway = ApiGateway(
            app.config["API_BASE_URL"],
            timeout=app.config.get("API_TIMEOUT", 10),
            token_provider=_current_token,
        )

    app.extensions["garagedesk"] = {
        "gateway": gateway,
        "repository": Repository(gateway, cache, timeout=app.config.get("CACHE_DEFAULT_TIMEOUT")),
        "guard": MutationGuard(),
    }

    # Blueprints
    from .auth.routes import auth_bp
    from .quotations.routes import quotations_bp
    from .invoices.routes import invoices_bp
    from .payments.routes import payments_bp
    from .inventory.routes import inventory_bp
    from .jobcards.routes import jobcards_bp
    from .clients.routes import clients_bp
    from .vehicles.routes import vehicles_bp
    from .cli import register_cli

    app.register_blueprint(auth_bp)
    app.register_blueprint(quotations_bp, url_prefix="/quotations")
    app.register_blueprint(invoices_bp, url_prefix="/invoices")
    app.register_blueprint(payments_bp, url_prefix="/payments")
    app.register_blueprint(inventory_bp, url_prefix="/inventory")
    app.register_blueprint(jobcards_bp, url_prefix="/jobcards")
    app.register_blueprint(clients_bp, url_prefix="/clients")
    app.register_blueprint(vehicles_bp, url_prefix="/vehicles")

    register_cli(app)

    from .utils import error_response

    @app.errorhandler(GarageDeskError)
    def handle_app_error(e):
        return error_response(e)

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error("unhandled error", exc_info=getattr(e, "original_exception", None))
        return error_response(None, "Something went wrong. Please try again.")

    @app.route("/notifications")
    def notifications():
        msgs = get_flashed_messages(with_categories=True)
        return jsonify([{"category": c, "message": m} for c, m in msgs])

    @app.route("/")
    def home():
        return jsonify({"app": "garagedesk", "authenticated": current_user.is_authenticated})

    return app
