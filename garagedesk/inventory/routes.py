import logging
from datetime import datetime

from flask import Blueprint, flash, request
from flask_login import current_user, login_required

from ..errors import GarageDeskError, ValidationError
from ..mutations import run_mutation
from ..schemas import ProductPayload, StockAdjustmentPayload, parse
from ..services.money import quantize_money
from ..services.projections import (
    AdjustmentType, StockStatus, inventory_metrics, low_stock_products, out_of_stock_products,
    preview_stock_adjustment, product_stock_status, search_records,
)
from ..utils import dump, error_response, form_data, guard, ok, repo

logger = logging.getLogger(__name__)

inventory_bp = Blueprint("inventory", __name__)

SEARCH_FIELDS = ("product_code", "product_name", "description", "category_name")


def _view(p):
    body = dump(p)
    body["stockStatus"] = product_stock_status(p).value
    return body


def _adjustment_type(raw):
    try:
        return AdjustmentType((raw or "").strip().upper())
    except ValueError:
        raise ValidationError("Adjustment type must be IN, OUT or ADJUSTMENT.",
                              fields={"adjustmentType": "invalid"})


@inventory_bp.route("/products", methods=["GET"])
@login_required
def list_products():
    try:
        rows = repo().list("products")
    except GarageDeskError as e:
        return error_response(e)

    wanted = (request.args.get("stockStatus") or "").strip().lower()
    if wanted:
        rows = [p for p in rows if product_stock_status(p).value == wanted]
    category = request.args.get("category")
    if category:
        rows = [p for p in rows if (p.category_name or "").lower() == category.lower()]
    rows = search_records(rows, request.args.get("search"), SEARCH_FIELDS)
    return ok([_view(p) for p in rows])


@inventory_bp.route("/products/low-stock", methods=["GET"])
@login_required
def low_stock():
    try:
        rows = repo().list("products")
    except GarageDeskError as e:
        return error_response(e)
    return ok({
        "low": [_view(p) for p in low_stock_products(rows)],
        "out": [_view(p) for p in out_of_stock_products(rows)],
    })


@inventory_bp.route("/metrics", methods=["GET"])
@login_required
def metrics():
    try:
        rows = repo().list("products")
    except GarageDeskError as e:
        return error_response(e)
    m = inventory_metrics(rows)
    m["stockValue"] = str(quantize_money(m["stockValue"]))
    return ok(m)


@inventory_bp.route("/products/<product_id>", methods=["GET"])
@login_required
def view_product(product_id):
    try:
        p = repo().get("products", product_id)
    except GarageDeskError as e:
        return error_response(e)
    return ok(_view(p))


@inventory_bp.route("/products", methods=["POST"])
@login_required
def create_product():
    r = repo()
    try:
        payload = parse(ProductPayload, form_data())
        p = run_mutation(r, guard(), "products", None, f"create:{payload.product_code}",
                         lambda: r.gateway.create_record("products", payload))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("create product failed")
        return error_response(None, "Failed to create product.")
    return ok(_view(p), message="Product added ✅", status=201)


@inventory_bp.route("/products/<product_id>", methods=["PUT"])
@login_required
def edit_product(product_id):
    r = repo()
    try:
        payload = parse(ProductPayload, form_data())
        p = run_mutation(r, guard(), "products", product_id, "update",
                         lambda: r.gateway.update_record("products", product_id, payload))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("update product %s failed", product_id)
        return error_response(None, "Failed to update product.")
    return ok(_view(p), message="Product updated ✅")


# -------------------------
# Stock adjustments
# -------------------------
@inventory_bp.route("/products/<product_id>/adjust/preview", methods=["POST"])
@login_required
def adjust_preview(product_id):
    data = form_data()
    try:
        kind = _adjustment_type(data.get("adjustmentType"))
        p = repo().get("products", product_id)
        projected = preview_stock_adjustment(p.stock_level, kind, data.get("quantity"))
    except GarageDeskError as e:
        return error_response(e)
    return ok({
        "current": p.stock_level,
        "projected": projected,
        "stockStatus": product_stock_status(p.model_copy(update={"stock_level": projected})).value,
    })


@inventory_bp.route("/products/<product_id>/adjust", methods=["POST"])
@login_required
def adjust_stock(product_id):
    r = repo()
    data = dict(form_data())
    data["productId"] = product_id
    data["adjustmentType"] = _clean_type(data.get("adjustmentType"))
    data.setdefault("adjustmentDate", datetime.now().isoformat(timespec="seconds"))
    if not data.get("adjustedBy") and current_user.is_authenticated:
        data["adjustedBy"] = current_user.name or str(current_user.id)

    try:
        payload = parse(StockAdjustmentPayload, data)
        p = run_mutation(r, guard(), "products", product_id, "adjust",
                         lambda: r.gateway.adjust_stock(payload))
    except GarageDeskError as e:
        return error_response(e)
    except Exception:
        logger.exception("stock adjustment on %s failed", product_id)
        return error_response(None, "Failed to adjust stock.")

    status = product_stock_status(p)
    if status == StockStatus.OUT:
        flash(f"{p.product_name} is now out of stock.", "warning")
    elif status == StockStatus.LOW:
        flash(f"{p.product_name} is below its minimum stock level.", "warning")
    return ok(_view(p), message="Stock adjusted ✅")


def _clean_type(raw):
    return (raw or "").strip().upper() if isinstance(raw, str) else raw
