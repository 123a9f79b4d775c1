"""
Derived views over collections already fetched from the API.

Everything here is a pure function of its inputs; nothing is cached or
fetched.
"""
from decimal import Decimal
from enum import Enum

from ..errors import ValidationError
from .lifecycle import (
    InvoiceStatus, QuotationStatus,
    invoice_display_status, is_expiring_soon, is_invoice_overdue,
    is_quotation_expired,
)
from .money import ZERO, to_decimal


class StockStatus(str, Enum):
    HEALTHY = "healthy"
    LOW = "low"
    OUT = "out"


class AdjustmentType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


def _get(rec, key):
    if isinstance(rec, dict):
        return rec.get(key)
    return getattr(rec, key, None)


def _plain(val):
    return val.value if isinstance(val, Enum) else val


# -------------------------
# Generic filters
# -------------------------
def filter_records(records, **criteria):
    """Attribute equality, all criteria ANDed. None criteria are ignored."""
    active = {k: _plain(v) for k, v in criteria.items() if v is not None}
    return [r for r in records
            if all(_plain(_get(r, k)) == v for k, v in active.items())]


def search_records(records, term, fields):
    term = (term or "").strip().lower()
    if not term:
        return list(records)
    out = []
    for r in records:
        for f in fields:
            val = _get(r, f)
            if val is not None and term in str(val).lower():
                out.append(r)
                break
    return out


def in_date_range(records, field, date_from=None, date_to=None):
    out = []
    for r in records:
        val = _get(r, field)
        if val is None:
            continue
        if date_from and val < date_from:
            continue
        if date_to and val > date_to:
            continue
        out.append(r)
    return out


# -------------------------
# Invoices
# -------------------------
def overdue_invoices(invoices, today=None):
    return [inv for inv in invoices if is_invoice_overdue(inv, today)]


def recent_invoices(invoices, limit: int = 10):
    def _key(inv):
        return inv.created_at.timestamp() if inv.created_at else float("-inf")

    return sorted(invoices, key=_key, reverse=True)[:limit]


def collection_rate(paid_amount, total_amount) -> Decimal:
    total = to_decimal(total_amount, "totalAmount")
    if total == 0:
        return ZERO
    return to_decimal(paid_amount, "paidAmount") / total * 100


def invoice_summary(invoices, today=None) -> dict:
    counts = {s.value: 0 for s in InvoiceStatus}
    total_amount = paid = pending = overdue = ZERO

    for inv in invoices:
        shown = invoice_display_status(inv, today)
        counts[shown.value] += 1
        if shown == InvoiceStatus.CANCELLED:
            continue

        total = inv.totals().total_amount
        total_amount += total
        paid += inv.paid_amount
        if shown in (InvoiceStatus.SENT, InvoiceStatus.OVERDUE):
            balance = max(total - inv.paid_amount, ZERO)
            pending += balance
            if shown == InvoiceStatus.OVERDUE:
                overdue += balance

    return {
        "totalInvoices": len(invoices),
        "totalAmount": total_amount,
        "paidAmount": paid,
        "pendingAmount": pending,
        "overdueAmount": overdue,
        "collectionRate": collection_rate(paid, total_amount),
        "counts": counts,
    }


# -------------------------
# Quotations
# -------------------------
def quotation_metrics(quotations, today=None, within_days: int = 3) -> dict:
    n = len(quotations)
    expired = [q for q in quotations if is_quotation_expired(q, today)]
    expiring = [q for q in quotations if is_expiring_soon(q, today, within_days)]
    approved = [q for q in quotations if QuotationStatus(q.status) == QuotationStatus.APPROVED]
    converted = [q for q in quotations if q.converted_to_job_card]

    def _value(rows):
        return sum((q.totals().total_amount for q in rows), ZERO)

    return {
        "total": n,
        "expired": len(expired),
        "expiringSoon": len(expiring),
        "approved": len(approved),
        "converted": len(converted),
        "totalValue": _value(quotations),
        "approvedValue": _value(approved),
        "convertedValue": _value(converted),
        "conversionRate": (Decimal(len(converted)) / n * 100) if n else ZERO,
        "approvalRate": (Decimal(len(approved)) / n * 100) if n else ZERO,
    }


# -------------------------
# Inventory
# -------------------------
def stock_status(stock_level: int, min_stock_level: int) -> StockStatus:
    if stock_level <= 0:
        return StockStatus.OUT
    if stock_level <= min_stock_level:
        return StockStatus.LOW
    return StockStatus.HEALTHY


def product_stock_status(product) -> StockStatus:
    return stock_status(product.stock_level, product.min_stock_level)


def low_stock_products(products):
    return [p for p in products if product_stock_status(p) == StockStatus.LOW]


def out_of_stock_products(products):
    return [p for p in products if product_stock_status(p) == StockStatus.OUT]


def inventory_metrics(products) -> dict:
    value = ZERO
    for p in products:
        cost = p.cost_price if p.cost_price is not None else p.unit_price
        value += to_decimal(cost, "costPrice") * p.stock_level
    return {
        "totalProducts": len(products),
        "lowStock": len(low_stock_products(products)),
        "outOfStock": len(out_of_stock_products(products)),
        "stockValue": value,
    }


def preview_stock_adjustment(current: int, adjustment_type, quantity: int) -> int:
    """
    Client-side preview only; the API applies the adjustment and its result
    is what gets displayed afterwards.
    """
    kind = AdjustmentType(adjustment_type)
    try:
        qty = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("Quantity must be a whole number.", fields={"quantity": "invalid"})

    if kind == AdjustmentType.IN:
        return current + abs(qty)
    if kind == AdjustmentType.OUT:
        return max(0, current - abs(qty))
    return max(0, qty)
