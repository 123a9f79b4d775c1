from collections import namedtuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..errors import ValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

DocumentTotals = namedtuple(
    "DocumentTotals", ["subtotal", "tax_amount", "discount_amount", "total_amount"]
)


def to_decimal(val, field: str = "value") -> Decimal:
    """
    Parse a money/quantity input into a Decimal.

    Floats go through str() so 45.99 stays 45.99. Blank, unparseable and
    non-finite inputs are rejected.
    """
    if isinstance(val, Decimal):
        d = val
    elif isinstance(val, bool) or val is None:
        raise ValidationError(f"{field} is required.", fields={field: "required"})
    else:
        s = str(val).strip().replace(",", "")
        if s == "":
            raise ValidationError(f"{field} is required.", fields={field: "required"})
        try:
            d = Decimal(s)
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number.", fields={field: "invalid"})
    if not d.is_finite():
        raise ValidationError(f"{field} must be a number.", fields={field: "invalid"})
    return d


def _non_negative(val, field: str) -> Decimal:
    d = to_decimal(val, field)
    if d < 0:
        raise ValidationError(f"{field} must not be negative.", fields={field: "negative"})
    return d


def _percent(val, field: str) -> Decimal:
    d = to_decimal(ZERO if val is None else val, field)
    if d < 0 or d > HUNDRED:
        raise ValidationError(f"{field} must be between 0 and 100.", fields={field: "range"})
    return d


def _item_value(item, *names):
    for name in names:
        if isinstance(item, dict):
            if name in item:
                return item[name]
        elif hasattr(item, name):
            return getattr(item, name)
    return None


def line_total(quantity, unit_price) -> Decimal:
    qty = _non_negative(quantity, "quantity")
    price = _non_negative(unit_price, "unitPrice")
    return qty * price


def subtotal(items) -> Decimal:
    total = ZERO
    for it in items:
        total += line_total(
            _item_value(it, "quantity"),
            _item_value(it, "unit_price", "unitPrice"),
        )
    return total


def compute_totals(items, tax_rate=0, discount_percentage=0) -> DocumentTotals:
    """
    Document totals from line items.

    Tax and discount are both taken from the subtotal; the discount does not
    reduce the taxable amount. Results are exact, round with quantize_money()
    only for display.
    """
    tax = _percent(tax_rate, "taxRate")
    discount = _percent(discount_percentage, "discountPercentage")

    sub = subtotal(items)
    tax_amount = sub * tax / HUNDRED
    discount_amount = sub * discount / HUNDRED
    return DocumentTotals(
        subtotal=sub,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        total_amount=sub + tax_amount - discount_amount,
    )


def require_items(items):
    if not items:
        raise ValidationError("At least one item is required.", fields={"items": "required"})
    return items


def quantize_money(val) -> Decimal:
    return to_decimal(val).quantize(CENT, rounding=ROUND_HALF_UP)


def totals_as_dict(totals: DocumentTotals, rounded: bool = False) -> dict:
    conv = quantize_money if rounded else (lambda v: v)
    return {
        "subtotal": str(conv(totals.subtotal)),
        "taxAmount": str(conv(totals.tax_amount)),
        "discountAmount": str(conv(totals.discount_amount)),
        "totalAmount": str(conv(totals.total_amount)),
    }
