from decimal import Decimal

import pytest

from garagedesk.errors import ValidationError
from garagedesk.services.money import (
    compute_totals, line_total, quantize_money, require_items, subtotal, to_decimal,
    totals_as_dict,
)


def test_two_items_with_tax_stays_exact():
    t = compute_totals([{"quantity": 2, "unitPrice": 45.99}], tax_rate=15)
    assert t.subtotal == Decimal("91.98")
    assert t.tax_amount == Decimal("13.797")
    assert t.discount_amount == 0
    assert t.total_amount == Decimal("105.777")


BASKETS = [
    [{"quantity": 2, "unitPrice": 45.99}, {"quantity": "0.5", "unitPrice": "19.99"},
     {"quantity": 3, "unitPrice": "0.10"}],
    [{"quantity": 1, "unitPrice": "1000"}, {"quantity": 7, "unitPrice": "0.01"}],
    [{"quantity": "1.333", "unitPrice": "3.33"}, {"quantity": 4, "unitPrice": 12.5},
     {"quantity": 1, "unitPrice": "0"}, {"quantity": 9, "unitPrice": "99.99"}],
]


@pytest.mark.parametrize("items", BASKETS)
def test_item_order_does_not_change_totals(items):
    forward = compute_totals(items, tax_rate="15", discount_percentage="7.5")
    backward = compute_totals(list(reversed(items)), tax_rate="15", discount_percentage="7.5")
    rotated = compute_totals(items[1:] + items[:1], tax_rate="15", discount_percentage="7.5")
    assert forward == backward == rotated


@pytest.mark.parametrize("items", BASKETS)
def test_totals_are_repeatable(items):
    first = compute_totals(items, tax_rate="15", discount_percentage="10")
    second = compute_totals(items, tax_rate="15", discount_percentage="10")
    assert first == second
    assert totals_as_dict(first, rounded=True) == totals_as_dict(second, rounded=True)


def test_display_rounding_is_half_up_to_cents():
    t = compute_totals([{"quantity": 2, "unitPrice": "45.99"}], tax_rate="15")
    assert totals_as_dict(t, rounded=True) == {
        "subtotal": "91.98",
        "taxAmount": "13.80",
        "discountAmount": "0.00",
        "totalAmount": "105.78",
    }
    assert quantize_money("0.005") == Decimal("0.01")


def test_discount_and_tax_are_both_taken_from_subtotal():
    t = compute_totals([{"quantity": 1, "unitPrice": 200}], tax_rate=10, discount_percentage=5)
    assert t.tax_amount == Decimal("20")
    assert t.discount_amount == Decimal("10")
    assert t.total_amount == Decimal("210")


def test_full_discount_leaves_only_tax():
    t = compute_totals([{"quantity": 1, "unitPrice": 100}], tax_rate=15, discount_percentage=100)
    assert t.total_amount == Decimal("15")


def test_zero_quantity_line_is_zero():
    assert line_total(0, "99.99") == 0
    assert subtotal([]) == 0


def test_items_can_be_models_or_dicts():
    class Row:
        quantity = Decimal("3")
        unit_price = Decimal("1.10")

    assert subtotal([Row(), {"quantity": "1", "unit_price": "0.70"}]) == Decimal("4.00")


@pytest.mark.parametrize("rate", [-1, "100.01", 250])
def test_percentages_outside_range_rejected(rate):
    with pytest.raises(ValidationError) as exc:
        compute_totals([{"quantity": 1, "unitPrice": 1}], tax_rate=rate)
    assert "taxRate" in exc.value.fields


def test_negative_price_rejected():
    with pytest.raises(ValidationError) as exc:
        line_total(1, "-5")
    assert exc.value.fields == {"unitPrice": "negative"}


@pytest.mark.parametrize("raw", [None, "", "  ", "abc", "NaN", "Infinity", True])
def test_unparseable_numbers_rejected(raw):
    with pytest.raises(ValidationError):
        to_decimal(raw, "amount")


def test_float_input_goes_through_str():
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal("1,250.50") == Decimal("1250.50")


def test_require_items():
    with pytest.raises(ValidationError) as exc:
        require_items([])
    assert exc.value.fields == {"items": "required"}
    assert require_items([1]) == [1]
