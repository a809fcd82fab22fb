# Overview: Order line pricing formulas shared by lines, discounts and totals.

"""
Line pricing

    line_base  = unit_price * qty
    line_tax   = line_base * tax_rate_pct / 100
    line_total = line_base + line_tax

Values are exact decimals; nothing here rounds. The inputs are the
snapshots stored on the line, so the result never changes after the line
is created.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..money import ZERO, percent_of, to_decimal


@dataclass(frozen=True)
class LineAmounts:
    base: Decimal
    tax: Decimal
    total: Decimal


def line_amounts(unit_price, qty, tax_rate_pct) -> LineAmounts:
    base = to_decimal(unit_price, field="unit_price") * to_decimal(qty, field="qty")
    tax = percent_of(base, to_decimal(tax_rate_pct, field="tax_rate_pct"))
    return LineAmounts(base=base, tax=tax, total=base + tax)


def amounts_for_line(line) -> LineAmounts:
    return line_amounts(line.unit_price_snapshot, line.qty, line.tax_rate_snapshot_pct)


def unit_price_for(catalog_item, option=None) -> Decimal:
    """Current unit price: base price plus the option's modifier."""
    price = to_decimal(catalog_item.base_price, field="base_price")
    if option is not None:
        price += to_decimal(option.price_modifier or ZERO, field="price_modifier")
    return price
