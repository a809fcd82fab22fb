# Overview: Order total aggregation; the single source of truth for the amount due.

"""
Order Total Aggregator

    lines_total        = SUM(line_total)                      (exact)
    net_after_discount = max(0, lines_total - applied_amount)
    due_total          = round_half_up(net_after_discount + tip, 0.01)

due_total() is used both to quote a balance and to gate order closing.
No other module recomputes it.
"""

from __future__ import annotations

from decimal import Decimal

from ..models import Order
from ..money import ZERO, quantize_money, sum_decimal, to_decimal
from .discount_snapshot import parse_snapshot_lenient
from .pricing import amounts_for_line


def lines_total(lines) -> Decimal:
    return sum_decimal(amounts_for_line(line).total for line in lines)


def discount_amount(order: Order) -> Decimal:
    snapshot = parse_snapshot_lenient(order.discount_snapshot, order_id=order.id)
    return snapshot.applied_amount if snapshot else ZERO


def net_after_discount(order: Order) -> Decimal:
    return max(ZERO, lines_total(order.lines) - discount_amount(order))


def due_total(order: Order) -> Decimal:
    """Authoritative amount the order costs (after discount, including tip)."""
    tip = to_decimal(order.tip_amount or ZERO, field="tip_amount")
    return quantize_money(net_after_discount(order) + tip)


def paid_total(order: Order) -> Decimal:
    """Net money received: payments minus refunds."""
    return sum_decimal(to_decimal(p.amount) for p in order.payments)


def refunded_total(order: Order) -> Decimal:
    return sum_decimal(-to_decimal(p.amount) for p in order.payments if p.amount < 0)


def remaining_balance(order: Order) -> Decimal:
    """What is still owed; zero once paid in full or overpaid."""
    return quantize_money(max(ZERO, due_total(order) - paid_total(order)))


def order_summary(order: Order) -> dict:
    snapshot = parse_snapshot_lenient(order.discount_snapshot, order_id=order.id)
    due = due_total(order)
    paid = paid_total(order)
    return {
        "order": order.to_dict(),
        "lines": [line.to_dict() for line in order.lines],
        "discount": snapshot.to_dict() if snapshot else None,
        "lines_total": str(quantize_money(lines_total(order.lines))),
        "discount_amount": str(quantize_money(snapshot.applied_amount if snapshot else ZERO)),
        "tip_amount": str(quantize_money(to_decimal(order.tip_amount or ZERO))),
        "due_total": str(due),
        "paid_total": str(quantize_money(paid)),
        "refunded_total": str(quantize_money(refunded_total(order))),
        "remaining": str(remaining_balance(order)),
        "payments": [p.to_dict() for p in order.payments],
    }
