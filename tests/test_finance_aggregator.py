from __future__ import annotations

import random
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from crmdesk.core.errors import InvalidArgument
from crmdesk.services.finance_aggregator import (
    ZERO,
    aggregate,
    client_profitability,
    margin_percent,
    monthly_trends,
    parse_amount,
    ratio_percent,
    remaining_amount,
    validate_window,
)


def _payment(amount: object, status: str, payment_date: date = date(2026, 1, 15)) -> SimpleNamespace:
    return SimpleNamespace(id=f"pay-{amount}-{status}", amount=amount, status=status, payment_date=payment_date)


def _expense(amount: object, status: str, expense_date: date = date(2026, 1, 20)) -> SimpleNamespace:
    return SimpleNamespace(id=f"exp-{amount}-{status}", amount=amount, status=status, expense_date=expense_date)


def test_realized_only_revenue_expenses_and_margin() -> None:
    metrics = aggregate(
        [_payment(Decimal("100"), "completed"), _payment(Decimal("50"), "pending")],
        [_expense(Decimal("30"), "approved")],
    )

    assert metrics.total_revenue == Decimal("100")
    assert metrics.total_expenses == Decimal("30")
    assert metrics.net_profit == Decimal("70")
    assert metrics.profit_margin == Decimal("70.00")
    assert metrics.payment_count == 1
    assert metrics.expense_count == 1
    assert metrics.warnings == []


def test_zero_revenue_gives_zero_margin() -> None:
    metrics = aggregate([], [_expense(Decimal("10"), "approved")])

    assert metrics.total_revenue == ZERO
    assert metrics.net_profit == Decimal("-10")
    assert metrics.profit_margin == ZERO


def test_empty_inputs_are_all_zero() -> None:
    metrics = aggregate([], [])

    assert metrics.to_dict() == {
        "totalRevenue": "0.00",
        "totalExpenses": "0.00",
        "netProfit": "0.00",
        "profitMargin": "0.00",
        "paymentCount": 0,
        "expenseCount": 0,
    }


def test_non_realized_rows_are_ignored() -> None:
    metrics = aggregate(
        [_payment(Decimal("10"), status) for status in ("pending", "failed", "cancelled", "refunded")],
        [_expense(Decimal("5"), status) for status in ("pending", "rejected")],
    )

    assert metrics.total_revenue == ZERO
    assert metrics.total_expenses == ZERO
    assert metrics.payment_count == 0
    assert metrics.expense_count == 0


def test_result_does_not_depend_on_row_order() -> None:
    payments = [_payment(Decimal(value), "completed") for value in ("12.10", "0.05", "999.99", "40.00")]
    payments.append(_payment(Decimal("77.77"), "pending"))
    expenses = [_expense(Decimal(value), "approved") for value in ("3.33", "150.00", "0.01")]
    expenses.append(_expense(Decimal("8.00"), "rejected"))

    baseline = aggregate(payments, expenses)
    rng = random.Random(7)
    for _ in range(10):
        shuffled_payments = payments[:]
        shuffled_expenses = expenses[:]
        rng.shuffle(shuffled_payments)
        rng.shuffle(shuffled_expenses)
        assert aggregate(shuffled_payments, shuffled_expenses).to_dict() == baseline.to_dict()

    assert baseline.net_profit == Decimal("1052.14") - Decimal("153.34")


def test_malformed_amounts_count_as_zero_with_warning() -> None:
    metrics = aggregate(
        [_payment(Decimal("100"), "completed"), _payment("abc", "completed"), _payment(None, "completed")],
        [_expense("NaN", "approved")],
    )

    assert metrics.total_revenue == Decimal("100")
    assert metrics.total_expenses == ZERO
    assert metrics.payment_count == 3
    assert len(metrics.warnings) == 3
    assert {warning.record_id for warning in metrics.warnings} == {
        "pay-abc-completed",
        "pay-None-completed",
        "exp-NaN-approved",
    }
    assert all(warning.field == "amount" for warning in metrics.warnings)


def test_malformed_amount_on_unrealized_row_is_not_reported() -> None:
    metrics = aggregate([_payment("oops", "pending")], [])

    assert metrics.warnings == []


def test_parse_amount() -> None:
    assert parse_amount("r1", "12.50").value == Decimal("12.50")
    assert parse_amount("r1", 7).ok
    assert not parse_amount("r1", True).ok
    assert not parse_amount("r1", "Infinity").ok
    rejected = parse_amount("r2", "twelve")
    assert rejected.value == ZERO
    assert rejected.warning is not None
    assert rejected.warning.to_dict()["record_id"] == "r2"


def test_percent_helpers() -> None:
    assert margin_percent(Decimal("1"), Decimal("3")) == Decimal("33.33")
    assert margin_percent(Decimal("-5"), ZERO) == ZERO
    assert ratio_percent(Decimal("50"), Decimal("200")) == Decimal("25.00")
    assert ratio_percent(Decimal("50"), ZERO) == ZERO


def test_remaining_amount_and_window() -> None:
    assert remaining_amount(Decimal("100.00"), Decimal("30.00")) == Decimal("70.00")
    validate_window(date(2026, 1, 1), date(2026, 1, 1))
    validate_window(None, date(2026, 1, 1))
    with pytest.raises(InvalidArgument):
        validate_window(date(2026, 2, 1), date(2026, 1, 1))


def test_client_profitability_averages_and_last_dates() -> None:
    result = client_profitability(
        "client-1",
        [
            _payment(Decimal("100"), "completed", date(2026, 1, 5)),
            _payment(Decimal("200"), "completed", date(2026, 3, 5)),
            _payment(Decimal("999"), "pending", date(2026, 6, 5)),
        ],
        [_expense(Decimal("30"), "approved", date(2026, 2, 1))],
    )

    payload = result.to_dict()
    assert payload["totalRevenue"] == "300.00"
    assert payload["averagePayment"] == "150.00"
    assert payload["averageExpense"] == "30.00"
    assert payload["lastPaymentDate"] == "2026-03-05"
    assert payload["lastExpenseDate"] == "2026-02-01"


def test_monthly_trends_has_twelve_buckets() -> None:
    buckets, warnings = monthly_trends(
        2026,
        [_payment(Decimal("100"), "completed", date(2026, 2, 10))],
        [_expense(Decimal("25"), "approved", date(2026, 2, 11))],
    )

    assert warnings == []
    assert [bucket["month"] for bucket in buckets] == list(range(1, 13))
    february = buckets[1]
    assert february["monthName"] == "February"
    assert Decimal(february["revenue"]) == Decimal("100")
    assert Decimal(february["profit"]) == Decimal("75")
    assert february["profitMargin"] == "75.00"
    assert Decimal(buckets[0]["revenue"]) == ZERO
