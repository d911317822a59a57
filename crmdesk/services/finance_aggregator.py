"""Reduction of payment and expense rows into financial metrics.

Only realized money counts: payments with status ``completed`` and expenses
with status ``approved``. Sums are kept exact; only percentages are rounded to
two decimals, and a margin over zero revenue is defined as ``0``.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol
from uuid import UUID

from crmdesk.core.errors import DataQualityWarning, InvalidArgument

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")
HUNDRED = Decimal("100")

REALIZED_PAYMENT_STATUS = "completed"
REALIZED_EXPENSE_STATUS = "approved"


class AmountRecord(Protocol):
    id: Any
    amount: Any
    status: Any


@dataclass(frozen=True, slots=True)
class ParsedAmount:
    value: Decimal
    warning: DataQualityWarning | None = None

    @property
    def ok(self) -> bool:
        return self.warning is None


@dataclass(slots=True)
class FinancialMetrics:
    total_revenue: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_profit: Decimal = ZERO
    profit_margin: Decimal = ZERO
    payment_count: int = 0
    expense_count: int = 0
    warnings: list[DataQualityWarning] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "totalRevenue": str(self.total_revenue),
            "totalExpenses": str(self.total_expenses),
            "netProfit": str(self.net_profit),
            "profitMargin": str(self.profit_margin),
            "paymentCount": self.payment_count,
            "expenseCount": self.expense_count,
        }


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def status_value(status: object) -> str:
    return str(getattr(status, "value", status))


def parse_amount(record_id: object, raw: object, *, field_name: str = "amount") -> ParsedAmount:
    """Parse ``raw`` into a Decimal, or zero plus a warning naming the record."""

    def rejected(message: str) -> ParsedAmount:
        return ParsedAmount(
            value=ZERO,
            warning=DataQualityWarning(record_id=str(record_id), field=field_name, message=message),
        )

    if raw is None:
        return rejected("missing amount treated as 0")
    if isinstance(raw, bool):
        return rejected(f"non-numeric amount {raw!r} treated as 0")
    try:
        value = raw if isinstance(raw, Decimal) else Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return rejected(f"non-numeric amount {raw!r} treated as 0")
    if not value.is_finite():
        return rejected(f"non-finite amount {raw!r} treated as 0")
    return ParsedAmount(value=value)


def margin_percent(net_profit: Decimal, revenue: Decimal) -> Decimal:
    if revenue <= 0:
        return ZERO
    return _q2(net_profit / revenue * HUNDRED)


def ratio_percent(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator <= 0:
        return ZERO
    return _q2(numerator / denominator * HUNDRED)


def sum_realized(
    records: Iterable[AmountRecord],
    realized_status: str,
    warnings: list[DataQualityWarning],
) -> tuple[Decimal, int]:
    total = ZERO
    count = 0
    for record in records:
        if status_value(record.status) != realized_status:
            continue
        parsed = parse_amount(record.id, record.amount)
        if parsed.warning is not None:
            logger.warning(
                "Data quality issue on record %s: %s",
                parsed.warning.record_id,
                parsed.warning.message,
            )
            warnings.append(parsed.warning)
        total += parsed.value
        count += 1
    return total, count


def aggregate(payments: Iterable[AmountRecord], expenses: Iterable[AmountRecord]) -> FinancialMetrics:
    """Reduce payments and expenses to the canonical metric set."""

    warnings: list[DataQualityWarning] = []
    revenue, payment_count = sum_realized(payments, REALIZED_PAYMENT_STATUS, warnings)
    spent, expense_count = sum_realized(expenses, REALIZED_EXPENSE_STATUS, warnings)
    net_profit = revenue - spent
    return FinancialMetrics(
        total_revenue=revenue,
        total_expenses=spent,
        net_profit=net_profit,
        profit_margin=margin_percent(net_profit, revenue),
        payment_count=payment_count,
        expense_count=expense_count,
        warnings=warnings,
    )


def validate_window(start: date | None, end: date | None) -> None:
    if start is not None and end is not None and end < start:
        raise InvalidArgument("end_date must be greater than or equal to start_date")


def remaining_amount(total: Decimal, spent: Decimal) -> Decimal:
    return total - spent


@dataclass(slots=True)
class ClientProfitability:
    client_id: UUID
    metrics: FinancialMetrics
    average_payment: Decimal
    average_expense: Decimal
    last_payment_date: date | None
    last_expense_date: date | None

    def to_dict(self) -> dict[str, object]:
        payload = {"clientId": str(self.client_id)}
        payload.update(self.metrics.to_dict())
        payload.update(
            {
                "averagePayment": str(self.average_payment),
                "averageExpense": str(self.average_expense),
                "lastPaymentDate": self.last_payment_date.isoformat() if self.last_payment_date else None,
                "lastExpenseDate": self.last_expense_date.isoformat() if self.last_expense_date else None,
            }
        )
        return payload


def _last_realized_date(records: Iterable[Any], realized_status: str, date_field: str) -> date | None:
    dates = [getattr(record, date_field) for record in records if status_value(record.status) == realized_status]
    return max(dates) if dates else None


def client_profitability(client_id: UUID, payments: list[Any], expenses: list[Any]) -> ClientProfitability:
    metrics = aggregate(payments, expenses)
    average_payment = _q2(metrics.total_revenue / metrics.payment_count) if metrics.payment_count else ZERO
    average_expense = _q2(metrics.total_expenses / metrics.expense_count) if metrics.expense_count else ZERO
    return ClientProfitability(
        client_id=client_id,
        metrics=metrics,
        average_payment=average_payment,
        average_expense=average_expense,
        last_payment_date=_last_realized_date(payments, REALIZED_PAYMENT_STATUS, "payment_date"),
        last_expense_date=_last_realized_date(expenses, REALIZED_EXPENSE_STATUS, "expense_date"),
    )


def monthly_trends(
    year: int,
    payments: list[Any],
    expenses: list[Any],
) -> tuple[list[dict[str, object]], list[DataQualityWarning]]:
    """Twelve month buckets of realized revenue, expenses and profit for ``year``."""

    warnings: list[DataQualityWarning] = []
    buckets: list[dict[str, object]] = []
    for month in range(1, 13):
        month_payments = [row for row in payments if row.payment_date.year == year and row.payment_date.month == month]
        month_expenses = [row for row in expenses if row.expense_date.year == year and row.expense_date.month == month]
        metrics = aggregate(month_payments, month_expenses)
        warnings.extend(metrics.warnings)
        buckets.append(
            {
                "month": month,
                "monthName": calendar.month_name[month],
                "monthStart": date(year, month, 1).isoformat(),
                "revenue": str(metrics.total_revenue),
                "expenses": str(metrics.total_expenses),
                "profit": str(metrics.net_profit),
                "profitMargin": str(metrics.profit_margin),
            }
        )
    return buckets, warnings
