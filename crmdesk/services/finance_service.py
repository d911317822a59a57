"""Budgets, payments, expenses, vendors and financial analytics."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from crmdesk.core.auth import RequestUserContext
from crmdesk.core.errors import Conflict, DataQualityWarning, InvalidArgument, NotFound
from crmdesk.models.entities import (
    Budget,
    BudgetPeriod,
    Expense,
    ExpenseStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Vendor,
    VendorStatus,
)
from crmdesk.repositories.crm_repository import CrmRepository
from crmdesk.services import UNSET
from crmdesk.services.finance_aggregator import (
    ZERO,
    aggregate,
    client_profitability,
    monthly_trends,
    ratio_percent,
    remaining_amount,
    validate_window,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BudgetCreateData:
    client_id: UUID
    name: str
    total_amount: Decimal
    start_date: date
    end_date: date | None = None
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    category: str | None = None
    status: str = "active"


@dataclass(slots=True)
class BudgetUpdateData:
    name: str | None = None
    total_amount: Decimal | None = None
    start_date: date | None = None
    end_date: object = UNSET
    period: BudgetPeriod | None = None
    category: object = UNSET
    status: str | None = None


@dataclass(slots=True)
class PaymentCreateData:
    client_id: UUID
    amount: Decimal
    payment_date: date
    budget_id: UUID | None = None
    currency: str = "USD"
    status: PaymentStatus = PaymentStatus.PENDING
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    invoice_number: str | None = None
    description: str | None = None


@dataclass(slots=True)
class PaymentUpdateData:
    amount: Decimal | None = None
    payment_date: date | None = None
    budget_id: object = UNSET
    currency: str | None = None
    status: PaymentStatus | None = None
    payment_method: PaymentMethod | None = None
    invoice_number: object = UNSET
    description: object = UNSET


@dataclass(slots=True)
class ExpenseCreateData:
    amount: Decimal
    category: str
    expense_date: date
    client_id: UUID | None = None
    budget_id: UUID | None = None
    vendor_id: UUID | None = None
    currency: str = "USD"
    status: ExpenseStatus = ExpenseStatus.PENDING
    description: str | None = None


@dataclass(slots=True)
class ExpenseUpdateData:
    amount: Decimal | None = None
    category: str | None = None
    expense_date: date | None = None
    client_id: object = UNSET
    budget_id: object = UNSET
    vendor_id: object = UNSET
    currency: str | None = None
    status: ExpenseStatus | None = None
    description: object = UNSET


@dataclass(slots=True)
class VendorCreateData:
    name: str
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    category: str | None = None
    payment_terms: str | None = None
    status: VendorStatus = VendorStatus.ACTIVE


@dataclass(slots=True)
class VendorUpdateData:
    name: str | None = None
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    category: str | None = None
    payment_terms: str | None = None
    status: VendorStatus | None = None


@dataclass(slots=True)
class BudgetView:
    """Budget row with its read-time spent and remaining amounts."""

    budget: Budget
    spent_amount: Decimal

    @property
    def remaining_amount(self) -> Decimal:
        return remaining_amount(self.budget.total_amount, self.spent_amount)


def _validate_non_negative_amount(value: Decimal, field_name: str) -> None:
    if value < ZERO:
        raise InvalidArgument(f"{field_name} must be non-negative")


def _normalize_currency(value: str) -> str:
    currency = value.strip().upper()
    if len(currency) != 3:
        raise InvalidArgument("currency must be a 3-letter code")
    return currency


class FinanceService:
    """Financial records and the analytics derived from them."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = CrmRepository(db)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_budget(view: BudgetView) -> dict[str, object]:
        budget = view.budget
        return {
            "id": str(budget.id),
            "client_id": str(budget.client_id),
            "name": budget.name,
            "total_amount": str(budget.total_amount),
            "spent_amount": str(view.spent_amount),
            "remaining_amount": str(view.remaining_amount),
            "period": budget.period.value,
            "start_date": budget.start_date.isoformat(),
            "end_date": budget.end_date.isoformat() if budget.end_date else None,
            "category": budget.category,
            "status": budget.status,
            "created_by": str(budget.created_by) if budget.created_by else None,
            "created_at": budget.created_at.isoformat(),
            "updated_at": budget.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_payment(payment: Payment) -> dict[str, object]:
        return {
            "id": str(payment.id),
            "client_id": str(payment.client_id),
            "budget_id": str(payment.budget_id) if payment.budget_id else None,
            "amount": str(payment.amount),
            "currency": payment.currency,
            "status": payment.status.value,
            "payment_method": payment.payment_method.value,
            "payment_date": payment.payment_date.isoformat(),
            "invoice_number": payment.invoice_number,
            "description": payment.description,
            "created_by": str(payment.created_by) if payment.created_by else None,
            "created_at": payment.created_at.isoformat(),
            "updated_at": payment.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_expense(expense: Expense) -> dict[str, object]:
        return {
            "id": str(expense.id),
            "client_id": str(expense.client_id) if expense.client_id else None,
            "budget_id": str(expense.budget_id) if expense.budget_id else None,
            "vendor_id": str(expense.vendor_id) if expense.vendor_id else None,
            "amount": str(expense.amount),
            "currency": expense.currency,
            "category": expense.category,
            "status": expense.status.value,
            "expense_date": expense.expense_date.isoformat(),
            "description": expense.description,
            "created_by": str(expense.created_by) if expense.created_by else None,
            "created_at": expense.created_at.isoformat(),
            "updated_at": expense.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_vendor(vendor: Vendor) -> dict[str, object]:
        return {
            "id": str(vendor.id),
            "name": vendor.name,
            "contact_person": vendor.contact_person,
            "email": vendor.email,
            "phone": vendor.phone,
            "category": vendor.category,
            "payment_terms": vendor.payment_terms,
            "status": vendor.status.value,
            "created_at": vendor.created_at.isoformat(),
            "updated_at": vendor.updated_at.isoformat(),
        }

    # ---------- Reference checks ----------
    def _require_client(self, client_id: UUID) -> None:
        if self.repo.get_client(client_id) is None:
            raise InvalidArgument("client_id does not reference an existing client")

    def _require_budget(self, budget_id: UUID) -> None:
        if self.repo.get_budget(budget_id) is None:
            raise InvalidArgument("budget_id does not reference an existing budget")

    def _require_vendor(self, vendor_id: UUID) -> None:
        if self.repo.get_vendor(vendor_id) is None:
            raise InvalidArgument("vendor_id does not reference an existing vendor")

    # ---------- Budgets ----------
    def budget_views(self, budgets: list[Budget]) -> list[BudgetView]:
        spent = self.repo.budget_spent_amounts([budget.id for budget in budgets])
        return [BudgetView(budget=budget, spent_amount=spent.get(budget.id, ZERO)) for budget in budgets]

    def list_budgets(self, *, client_id: UUID | None = None) -> list[BudgetView]:
        return self.budget_views(self.repo.list_budgets(client_id=client_id))

    def get_budget(self, budget_id: UUID) -> BudgetView:
        budget = self.repo.get_budget(budget_id)
        if budget is None:
            raise NotFound("Budget not found")
        return self.budget_views([budget])[0]

    def create_budget(self, *, context: RequestUserContext, data: BudgetCreateData) -> BudgetView:
        if not data.name.strip():
            raise InvalidArgument("name is required")
        _validate_non_negative_amount(data.total_amount, "total_amount")
        if data.end_date is not None and data.end_date < data.start_date:
            raise InvalidArgument("end_date must be greater than or equal to start_date")
        self._require_client(data.client_id)

        now = datetime.utcnow()
        budget = Budget(
            client_id=data.client_id,
            name=data.name.strip(),
            total_amount=data.total_amount,
            period=data.period,
            start_date=data.start_date,
            end_date=data.end_date,
            category=data.category,
            status=data.status,
            created_by=context.user_id,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_budget(budget)
        self.db.commit()
        self.db.refresh(budget)
        return BudgetView(budget=budget, spent_amount=ZERO)

    def update_budget(self, *, budget_id: UUID, data: BudgetUpdateData) -> BudgetView:
        budget = self.get_budget(budget_id).budget

        start_date = data.start_date if data.start_date is not None else budget.start_date
        end_date = budget.end_date if data.end_date is UNSET else data.end_date
        if end_date is not None and end_date < start_date:
            raise InvalidArgument("end_date must be greater than or equal to start_date")

        if data.name is not None:
            if not data.name.strip():
                raise InvalidArgument("name must not be empty")
            budget.name = data.name.strip()
        if data.total_amount is not None:
            _validate_non_negative_amount(data.total_amount, "total_amount")
            budget.total_amount = data.total_amount
        budget.start_date = start_date
        budget.end_date = end_date
        if data.period is not None:
            budget.period = data.period
        if data.category is not UNSET:
            budget.category = data.category
        if data.status is not None:
            budget.status = data.status
        budget.updated_at = datetime.utcnow()

        self.db.commit()
        return self.get_budget(budget_id)

    def delete_budget(self, *, budget_id: UUID) -> None:
        budget = self.get_budget(budget_id).budget
        linked = self.db.scalar(select(func.count(Expense.id)).where(Expense.budget_id == budget.id)) or 0
        linked += self.db.scalar(select(func.count(Payment.id)).where(Payment.budget_id == budget.id)) or 0
        if linked:
            raise Conflict("Cannot delete budget with linked payments or expenses")
        self.repo.delete_budget(budget)
        self.db.commit()

    # ---------- Payments ----------
    def list_payments(
        self,
        *,
        client_id: UUID | None = None,
        status: PaymentStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Payment]:
        validate_window(start_date, end_date)
        return self.repo.list_payments(client_id=client_id, status=status, start=start_date, end=end_date)

    def get_payment(self, payment_id: UUID) -> Payment:
        payment = self.repo.get_payment(payment_id)
        if payment is None:
            raise NotFound("Payment not found")
        return payment

    def create_payment(self, *, context: RequestUserContext, data: PaymentCreateData) -> Payment:
        _validate_non_negative_amount(data.amount, "amount")
        self._require_client(data.client_id)
        if data.budget_id is not None:
            self._require_budget(data.budget_id)

        now = datetime.utcnow()
        payment = Payment(
            client_id=data.client_id,
            budget_id=data.budget_id,
            amount=data.amount,
            currency=_normalize_currency(data.currency),
            status=data.status,
            payment_method=data.payment_method,
            payment_date=data.payment_date,
            invoice_number=data.invoice_number,
            description=data.description,
            created_by=context.user_id,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_payment(payment)
        self.db.commit()
        self.db.refresh(payment)
        return payment

    def update_payment(self, *, payment_id: UUID, data: PaymentUpdateData) -> Payment:
        payment = self.get_payment(payment_id)

        if data.amount is not None:
            _validate_non_negative_amount(data.amount, "amount")
            payment.amount = data.amount
        if data.payment_date is not None:
            payment.payment_date = data.payment_date
        if data.budget_id is not UNSET:
            if data.budget_id is not None:
                self._require_budget(data.budget_id)
            payment.budget_id = data.budget_id
        if data.currency is not None:
            payment.currency = _normalize_currency(data.currency)
        if data.status is not None:
            payment.status = data.status
        if data.payment_method is not None:
            payment.payment_method = data.payment_method
        if data.invoice_number is not UNSET:
            payment.invoice_number = data.invoice_number
        if data.description is not UNSET:
            payment.description = data.description
        payment.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(payment)
        return payment

    def delete_payment(self, *, payment_id: UUID) -> None:
        self.repo.delete_payment(self.get_payment(payment_id))
        self.db.commit()

    # ---------- Expenses ----------
    def list_expenses(
        self,
        *,
        client_id: UUID | None = None,
        budget_id: UUID | None = None,
        vendor_id: UUID | None = None,
        status: ExpenseStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Expense]:
        validate_window(start_date, end_date)
        return self.repo.list_expenses(
            client_id=client_id,
            budget_id=budget_id,
            vendor_id=vendor_id,
            status=status,
            start=start_date,
            end=end_date,
        )

    def get_expense(self, expense_id: UUID) -> Expense:
        expense = self.repo.get_expense(expense_id)
        if expense is None:
            raise NotFound("Expense not found")
        return expense

    def create_expense(self, *, context: RequestUserContext, data: ExpenseCreateData) -> Expense:
        _validate_non_negative_amount(data.amount, "amount")
        if not data.category.strip():
            raise InvalidArgument("category is required")
        if data.client_id is not None:
            self._require_client(data.client_id)
        if data.budget_id is not None:
            self._require_budget(data.budget_id)
        if data.vendor_id is not None:
            self._require_vendor(data.vendor_id)

        now = datetime.utcnow()
        expense = Expense(
            client_id=data.client_id,
            budget_id=data.budget_id,
            vendor_id=data.vendor_id,
            amount=data.amount,
            currency=_normalize_currency(data.currency),
            category=data.category.strip(),
            status=data.status,
            expense_date=data.expense_date,
            description=data.description,
            created_by=context.user_id,
            created_at=now,
            updated_at=now,
        )
        # Budget spent amounts are summed at read time, so the insert is the only write.
        self.repo.add_expense(expense)
        self.db.commit()
        self.db.refresh(expense)
        return expense

    def update_expense(self, *, expense_id: UUID, data: ExpenseUpdateData) -> Expense:
        expense = self.get_expense(expense_id)

        if data.amount is not None:
            _validate_non_negative_amount(data.amount, "amount")
            expense.amount = data.amount
        if data.category is not None:
            if not data.category.strip():
                raise InvalidArgument("category must not be empty")
            expense.category = data.category.strip()
        if data.expense_date is not None:
            expense.expense_date = data.expense_date
        if data.client_id is not UNSET:
            if data.client_id is not None:
                self._require_client(data.client_id)
            expense.client_id = data.client_id
        if data.budget_id is not UNSET:
            if data.budget_id is not None:
                self._require_budget(data.budget_id)
            expense.budget_id = data.budget_id
        if data.vendor_id is not UNSET:
            if data.vendor_id is not None:
                self._require_vendor(data.vendor_id)
            expense.vendor_id = data.vendor_id
        if data.currency is not None:
            expense.currency = _normalize_currency(data.currency)
        if data.status is not None:
            expense.status = data.status
        if data.description is not UNSET:
            expense.description = data.description
        expense.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(expense)
        return expense

    def delete_expense(self, *, expense_id: UUID) -> None:
        self.repo.delete_expense(self.get_expense(expense_id))
        self.db.commit()

    # ---------- Vendors ----------
    def list_vendors(self) -> list[Vendor]:
        return self.repo.list_vendors()

    def get_vendor(self, vendor_id: UUID) -> Vendor:
        vendor = self.repo.get_vendor(vendor_id)
        if vendor is None:
            raise NotFound("Vendor not found")
        return vendor

    def create_vendor(self, *, context: RequestUserContext, data: VendorCreateData) -> Vendor:
        if not data.name.strip():
            raise InvalidArgument("name is required")
        now = datetime.utcnow()
        vendor = Vendor(
            name=data.name.strip(),
            contact_person=data.contact_person,
            email=data.email.strip().lower() if data.email else None,
            phone=data.phone,
            category=data.category,
            payment_terms=data.payment_terms,
            status=data.status,
            created_by=context.user_id,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_vendor(vendor)
        self.db.commit()
        self.db.refresh(vendor)
        return vendor

    def update_vendor(self, *, vendor_id: UUID, data: VendorUpdateData) -> Vendor:
        vendor = self.get_vendor(vendor_id)
        if data.name is not None:
            if not data.name.strip():
                raise InvalidArgument("name must not be empty")
            vendor.name = data.name.strip()
        if data.contact_person is not None:
            vendor.contact_person = data.contact_person
        if data.email is not None:
            vendor.email = data.email.strip().lower() or None
        if data.phone is not None:
            vendor.phone = data.phone
        if data.category is not None:
            vendor.category = data.category
        if data.payment_terms is not None:
            vendor.payment_terms = data.payment_terms
        if data.status is not None:
            vendor.status = data.status
        vendor.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(vendor)
        return vendor

    def delete_vendor(self, *, vendor_id: UUID) -> None:
        vendor = self.get_vendor(vendor_id)
        if self.db.scalar(select(func.count(Expense.id)).where(Expense.vendor_id == vendor.id)):
            raise Conflict("Cannot delete vendor with linked expenses")
        self.repo.delete_vendor(vendor)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("Cannot delete vendor with linked records") from exc

    # ---------- Analytics ----------
    def overview(
        self,
        *,
        start_date: date | None,
        end_date: date | None,
    ) -> tuple[dict[str, object], list[DataQualityWarning]]:
        validate_window(start_date, end_date)
        metrics = aggregate(
            self.repo.list_payments(status=PaymentStatus.COMPLETED, start=start_date, end=end_date),
            self.repo.list_expenses(status=ExpenseStatus.APPROVED, start=start_date, end=end_date),
        )
        payload = metrics.to_dict()
        payload["activeBudgets"] = self.repo.count_active_budgets()
        payload["activeClients"] = self.repo.count_active_clients()
        return payload, metrics.warnings

    def client_profitability(
        self,
        *,
        client_id: UUID,
        start_date: date,
        end_date: date,
    ) -> tuple[dict[str, object], list[DataQualityWarning]]:
        validate_window(start_date, end_date)
        client = self.repo.get_client(client_id)
        if client is None:
            raise NotFound("Client not found")

        result = client_profitability(
            client.id,
            self.repo.list_payments(client_id=client.id, start=start_date, end=end_date),
            self.repo.list_expenses(client_id=client.id, start=start_date, end=end_date),
        )
        payload = result.to_dict()
        payload["companyName"] = client.company_name
        return payload, result.metrics.warnings

    def monthly_trends(self, *, year: int) -> tuple[list[dict[str, object]], list[DataQualityWarning]]:
        if year < 1 or year > 9998:
            raise InvalidArgument("year is out of range")
        start, end = date(year, 1, 1), date(year + 1, 1, 1)
        return monthly_trends(
            year,
            self.repo.list_payments(status=PaymentStatus.COMPLETED, start=start, end=end),
            self.repo.list_expenses(status=ExpenseStatus.APPROVED, start=start, end=end),
        )

    def client_summary(self) -> tuple[list[dict[str, object]], list[DataQualityWarning]]:
        """Realized revenue, expenses and profit per client, highest revenue first."""

        payments_by_client: dict[UUID, list[Payment]] = defaultdict(list)
        expenses_by_client: dict[UUID, list[Expense]] = defaultdict(list)
        for payment in self.repo.list_payments(status=PaymentStatus.COMPLETED):
            payments_by_client[payment.client_id].append(payment)
        for expense in self.repo.list_expenses(status=ExpenseStatus.APPROVED):
            if expense.client_id is not None:
                expenses_by_client[expense.client_id].append(expense)

        rows: list[dict[str, object]] = []
        warnings: list[DataQualityWarning] = []
        for client in self.repo.list_clients():
            metrics = aggregate(payments_by_client[client.id], expenses_by_client[client.id])
            warnings.extend(metrics.warnings)
            row = {"clientId": str(client.id), "companyName": client.company_name, "stage": client.stage.value}
            row.update(metrics.to_dict())
            row["budgetUtilization"] = str(self._client_budget_utilization(client.id))
            rows.append(row)
        rows.sort(key=lambda row: Decimal(str(row["totalRevenue"])), reverse=True)
        return rows, warnings

    def _client_budget_utilization(self, client_id: UUID) -> Decimal:
        views = self.list_budgets(client_id=client_id)
        allocated = sum((view.budget.total_amount for view in views), ZERO)
        spent = sum((view.spent_amount for view in views), ZERO)
        return ratio_percent(spent, allocated)
