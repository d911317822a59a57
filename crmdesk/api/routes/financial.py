"""Financial endpoints: budgets, payments, expenses, vendors and analytics."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from crmdesk.api.responses import success
from crmdesk.core.auth import RequestUserContext, get_current_user_context
from crmdesk.db.dependencies import get_db_session
from crmdesk.models.entities import BudgetPeriod, ExpenseStatus, PaymentMethod, PaymentStatus, VendorStatus
from crmdesk.services.finance_service import (
    BudgetCreateData,
    BudgetUpdateData,
    ExpenseCreateData,
    ExpenseUpdateData,
    FinanceService,
    PaymentCreateData,
    PaymentUpdateData,
    VendorCreateData,
    VendorUpdateData,
)

router = APIRouter(prefix="/financial", tags=["financial"])


class BudgetCreatePayload(BaseModel):
    client_id: UUID
    name: str = Field(min_length=1, max_length=255)
    total_amount: Decimal = Field(ge=0)
    start_date: date
    end_date: date | None = None
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    category: str | None = Field(default=None, max_length=100)
    status: str = Field(default="active", min_length=1, max_length=32)


class BudgetUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    total_amount: Decimal | None = Field(default=None, ge=0)
    start_date: date | None = None
    end_date: date | None = None
    period: BudgetPeriod | None = None
    category: str | None = Field(default=None, max_length=100)
    status: str | None = Field(default=None, min_length=1, max_length=32)


class PaymentCreatePayload(BaseModel):
    client_id: UUID
    amount: Decimal = Field(ge=0)
    payment_date: date
    budget_id: UUID | None = None
    currency: str = Field(default="USD", min_length=3, max_length=3)
    status: PaymentStatus = PaymentStatus.PENDING
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    invoice_number: str | None = Field(default=None, max_length=100)
    description: str | None = None


class PaymentUpdatePayload(BaseModel):
    amount: Decimal | None = Field(default=None, ge=0)
    payment_date: date | None = None
    budget_id: UUID | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    status: PaymentStatus | None = None
    payment_method: PaymentMethod | None = None
    invoice_number: str | None = Field(default=None, max_length=100)
    description: str | None = None


class ExpenseCreatePayload(BaseModel):
    amount: Decimal = Field(ge=0)
    category: str = Field(min_length=1, max_length=100)
    expense_date: date
    client_id: UUID | None = None
    budget_id: UUID | None = None
    vendor_id: UUID | None = None
    currency: str = Field(default="USD", min_length=3, max_length=3)
    status: ExpenseStatus = ExpenseStatus.PENDING
    description: str | None = None


class ExpenseUpdatePayload(BaseModel):
    amount: Decimal | None = Field(default=None, ge=0)
    category: str | None = Field(default=None, min_length=1, max_length=100)
    expense_date: date | None = None
    client_id: UUID | None = None
    budget_id: UUID | None = None
    vendor_id: UUID | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    status: ExpenseStatus | None = None
    description: str | None = None


class VendorCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    contact_person: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=50)
    category: str | None = Field(default=None, max_length=100)
    payment_terms: str | None = Field(default=None, max_length=100)
    status: VendorStatus = VendorStatus.ACTIVE


class VendorUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    contact_person: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=50)
    category: str | None = Field(default=None, max_length=100)
    payment_terms: str | None = Field(default=None, max_length=100)
    status: VendorStatus | None = None


def _service(db: Session) -> FinanceService:
    return FinanceService(db)


# ---------- Budgets ----------
@router.get("/budgets")
def list_budgets(
    client_id: UUID | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success([service.serialize_budget(view) for view in service.list_budgets(client_id=client_id)])


@router.post("/budgets", status_code=201)
def create_budget(
    payload: BudgetCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    view = service.create_budget(context=context, data=BudgetCreateData(**payload.model_dump()))
    return success(service.serialize_budget(view))


@router.get("/budgets/{budget_id}")
def get_budget(
    budget_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success(service.serialize_budget(service.get_budget(budget_id)))


@router.put("/budgets/{budget_id}")
def update_budget(
    budget_id: UUID,
    payload: BudgetUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    view = service.update_budget(budget_id=budget_id, data=BudgetUpdateData(**payload.model_dump(exclude_unset=True)))
    return success(service.serialize_budget(view))


@router.delete("/budgets/{budget_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_budget(
    budget_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_budget(budget_id=budget_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Payments ----------
@router.get("/payments")
def list_payments(
    client_id: UUID | None = Query(default=None),
    payment_status: PaymentStatus | None = Query(default=None, alias="status"),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_payments(
        client_id=client_id,
        status=payment_status,
        start_date=start_date,
        end_date=end_date,
    )
    return success([service.serialize_payment(row) for row in rows])


@router.post("/payments", status_code=201)
def create_payment(
    payload: PaymentCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    payment = service.create_payment(context=context, data=PaymentCreateData(**payload.model_dump()))
    return success(service.serialize_payment(payment))


@router.get("/payments/{payment_id}")
def get_payment(
    payment_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success(service.serialize_payment(service.get_payment(payment_id)))


@router.put("/payments/{payment_id}")
def update_payment(
    payment_id: UUID,
    payload: PaymentUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    payment = service.update_payment(
        payment_id=payment_id,
        data=PaymentUpdateData(**payload.model_dump(exclude_unset=True)),
    )
    return success(service.serialize_payment(payment))


@router.delete("/payments/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment(
    payment_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_payment(payment_id=payment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Expenses ----------
@router.get("/expenses")
def list_expenses(
    client_id: UUID | None = Query(default=None),
    budget_id: UUID | None = Query(default=None),
    vendor_id: UUID | None = Query(default=None),
    expense_status: ExpenseStatus | None = Query(default=None, alias="status"),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_expenses(
        client_id=client_id,
        budget_id=budget_id,
        vendor_id=vendor_id,
        status=expense_status,
        start_date=start_date,
        end_date=end_date,
    )
    return success([service.serialize_expense(row) for row in rows])


@router.post("/expenses", status_code=201)
def create_expense(
    payload: ExpenseCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    expense = service.create_expense(context=context, data=ExpenseCreateData(**payload.model_dump()))
    return success(service.serialize_expense(expense))


@router.get("/expenses/{expense_id}")
def get_expense(
    expense_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success(service.serialize_expense(service.get_expense(expense_id)))


@router.put("/expenses/{expense_id}")
def update_expense(
    expense_id: UUID,
    payload: ExpenseUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    expense = service.update_expense(
        expense_id=expense_id,
        data=ExpenseUpdateData(**payload.model_dump(exclude_unset=True)),
    )
    return success(service.serialize_expense(expense))


@router.delete("/expenses/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(
    expense_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_expense(expense_id=expense_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Vendors ----------
@router.get("/vendors")
def list_vendors(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success([service.serialize_vendor(row) for row in service.list_vendors()])


@router.post("/vendors", status_code=201)
def create_vendor(
    payload: VendorCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    vendor = service.create_vendor(context=context, data=VendorCreateData(**payload.model_dump()))
    return success(service.serialize_vendor(vendor))


@router.get("/vendors/{vendor_id}")
def get_vendor(
    vendor_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success(service.serialize_vendor(service.get_vendor(vendor_id)))


@router.put("/vendors/{vendor_id}")
def update_vendor(
    vendor_id: UUID,
    payload: VendorUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    vendor = service.update_vendor(vendor_id=vendor_id, data=VendorUpdateData(**payload.model_dump(exclude_unset=True)))
    return success(service.serialize_vendor(vendor))


@router.delete("/vendors/{vendor_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_vendor(
    vendor_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_vendor(vendor_id=vendor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Analytics ----------
@router.get("/analytics/overview")
def analytics_overview(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    data, warnings = _service(db).overview(start_date=start_date, end_date=end_date)
    return success(data, warnings=warnings)


@router.get("/analytics/client-profitability/{client_id}")
def analytics_client_profitability(
    client_id: UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    data, warnings = _service(db).client_profitability(
        client_id=client_id,
        start_date=start_date,
        end_date=end_date,
    )
    return success(data, warnings=warnings)


@router.get("/analytics/monthly-trends")
def analytics_monthly_trends(
    year: int | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    data, warnings = _service(db).monthly_trends(year=year or date.today().year)
    return success(data, warnings=warnings)


@router.get("/analytics/client-summary")
def analytics_client_summary(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    data, warnings = _service(db).client_summary()
    return success(data, warnings=warnings)
