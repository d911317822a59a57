"""Repository helpers for the CRM domain."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ColumnElement, and_, func, select
from sqlalchemy.orm import Session

from crmdesk.models.entities import (
    Budget,
    CalendarEvent,
    Client,
    ClientStage,
    Expense,
    ExpenseStatus,
    Payment,
    PaymentStatus,
    ReportJob,
    SharedTaskGrant,
    Task,
    TaskGroup,
    TaskGroupMember,
    User,
    Vendor,
)


def _date_window(column, start: date | None, end: date | None) -> list[ColumnElement[bool]]:
    """Half-open ``[start, end)`` conditions on a date column."""

    conditions: list[ColumnElement[bool]] = []
    if start is not None:
        conditions.append(column >= start)
    if end is not None:
        conditions.append(column < end)
    return conditions


class CrmRepository:
    """Persistence operations used by the calendar, finance and report services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Users ----------
    def get_user(self, user_id: UUID) -> User | None:
        return self.db.get(User, user_id)

    def list_users(self) -> list[User]:
        return self.db.scalars(select(User).order_by(User.created_at.desc(), User.id.asc())).all()

    # ---------- Clients ----------
    def list_clients(self, *, stage: ClientStage | None = None) -> list[Client]:
        statement = select(Client).order_by(Client.company_name.asc(), Client.id.asc())
        if stage is not None:
            statement = statement.where(Client.stage == stage)
        return self.db.scalars(statement).all()

    def get_client(self, client_id: UUID) -> Client | None:
        return self.db.get(Client, client_id)

    def add_client(self, client: Client) -> Client:
        self.db.add(client)
        self.db.flush()
        return client

    def delete_client(self, client: Client) -> None:
        self.db.delete(client)
        self.db.flush()

    def count_active_clients(self) -> int:
        return self.db.scalar(select(func.count(Client.id)).where(Client.stage != ClientStage.LOST)) or 0

    def count_clients_by_stage(self) -> dict[str, int]:
        rows = self.db.execute(select(Client.stage, func.count(Client.id)).group_by(Client.stage)).all()
        return {stage.value: int(count) for stage, count in rows}

    def total_deal_value(self) -> Decimal:
        total = self.db.scalar(select(func.coalesce(func.sum(Client.deal_value), 0)))
        return Decimal(str(total))

    # ---------- Vendors ----------
    def list_vendors(self) -> list[Vendor]:
        return self.db.scalars(select(Vendor).order_by(Vendor.name.asc(), Vendor.id.asc())).all()

    def get_vendor(self, vendor_id: UUID) -> Vendor | None:
        return self.db.get(Vendor, vendor_id)

    def add_vendor(self, vendor: Vendor) -> Vendor:
        self.db.add(vendor)
        self.db.flush()
        return vendor

    def delete_vendor(self, vendor: Vendor) -> None:
        self.db.delete(vendor)
        self.db.flush()

    # ---------- Calendar events ----------
    def list_events(
        self,
        visibility: ColumnElement[bool],
        *,
        start_from: datetime | None = None,
        start_before: datetime | None = None,
    ) -> list[CalendarEvent]:
        conditions = [visibility]
        if start_from is not None:
            conditions.append(CalendarEvent.start_time >= start_from)
        if start_before is not None:
            conditions.append(CalendarEvent.start_time < start_before)
        return self.db.scalars(
            select(CalendarEvent)
            .where(and_(*conditions))
            .order_by(CalendarEvent.start_time.asc(), CalendarEvent.id.asc())
        ).all()

    def get_event(self, event_id: UUID) -> CalendarEvent | None:
        return self.db.get(CalendarEvent, event_id)

    def add_event(self, event: CalendarEvent) -> CalendarEvent:
        self.db.add(event)
        self.db.flush()
        return event

    def delete_event(self, event: CalendarEvent) -> None:
        self.db.delete(event)
        self.db.flush()

    def count_events(self, visibility: ColumnElement[bool], *, start_from: datetime | None = None) -> int:
        statement = select(func.count(CalendarEvent.id)).where(visibility)
        if start_from is not None:
            statement = statement.where(CalendarEvent.start_time >= start_from)
        return self.db.scalar(statement) or 0

    # ---------- Tasks ----------
    def list_tasks(self, visibility: ColumnElement[bool], *, filters: list[ColumnElement[bool]]) -> list[Task]:
        return self.db.scalars(
            select(Task)
            .where(and_(visibility, *filters))
            .order_by(Task.due_date.asc(), Task.created_at.desc(), Task.id.asc())
        ).all()

    def get_task(self, task_id: UUID) -> Task | None:
        return self.db.get(Task, task_id)

    def add_task(self, task: Task) -> Task:
        self.db.add(task)
        self.db.flush()
        return task

    def delete_task(self, task: Task) -> None:
        self.db.delete(task)
        self.db.flush()

    def count_tasks_by(self, visibility: ColumnElement[bool], column) -> dict[str, int]:
        rows = self.db.execute(select(column, func.count(Task.id)).where(visibility).group_by(column)).all()
        return {key.value: int(count) for key, count in rows}

    # ---------- Task grants ----------
    def list_grants(self, task_id: UUID) -> list[SharedTaskGrant]:
        return self.db.scalars(
            select(SharedTaskGrant)
            .where(SharedTaskGrant.task_id == task_id)
            .order_by(SharedTaskGrant.created_at.asc(), SharedTaskGrant.id.asc())
        ).all()

    def add_grant(self, grant: SharedTaskGrant) -> SharedTaskGrant:
        self.db.add(grant)
        self.db.flush()
        return grant

    def delete_grant(self, grant: SharedTaskGrant) -> None:
        self.db.delete(grant)
        self.db.flush()

    # ---------- Task groups ----------
    def list_task_groups(self) -> list[TaskGroup]:
        return self.db.scalars(
            select(TaskGroup).order_by(TaskGroup.created_at.desc(), TaskGroup.id.asc())
        ).all()

    def get_task_group(self, group_id: UUID) -> TaskGroup | None:
        return self.db.get(TaskGroup, group_id)

    def add_task_group(self, group: TaskGroup) -> TaskGroup:
        self.db.add(group)
        self.db.flush()
        return group

    def delete_task_group(self, group: TaskGroup) -> None:
        self.db.delete(group)
        self.db.flush()

    def get_group_member(self, group_id: UUID, task_id: UUID) -> TaskGroupMember | None:
        return self.db.scalar(
            select(TaskGroupMember).where(
                and_(TaskGroupMember.task_group_id == group_id, TaskGroupMember.task_id == task_id)
            )
        )

    def next_order_index(self, group_id: UUID) -> int:
        current = self.db.scalar(
            select(func.max(TaskGroupMember.order_index)).where(TaskGroupMember.task_group_id == group_id)
        )
        return 0 if current is None else int(current) + 1

    def add_group_member(self, member: TaskGroupMember) -> TaskGroupMember:
        self.db.add(member)
        self.db.flush()
        return member

    def delete_group_member(self, member: TaskGroupMember) -> None:
        self.db.delete(member)
        self.db.flush()

    # ---------- Timelines ----------
    def list_recent_tasks(
        self,
        visibility: ColumnElement[bool],
        *,
        updated_from: datetime | None,
        updated_before: datetime | None,
        limit: int,
    ) -> list[Task]:
        conditions = [visibility, *_date_window(Task.updated_at, updated_from, updated_before)]
        return self.db.scalars(
            select(Task)
            .where(and_(*conditions))
            .order_by(Task.updated_at.desc(), Task.id.asc())
            .limit(limit)
        ).all()

    def list_recent_events(
        self,
        visibility: ColumnElement[bool],
        *,
        created_from: datetime | None,
        created_before: datetime | None,
        limit: int,
    ) -> list[CalendarEvent]:
        conditions = [visibility, *_date_window(CalendarEvent.created_at, created_from, created_before)]
        return self.db.scalars(
            select(CalendarEvent)
            .where(and_(*conditions))
            .order_by(CalendarEvent.created_at.desc(), CalendarEvent.id.asc())
            .limit(limit)
        ).all()

    # ---------- Budgets ----------
    def list_budgets(
        self,
        *,
        client_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Budget]:
        conditions = _date_window(Budget.start_date, start, end)
        if client_id is not None:
            conditions.append(Budget.client_id == client_id)
        return self.db.scalars(
            select(Budget).where(and_(True, *conditions)).order_by(Budget.start_date.desc(), Budget.id.asc())
        ).all()

    def get_budget(self, budget_id: UUID) -> Budget | None:
        return self.db.get(Budget, budget_id)

    def add_budget(self, budget: Budget) -> Budget:
        self.db.add(budget)
        self.db.flush()
        return budget

    def delete_budget(self, budget: Budget) -> None:
        self.db.delete(budget)
        self.db.flush()

    def count_active_budgets(self) -> int:
        return self.db.scalar(select(func.count(Budget.id)).where(Budget.status == "active")) or 0

    def budget_spent_amounts(self, budget_ids: list[UUID]) -> dict[UUID, Decimal]:
        """Sum approved expenses per budget at read time."""

        if not budget_ids:
            return {}
        rows = self.db.execute(
            select(Expense.budget_id, func.coalesce(func.sum(Expense.amount), 0))
            .where(
                and_(
                    Expense.budget_id.in_(budget_ids),
                    Expense.status == ExpenseStatus.APPROVED,
                )
            )
            .group_by(Expense.budget_id)
        ).all()
        return {budget_id: Decimal(str(total)) for budget_id, total in rows}

    # ---------- Payments ----------
    def list_payments(
        self,
        *,
        client_id: UUID | None = None,
        status: PaymentStatus | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Payment]:
        conditions = _date_window(Payment.payment_date, start, end)
        if client_id is not None:
            conditions.append(Payment.client_id == client_id)
        if status is not None:
            conditions.append(Payment.status == status)
        return self.db.scalars(
            select(Payment)
            .where(and_(True, *conditions))
            .order_by(Payment.payment_date.desc(), Payment.id.asc())
        ).all()

    def get_payment(self, payment_id: UUID) -> Payment | None:
        return self.db.get(Payment, payment_id)

    def add_payment(self, payment: Payment) -> Payment:
        self.db.add(payment)
        self.db.flush()
        return payment

    def delete_payment(self, payment: Payment) -> None:
        self.db.delete(payment)
        self.db.flush()

    # ---------- Expenses ----------
    def list_expenses(
        self,
        *,
        client_id: UUID | None = None,
        budget_id: UUID | None = None,
        vendor_id: UUID | None = None,
        status: ExpenseStatus | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Expense]:
        conditions = _date_window(Expense.expense_date, start, end)
        if client_id is not None:
            conditions.append(Expense.client_id == client_id)
        if budget_id is not None:
            conditions.append(Expense.budget_id == budget_id)
        if vendor_id is not None:
            conditions.append(Expense.vendor_id == vendor_id)
        if status is not None:
            conditions.append(Expense.status == status)
        return self.db.scalars(
            select(Expense)
            .where(and_(True, *conditions))
            .order_by(Expense.expense_date.desc(), Expense.id.asc())
        ).all()

    def get_expense(self, expense_id: UUID) -> Expense | None:
        return self.db.get(Expense, expense_id)

    def add_expense(self, expense: Expense) -> Expense:
        self.db.add(expense)
        self.db.flush()
        return expense

    def delete_expense(self, expense: Expense) -> None:
        self.db.delete(expense)
        self.db.flush()

    # ---------- Report jobs ----------
    def list_report_jobs(self, *, limit: int, offset: int) -> list[ReportJob]:
        return self.db.scalars(
            select(ReportJob)
            .order_by(ReportJob.created_at.desc(), ReportJob.id.desc())
            .limit(limit)
            .offset(offset)
        ).all()

    def count_report_jobs(self) -> int:
        return self.db.scalar(select(func.count(ReportJob.id))) or 0

    def get_report_job(self, job_id: UUID) -> ReportJob | None:
        return self.db.get(ReportJob, job_id)

    def add_report_job(self, job: ReportJob) -> ReportJob:
        self.db.add(job)
        self.db.flush()
        return job

    def delete_report_job(self, job: ReportJob) -> None:
        self.db.delete(job)
        self.db.flush()
