"""Report assembly, persisted report jobs and exports."""

from __future__ import annotations

import enum
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from crmdesk.core.auth import RequestUserContext
from crmdesk.core.config import get_settings
from crmdesk.core.errors import DataQualityWarning, InvalidArgument, NotFound
from crmdesk.models.entities import (
    ClientStage,
    Expense,
    ExpenseStatus,
    Payment,
    PaymentStatus,
    ReportJob,
    ReportJobStatus,
    VendorStatus,
)
from crmdesk.repositories.crm_repository import CrmRepository
from crmdesk.services.finance_aggregator import ZERO, aggregate, ratio_percent, validate_window
from crmdesk.services.finance_service import FinanceService
from crmdesk.services.report_rendering import (
    Columns,
    ExportFilePayload,
    render_csv,
    render_json,
    render_pdf,
    render_report_html,
    render_xlsx,
)

logger = logging.getLogger(__name__)

Q2 = Decimal("0.01")

# (summary, rows, warnings)
ReportParts = tuple[dict[str, object], list[dict[str, object]], list[DataQualityWarning]]


class ReportFormat(str, enum.Enum):
    JSON = "json"
    CSV = "csv"
    XLSX = "xlsx"
    PDF = "pdf"


@dataclass(frozen=True, slots=True)
class ReportDefinition:
    key: str
    title: str
    columns: Columns


REPORT_DEFINITIONS: dict[str, ReportDefinition] = {
    definition.key: definition
    for definition in (
        ReportDefinition(
            key="financial-summary",
            title="Financial Summary Report",
            columns=(("metric", "Metric"), ("value", "Value")),
        ),
        ReportDefinition(
            key="client-profitability",
            title="Client Profitability Analysis",
            columns=(
                ("companyName", "Company Name"),
                ("contactName", "Contact Name"),
                ("revenue", "Revenue"),
                ("expenses", "Expenses"),
                ("profit", "Profit"),
                ("profitMargin", "Profit Margin (%)"),
                ("roi", "ROI (%)"),
                ("budgetCount", "Budget Count"),
                ("paymentCount", "Payment Count"),
            ),
        ),
        ReportDefinition(
            key="budget-performance",
            title="Budget Performance Report",
            columns=(
                ("name", "Budget Name"),
                ("clientName", "Client"),
                ("allocated", "Allocated"),
                ("spent", "Spent"),
                ("remaining", "Remaining"),
                ("utilizationRate", "Utilization Rate (%)"),
                ("variance", "Variance"),
                ("variancePercentage", "Variance (%)"),
                ("status", "Status"),
                ("category", "Category"),
            ),
        ),
        ReportDefinition(
            key="payment-tracking",
            title="Payment Tracking Report",
            columns=(
                ("clientName", "Client Name"),
                ("amount", "Amount"),
                ("currency", "Currency"),
                ("paymentDate", "Payment Date"),
                ("status", "Status"),
                ("paymentMethod", "Payment Method"),
                ("invoiceNumber", "Invoice Number"),
                ("description", "Description"),
            ),
        ),
        ReportDefinition(
            key="client-overview",
            title="Client Overview Report",
            columns=(
                ("companyName", "Company Name"),
                ("contactName", "Contact Name"),
                ("email", "Email"),
                ("phone", "Phone"),
                ("stage", "Stage"),
                ("dealValue", "Deal Value"),
                ("paymentCount", "Payment Count"),
                ("totalRevenue", "Total Revenue"),
                ("budgetCount", "Budget Count"),
                ("totalBudget", "Total Budget"),
                ("createdAt", "Created At"),
                ("lastContact", "Last Contact"),
            ),
        ),
        ReportDefinition(
            key="vendor-analysis",
            title="Vendor Analysis Report",
            columns=(
                ("name", "Vendor Name"),
                ("contactPerson", "Contact Person"),
                ("email", "Email"),
                ("phone", "Phone"),
                ("status", "Status"),
                ("vendorType", "Vendor Type"),
                ("totalSpending", "Total Spending"),
                ("expenseCount", "Expense Count"),
                ("paymentTerms", "Payment Terms"),
                ("createdAt", "Created At"),
            ),
        ),
    )
}


def get_report_definition(report_type: str) -> ReportDefinition:
    definition = REPORT_DEFINITIONS.get(report_type.strip().lower())
    if definition is None:
        raise NotFound(f"Unknown report type: {report_type}")
    return definition


def parse_report_format(raw: str | None) -> ReportFormat:
    if raw is None or not raw.strip():
        return ReportFormat.JSON
    try:
        return ReportFormat(raw.strip().lower())
    except ValueError:
        raise InvalidArgument("format must be one of: json, csv, xlsx, pdf") from None


def _money(value: Decimal) -> str:
    return str(value)


def _average(total: Decimal, count: int) -> Decimal:
    return (total / count).quantize(Q2) if count else ZERO


def _group_by(records: list, attribute: str) -> dict[UUID, list]:
    grouped: dict[UUID, list] = defaultdict(list)
    for record in records:
        key = getattr(record, attribute)
        if key is not None:
            grouped[key].append(record)
    return grouped


class ReportService:
    """Builds report payloads, stores them as jobs and re-renders stored jobs."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = CrmRepository(db)
        self.finance = FinanceService(db)
        self.settings = get_settings()
        self._builders: dict[str, Callable[[date, date], ReportParts]] = {
            "financial-summary": self._financial_summary,
            "client-profitability": self._client_profitability,
            "budget-performance": self._budget_performance,
            "payment-tracking": self._payment_tracking,
            "client-overview": self._client_overview,
            "vendor-analysis": self._vendor_analysis,
        }

    # ---------- Serialization ----------
    @staticmethod
    def serialize_job(job: ReportJob, *, include_payload: bool = False) -> dict[str, object]:
        data: dict[str, object] = {
            "id": str(job.id),
            "report_type": job.report_type,
            "report_name": job.report_name,
            "format": job.format,
            "status": job.status.value,
            "start_date": job.start_date.isoformat(),
            "end_date": job.end_date.isoformat(),
            "created_by": str(job.created_by) if job.created_by else None,
            "created_at": job.created_at.isoformat(),
            "downloaded_at": job.downloaded_at.isoformat() if job.downloaded_at else None,
            "download_count": job.download_count,
        }
        if include_payload:
            data["payload"] = job.payload
        return data

    def download_url(self, job: ReportJob) -> str | None:
        if job.format == ReportFormat.JSON.value:
            return None
        return f"{self.settings.api_prefix}/reports/export/{job.id}/{job.format}"

    # ---------- Report builders ----------
    def _realized_rows(self, start: date, end: date) -> tuple[list[Payment], list[Expense]]:
        return (
            self.repo.list_payments(status=PaymentStatus.COMPLETED, start=start, end=end),
            self.repo.list_expenses(status=ExpenseStatus.APPROVED, start=start, end=end),
        )

    def _financial_summary(self, start: date, end: date) -> ReportParts:
        payments, expenses = self._realized_rows(start, end)
        metrics = aggregate(payments, expenses)
        budgets = self.repo.list_budgets(start=start, end=end)
        total_budget = sum((budget.total_amount for budget in budgets), ZERO)

        summary = metrics.to_dict()
        summary["totalBudget"] = _money(total_budget)
        summary["budgetCount"] = len(budgets)
        rows = [
            {"metric": "Total Revenue", "value": _money(metrics.total_revenue)},
            {"metric": "Total Budget", "value": _money(total_budget)},
            {"metric": "Total Expenses", "value": _money(metrics.total_expenses)},
            {"metric": "Net Profit", "value": _money(metrics.net_profit)},
            {"metric": "Profit Margin (%)", "value": str(metrics.profit_margin)},
        ]
        return summary, rows, metrics.warnings

    def _client_profitability(self, start: date, end: date) -> ReportParts:
        payments, expenses = self._realized_rows(start, end)
        payments_by_client = _group_by(payments, "client_id")
        expenses_by_client = _group_by(expenses, "client_id")
        budgets_by_client = _group_by(self.repo.list_budgets(start=start, end=end), "client_id")

        rows: list[dict[str, object]] = []
        warnings: list[DataQualityWarning] = []
        total_revenue = ZERO
        total_expenses = ZERO
        roi_values: list[Decimal] = []
        for client in self.repo.list_clients():
            metrics = aggregate(payments_by_client[client.id], expenses_by_client[client.id])
            warnings.extend(metrics.warnings)
            roi = ratio_percent(metrics.net_profit, metrics.total_expenses)
            total_revenue += metrics.total_revenue
            total_expenses += metrics.total_expenses
            roi_values.append(roi)
            rows.append(
                {
                    "clientId": str(client.id),
                    "companyName": client.company_name,
                    "contactName": client.contact_name,
                    "revenue": _money(metrics.total_revenue),
                    "expenses": _money(metrics.total_expenses),
                    "profit": _money(metrics.net_profit),
                    "profitMargin": str(metrics.profit_margin),
                    "roi": str(roi),
                    "budgetCount": len(budgets_by_client[client.id]),
                    "paymentCount": metrics.payment_count,
                }
            )
        rows.sort(key=lambda row: Decimal(str(row["profit"])), reverse=True)

        summary = {
            "totalClients": len(rows),
            "totalRevenue": _money(total_revenue),
            "totalExpenses": _money(total_expenses),
            "totalProfit": _money(total_revenue - total_expenses),
            "avgROI": str(_average(sum(roi_values, ZERO), len(roi_values))),
        }
        return summary, rows, warnings

    def _budget_performance(self, start: date, end: date) -> ReportParts:
        views = self.finance.budget_views(self.repo.list_budgets(start=start, end=end))
        client_names = {client.id: client.company_name for client in self.repo.list_clients()}

        rows: list[dict[str, object]] = []
        total_allocated = ZERO
        total_spent = ZERO
        utilization_values: list[Decimal] = []
        for view in views:
            budget = view.budget
            allocated = budget.total_amount
            spent = view.spent_amount
            remaining = view.remaining_amount
            utilization = ratio_percent(spent, allocated)
            total_allocated += allocated
            total_spent += spent
            utilization_values.append(utilization)
            rows.append(
                {
                    "budgetId": str(budget.id),
                    "name": budget.name,
                    "clientId": str(budget.client_id),
                    "clientName": client_names.get(budget.client_id),
                    "allocated": _money(allocated),
                    "spent": _money(spent),
                    "remaining": _money(remaining),
                    "utilizationRate": str(utilization),
                    "variance": _money(remaining),
                    "variancePercentage": str(ratio_percent(remaining, allocated)),
                    "status": budget.status,
                    "category": budget.category,
                }
            )

        summary = {
            "totalBudgets": len(rows),
            "totalAllocated": _money(total_allocated),
            "totalSpent": _money(total_spent),
            "totalRemaining": _money(total_allocated - total_spent),
            "avgUtilization": str(_average(sum(utilization_values, ZERO), len(utilization_values))),
        }
        return summary, rows, []

    def _payment_tracking(self, start: date, end: date) -> ReportParts:
        payments = self.repo.list_payments(start=start, end=end)
        client_names = {client.id: client.company_name for client in self.repo.list_clients()}
        metrics = aggregate(payments, [])

        counts = {status.value: 0 for status in PaymentStatus}
        for payment in payments:
            counts[payment.status.value] += 1
        total = len(payments)

        summary: dict[str, object] = {
            "totalPayments": total,
            "completedPayments": counts[PaymentStatus.COMPLETED.value],
            "pendingPayments": counts[PaymentStatus.PENDING.value],
            "failedPayments": counts[PaymentStatus.FAILED.value],
            "cancelledPayments": counts[PaymentStatus.CANCELLED.value],
            "refundedPayments": counts[PaymentStatus.REFUNDED.value],
            "totalAmount": _money(metrics.total_revenue),
            "completionRate": str(
                ratio_percent(Decimal(counts[PaymentStatus.COMPLETED.value]), Decimal(total))
            ),
        }
        rows = [
            {
                "id": str(payment.id),
                "clientName": client_names.get(payment.client_id) or "N/A",
                "amount": _money(payment.amount),
                "currency": payment.currency,
                "paymentDate": payment.payment_date.isoformat(),
                "status": payment.status.value,
                "paymentMethod": payment.payment_method.value,
                "invoiceNumber": payment.invoice_number,
                "description": payment.description,
            }
            for payment in payments
        ]
        return summary, rows, metrics.warnings

    def _client_overview(self, start: date, end: date) -> ReportParts:
        payments, _ = self._realized_rows(start, end)
        payments_by_client = _group_by(payments, "client_id")
        budgets_by_client = _group_by(self.repo.list_budgets(start=start, end=end), "client_id")

        rows: list[dict[str, object]] = []
        warnings: list[DataQualityWarning] = []
        total_revenue = ZERO
        active = 0
        for client in self.repo.list_clients():
            metrics = aggregate(payments_by_client[client.id], [])
            warnings.extend(metrics.warnings)
            total_revenue += metrics.total_revenue
            if client.stage != ClientStage.LOST:
                active += 1
            client_budgets = budgets_by_client[client.id]
            rows.append(
                {
                    "id": str(client.id),
                    "companyName": client.company_name,
                    "contactName": client.contact_name,
                    "email": client.email,
                    "phone": client.phone,
                    "stage": client.stage.value,
                    "dealValue": _money(client.deal_value if client.deal_value is not None else ZERO),
                    "paymentCount": metrics.payment_count,
                    "totalRevenue": _money(metrics.total_revenue),
                    "budgetCount": len(client_budgets),
                    "totalBudget": _money(sum((budget.total_amount for budget in client_budgets), ZERO)),
                    "createdAt": client.created_at.isoformat(),
                    "lastContact": client.last_contact.isoformat() if client.last_contact else None,
                }
            )

        summary = {
            "totalClients": len(rows),
            "activeClients": active,
            "lostClients": len(rows) - active,
            "totalRevenue": _money(total_revenue),
            "averageRevenue": _money(_average(total_revenue, len(rows))),
        }
        return summary, rows, warnings

    def _vendor_analysis(self, start: date, end: date) -> ReportParts:
        _, expenses = self._realized_rows(start, end)
        expenses_by_vendor = _group_by(expenses, "vendor_id")

        rows: list[dict[str, object]] = []
        warnings: list[DataQualityWarning] = []
        total_spending = ZERO
        active = 0
        for vendor in self.repo.list_vendors():
            metrics = aggregate([], expenses_by_vendor[vendor.id])
            warnings.extend(metrics.warnings)
            total_spending += metrics.total_expenses
            if vendor.status == VendorStatus.ACTIVE:
                active += 1
            rows.append(
                {
                    "id": str(vendor.id),
                    "name": vendor.name,
                    "contactPerson": vendor.contact_person,
                    "email": vendor.email,
                    "phone": vendor.phone,
                    "status": vendor.status.value,
                    "vendorType": vendor.category,
                    "totalSpending": _money(metrics.total_expenses),
                    "expenseCount": metrics.expense_count,
                    "paymentTerms": vendor.payment_terms,
                    "createdAt": vendor.created_at.isoformat(),
                }
            )

        summary = {
            "totalVendors": len(rows),
            "activeVendors": active,
            "inactiveVendors": len(rows) - active,
            "totalSpending": _money(total_spending),
            "averageSpending": _money(_average(total_spending, len(rows))),
        }
        return summary, rows, warnings

    def build_payload(self, *, report_type: str, start_date: date, end_date: date) -> dict[str, object]:
        """Assemble a report payload; it carries no timestamps so reruns compare equal."""

        definition = get_report_definition(report_type)
        validate_window(start_date, end_date)
        summary, rows, warnings = self._builders[definition.key](start_date, end_date)
        if warnings:
            logger.warning("Report %s produced %d data quality warning(s)", definition.key, len(warnings))
        return {
            "reportType": definition.key,
            "title": definition.title,
            "dateRange": {"startDate": start_date.isoformat(), "endDate": end_date.isoformat()},
            "summary": summary,
            "rows": rows,
            "warnings": [warning.to_dict() for warning in warnings],
        }

    # ---------- Jobs ----------
    def generate(
        self,
        *,
        context: RequestUserContext,
        report_type: str,
        start_date: date,
        end_date: date,
        format_name: str | None,
    ) -> ReportJob:
        definition = get_report_definition(report_type)
        report_format = parse_report_format(format_name)
        payload = self.build_payload(report_type=definition.key, start_date=start_date, end_date=end_date)

        job = ReportJob(
            report_type=definition.key,
            report_name=definition.title,
            format=report_format.value,
            status=ReportJobStatus.COMPLETED,
            start_date=start_date,
            end_date=end_date,
            payload=payload,
            created_by=context.user_id,
            created_at=datetime.utcnow(),
            download_count=0,
        )
        self.repo.add_report_job(job)
        self.db.commit()
        self.db.refresh(job)
        logger.info(
            "Report job %s generated: type=%s format=%s rows=%d",
            job.id,
            job.report_type,
            job.format,
            len(payload["rows"]),
        )
        return job

    def get_job(self, job_id: UUID) -> ReportJob:
        job = self.repo.get_report_job(job_id)
        if job is None:
            raise NotFound("Export job not found")
        return job

    def list_jobs(self, *, limit: int, offset: int) -> tuple[list[ReportJob], int]:
        if limit < 1 or offset < 0:
            raise InvalidArgument("limit must be positive and offset non-negative")
        limit = min(limit, self.settings.report_history_limit)
        return self.repo.list_report_jobs(limit=limit, offset=offset), self.repo.count_report_jobs()

    def delete_job(self, job_id: UUID) -> None:
        self.repo.delete_report_job(self.get_job(job_id))
        self.db.commit()

    def export(self, *, job_id: UUID, format_name: str) -> ExportFilePayload:
        """Render a stored job in ``format_name`` and record the download."""

        report_format = parse_report_format(format_name)
        job = self.get_job(job_id)
        definition = get_report_definition(job.report_type)
        payload = job.payload
        rows = list(payload.get("rows") or [])
        filename = f"{definition.key}-{job.start_date.isoformat()}-{job.end_date.isoformat()}"

        if report_format is ReportFormat.JSON:
            exported = render_json(payload, filename)
        elif report_format is ReportFormat.CSV:
            exported = render_csv(definition.columns, rows, filename)
        elif report_format is ReportFormat.XLSX:
            exported = render_xlsx(definition.title, payload.get("summary") or {}, definition.columns, rows, filename)
        else:
            html_string = render_report_html(
                title=definition.title,
                payload=payload,
                columns=definition.columns,
                generated_at=job.created_at.isoformat(),
            )
            exported = render_pdf(html_string, filename)

        job.download_count = (job.download_count or 0) + 1
        job.downloaded_at = datetime.utcnow()
        self.db.commit()
        logger.info("Report job %s exported as %s (download %d)", job.id, report_format.value, job.download_count)
        return exported
