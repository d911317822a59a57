"""Client reference-data service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from crmdesk.core.auth import RequestUserContext
from crmdesk.core.errors import Conflict, InvalidArgument, NotFound
from crmdesk.models.entities import Budget, CalendarEvent, Client, ClientStage, Expense, Payment, Task
from crmdesk.repositories.crm_repository import CrmRepository
from crmdesk.services.finance_aggregator import ratio_percent

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ClientCreateData:
    company_name: str
    contact_name: str | None
    email: str | None
    phone: str | None
    stage: ClientStage
    deal_value: Decimal | None
    assigned_to: UUID | None


@dataclass(slots=True)
class ClientUpdateData:
    company_name: str | None = None
    contact_name: str | None = None
    email: str | None = None
    phone: str | None = None
    stage: ClientStage | None = None
    deal_value: Decimal | None = None
    assigned_to: UUID | None = None
    last_contact: datetime | None = None


class ClientService:
    """Client CRUD. Clients are team-wide reference data."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = CrmRepository(db)

    @staticmethod
    def serialize_client(client: Client) -> dict[str, object]:
        return {
            "id": str(client.id),
            "company_name": client.company_name,
            "contact_name": client.contact_name,
            "email": client.email,
            "phone": client.phone,
            "stage": client.stage.value,
            "deal_value": str(client.deal_value) if client.deal_value is not None else None,
            "assigned_to": str(client.assigned_to) if client.assigned_to else None,
            "last_contact": client.last_contact.isoformat() if client.last_contact else None,
            "created_at": client.created_at.isoformat(),
            "updated_at": client.updated_at.isoformat(),
        }

    def _validate_assignee(self, user_id: UUID | None) -> None:
        if user_id is not None and self.repo.get_user(user_id) is None:
            raise InvalidArgument("assigned_to does not reference an existing user")

    def get_client(self, client_id: UUID) -> Client:
        client = self.repo.get_client(client_id)
        if client is None:
            raise NotFound("Client not found")
        return client

    def list_clients(self, *, stage: ClientStage | None = None) -> list[Client]:
        return self.repo.list_clients(stage=stage)

    def pipeline_stats(self) -> dict[str, object]:
        """Stage counts, open deals and conversion rate across all clients."""

        counts = self.repo.count_clients_by_stage()
        stage_counts = {stage.value: counts.get(stage.value, 0) for stage in ClientStage}
        total = sum(stage_counts.values())
        closed = stage_counts[ClientStage.CLOSED.value]
        return {
            "total_clients": total,
            "active_deals": total - closed - stage_counts[ClientStage.LOST.value],
            "stage_counts": stage_counts,
            "total_deal_value": str(self.repo.total_deal_value()),
            "conversion_rate": str(ratio_percent(Decimal(closed), Decimal(total))),
        }

    def create_client(self, *, context: RequestUserContext, data: ClientCreateData) -> Client:
        company_name = data.company_name.strip()
        if not company_name:
            raise InvalidArgument("company_name is required")
        if data.deal_value is not None and data.deal_value < 0:
            raise InvalidArgument("deal_value must be non-negative")
        self._validate_assignee(data.assigned_to)

        now = datetime.utcnow()
        client = Client(
            company_name=company_name,
            contact_name=data.contact_name,
            email=data.email.strip().lower() if data.email else None,
            phone=data.phone,
            stage=data.stage,
            deal_value=data.deal_value,
            assigned_to=data.assigned_to or context.user_id,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_client(client)
        self.db.commit()
        self.db.refresh(client)
        logger.info("Client %s created by %s", client.id, context.user_id)
        return client

    def update_client(self, *, client_id: UUID, data: ClientUpdateData) -> Client:
        client = self.get_client(client_id)

        if data.company_name is not None:
            if not data.company_name.strip():
                raise InvalidArgument("company_name must not be empty")
            client.company_name = data.company_name.strip()
        if data.contact_name is not None:
            client.contact_name = data.contact_name
        if data.email is not None:
            client.email = data.email.strip().lower() or None
        if data.phone is not None:
            client.phone = data.phone
        if data.stage is not None:
            client.stage = data.stage
        if data.deal_value is not None:
            if data.deal_value < 0:
                raise InvalidArgument("deal_value must be non-negative")
            client.deal_value = data.deal_value
        if data.assigned_to is not None:
            self._validate_assignee(data.assigned_to)
            client.assigned_to = data.assigned_to
        if data.last_contact is not None:
            client.last_contact = data.last_contact
        client.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(client)
        return client

    def _reference_count(self, client_id: UUID) -> int:
        total = 0
        for model in (Budget, Payment, Expense, CalendarEvent, Task):
            total += self.db.scalar(select(func.count(model.id)).where(model.client_id == client_id)) or 0
        return total

    def delete_client(self, *, client_id: UUID) -> None:
        client = self.get_client(client_id)
        if self._reference_count(client.id) > 0:
            raise Conflict("Cannot delete client with linked budgets, payments, expenses, events or tasks")

        self.repo.delete_client(client)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("Cannot delete client with linked records") from exc
