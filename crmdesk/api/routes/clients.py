"""Client endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from crmdesk.api.responses import success
from crmdesk.core.auth import RequestUserContext, get_current_user_context
from crmdesk.db.dependencies import get_db_session
from crmdesk.models.entities import ClientStage
from crmdesk.services.client_service import ClientCreateData, ClientService, ClientUpdateData

router = APIRouter(prefix="/clients", tags=["clients"])


class ClientCreatePayload(BaseModel):
    company_name: str = Field(min_length=1, max_length=255)
    contact_name: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=50)
    stage: ClientStage = ClientStage.PROSPECT
    deal_value: Decimal | None = Field(default=None, ge=0)
    assigned_to: UUID | None = None


class ClientUpdatePayload(BaseModel):
    company_name: str | None = Field(default=None, min_length=1, max_length=255)
    contact_name: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=50)
    stage: ClientStage | None = None
    deal_value: Decimal | None = Field(default=None, ge=0)
    assigned_to: UUID | None = None
    last_contact: datetime | None = None


def _service(db: Session) -> ClientService:
    return ClientService(db)


@router.get("")
def list_clients(
    stage: ClientStage | None = None,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success([service.serialize_client(row) for row in service.list_clients(stage=stage)])


@router.post("", status_code=201)
def create_client(
    payload: ClientCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    client = service.create_client(context=context, data=ClientCreateData(**payload.model_dump()))
    return success(service.serialize_client(client))


@router.get("/stats")
def pipeline_stats(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return success(_service(db).pipeline_stats())


@router.get("/{client_id}")
def get_client(
    client_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success(service.serialize_client(service.get_client(client_id)))


@router.put("/{client_id}")
def update_client(
    client_id: UUID,
    payload: ClientUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    client = service.update_client(client_id=client_id, data=ClientUpdateData(**payload.model_dump()))
    return success(service.serialize_client(client))


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client(
    client_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_client(client_id=client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
