"""Team user endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from crmdesk.api.responses import success
from crmdesk.core.auth import RequestUserContext, get_current_user_context
from crmdesk.db.dependencies import get_db_session
from crmdesk.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
def list_users(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    return success([service.serialize_user(row) for row in service.list_users()])


@router.get("/{user_id}")
def get_user(
    user_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    return success(service.serialize_user(service.get_user(user_id)))
