"""Liveness and readiness checks."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from crmdesk.core.config import get_settings
from crmdesk.db.dependencies import get_db_session

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/ready")
def readiness(db: Session = Depends(get_db_session)) -> dict[str, str]:
    """Report ready once the data store answers; store failures map to the 500 envelope."""

    db.execute(text("SELECT 1"))
    return {"status": "ready", "environment": get_settings().app_env}
