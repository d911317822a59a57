"""Caller identity extraction."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.orm import Session

from crmdesk.core.errors import InvalidArgument, Unauthorized
from crmdesk.db.dependencies import get_db_session
from crmdesk.models.entities import User


@dataclass(frozen=True)
class RequestUserContext:
    """Authenticated request actor resolved from headers and DB state."""

    user_id: UUID
    email: str
    full_name: str
    role: str


def parse_uuid(value: str, *, field: str = "id") -> UUID:
    """Parse a textual identifier or raise InvalidArgument."""

    try:
        return UUID(str(value).strip())
    except (TypeError, ValueError, AttributeError):
        raise InvalidArgument(f"Invalid {field} format") from None


def ensure_user(
    db: Session,
    *,
    email: str,
    full_name: str,
    role: str = "user",
) -> User:
    """Ensure a user exists for ``email`` and return the persisted row.

    Utility exported for tests and seed helpers.
    """

    normalized_email = email.strip().lower()
    user = db.scalar(select(User).where(User.email == normalized_email))
    now = datetime.utcnow()
    if user is None:
        user = User(
            email=normalized_email,
            full_name=full_name.strip() or normalized_email,
            role=role,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
    else:
        user.full_name = full_name.strip() or user.full_name
        user.role = role
        user.updated_at = now
    db.commit()
    db.refresh(user)
    return user


def get_current_user_context(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db_session),
) -> RequestUserContext:
    """Resolve the calling user.

    Header strategy: an upstream gateway authenticates the session and forwards
    the user id in ``X-User-Id``.
    """

    if not x_user_id or not x_user_id.strip():
        raise Unauthorized()

    user_id = parse_uuid(x_user_id, field="user id")
    user = db.get(User, user_id)
    if user is None:
        raise Unauthorized()

    return RequestUserContext(
        user_id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role,
    )
