"""Team member directory."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from crmdesk.core.errors import NotFound
from crmdesk.models.entities import User
from crmdesk.repositories.crm_repository import CrmRepository


class UserService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = CrmRepository(db)

    @staticmethod
    def serialize_user(user: User) -> dict[str, object]:
        return {
            "id": str(user.id),
            "email": user.email,
            "full_name": user.full_name,
            "role": user.role,
            "created_at": user.created_at.isoformat(),
            "updated_at": user.updated_at.isoformat(),
        }

    def list_users(self) -> list[User]:
        return self.repo.list_users()

    def get_user(self, user_id: UUID) -> User:
        user = self.repo.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user
