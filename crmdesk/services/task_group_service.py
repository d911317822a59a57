"""Task groups: named, ordered collections of tasks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from crmdesk.core.auth import RequestUserContext
from crmdesk.core.errors import Conflict, InvalidArgument, NotFound
from crmdesk.models.entities import Task, TaskGroup, TaskGroupMember
from crmdesk.repositories.crm_repository import CrmRepository
from crmdesk.services import UNSET
from crmdesk.services.calendar_service import CalendarService
from crmdesk.services.visibility import is_task_visible, task_visibility_clause

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TaskGroupCreateData:
    name: str
    description: str | None = None
    task_ids: list[UUID] = field(default_factory=list)


@dataclass(slots=True)
class TaskGroupUpdateData:
    name: str | None = None
    description: object = UNSET


class TaskGroupService:
    """Groups are team-wide; member tasks are only listed to callers who can see them."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = CrmRepository(db)

    @staticmethod
    def serialize_member(member: TaskGroupMember) -> dict[str, object]:
        return {
            "task_group_id": str(member.task_group_id),
            "task_id": str(member.task_id),
            "order_index": member.order_index,
            "created_at": member.created_at.isoformat(),
        }

    def serialize_group(self, group: TaskGroup, *, context: RequestUserContext) -> dict[str, object]:
        visible = self._visible_tasks(context, [member.task_id for member in group.members])
        return {
            "id": str(group.id),
            "name": group.name,
            "description": group.description,
            "created_by": str(group.created_by),
            "created_at": group.created_at.isoformat(),
            "updated_at": group.updated_at.isoformat(),
            "tasks": [
                {"order_index": member.order_index, "task": CalendarService.serialize_task(visible[member.task_id])}
                for member in group.members
                if member.task_id in visible
            ],
        }

    def _visible_tasks(self, context: RequestUserContext, task_ids: list[UUID]) -> dict[UUID, Task]:
        if not task_ids:
            return {}
        tasks = self.repo.list_tasks(task_visibility_clause(context.user_id), filters=[Task.id.in_(task_ids)])
        return {task.id: task for task in tasks}

    def _require_visible_task(self, context: RequestUserContext, task_id: UUID) -> Task:
        task = self.repo.get_task(task_id)
        if task is None:
            raise NotFound("Task not found")
        grantees = (grant.grantee_id for grant in self.repo.list_grants(task.id))
        if not is_task_visible(task, grantees, context.user_id):
            raise NotFound("Task not found")
        return task

    @staticmethod
    def _require_name(name: str) -> str:
        cleaned = name.strip()
        if not cleaned:
            raise InvalidArgument("name is required")
        return cleaned

    def get_group(self, group_id: UUID) -> TaskGroup:
        group = self.repo.get_task_group(group_id)
        if group is None:
            raise NotFound("Task group not found")
        return group

    def list_groups(self) -> list[TaskGroup]:
        return self.repo.list_task_groups()

    def create_group(self, *, context: RequestUserContext, data: TaskGroupCreateData) -> TaskGroup:
        name = self._require_name(data.name)
        task_ids = list(dict.fromkeys(data.task_ids))
        for task_id in task_ids:
            self._require_visible_task(context, task_id)

        now = datetime.utcnow()
        group = self.repo.add_task_group(
            TaskGroup(name=name, description=data.description, created_by=context.user_id, created_at=now, updated_at=now)
        )
        for index, task_id in enumerate(task_ids):
            self.repo.add_group_member(
                TaskGroupMember(task_group_id=group.id, task_id=task_id, order_index=index, created_at=now)
            )
        self.db.commit()
        self.db.refresh(group)
        logger.info("Task group %s created by %s with %d task(s)", group.id, context.user_id, len(task_ids))
        return group

    def update_group(self, *, group_id: UUID, data: TaskGroupUpdateData) -> TaskGroup:
        group = self.get_group(group_id)
        if data.name is not None:
            group.name = self._require_name(data.name)
        if data.description is not UNSET:
            group.description = data.description
        group.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(group)
        return group

    def delete_group(self, *, context: RequestUserContext, group_id: UUID) -> None:
        group = self.get_group(group_id)
        self.repo.delete_task_group(group)
        self.db.commit()
        logger.info("Task group %s deleted by %s", group_id, context.user_id)

    def add_task(
        self,
        *,
        context: RequestUserContext,
        group_id: UUID,
        task_id: UUID,
        order_index: int | None = None,
    ) -> TaskGroupMember:
        """Add a task to a group; without ``order_index`` it is appended after the last member."""

        group = self.get_group(group_id)
        self._require_visible_task(context, task_id)
        if self.repo.get_group_member(group.id, task_id) is not None:
            raise Conflict("Task is already in this group")
        if order_index is not None and order_index < 0:
            raise InvalidArgument("order_index must be non-negative")

        member = self.repo.add_group_member(
            TaskGroupMember(
                task_group_id=group.id,
                task_id=task_id,
                order_index=self.repo.next_order_index(group.id) if order_index is None else order_index,
                created_at=datetime.utcnow(),
            )
        )
        group.updated_at = datetime.utcnow()
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("Task is already in this group") from exc
        self.db.refresh(member)
        return member

    def remove_task(self, *, context: RequestUserContext, group_id: UUID, task_id: UUID) -> None:
        group = self.get_group(group_id)
        self._require_visible_task(context, task_id)
        member = self.repo.get_group_member(group.id, task_id)
        if member is None:
            raise NotFound("Task is not in this group")
        self.repo.delete_group_member(member)
        group.updated_at = datetime.utcnow()
        self.db.commit()
