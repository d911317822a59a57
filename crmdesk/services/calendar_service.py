"""Calendar events, tasks and task sharing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ColumnElement
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from crmdesk.core.auth import RequestUserContext
from crmdesk.core.errors import Conflict, InvalidArgument, NotFound
from crmdesk.models.entities import (
    CalendarEvent,
    EventType,
    GrantPermission,
    SharedTaskGrant,
    Task,
    TaskPriority,
    TaskStatus,
)
from crmdesk.repositories.crm_repository import CrmRepository
from crmdesk.services import UNSET
from crmdesk.services.finance_aggregator import ratio_percent
from crmdesk.services.visibility import (
    ViewFilter,
    can_delete_task,
    can_edit_task,
    event_visibility_clause,
    is_event_visible,
    is_task_visible,
    task_visibility_clause,
)

logger = logging.getLogger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize to an aware UTC datetime. Naive values are read as UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(slots=True)
class EventCreateData:
    title: str
    start_time: datetime
    end_time: datetime | None = None
    description: str | None = None
    type: EventType = EventType.MEETING
    location: str | None = None
    meeting_url: str | None = None
    client_id: UUID | None = None
    is_shared: bool = False


@dataclass(slots=True)
class EventUpdateData:
    title: str | None = None
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    type: EventType | None = None
    location: str | None = None
    meeting_url: str | None = None
    client_id: object = UNSET
    is_shared: bool | None = None


@dataclass(slots=True)
class TaskCreateData:
    title: str
    description: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    assignee_id: UUID | None = None
    client_id: UUID | None = None
    is_shared: bool = False


@dataclass(slots=True)
class TaskUpdateData:
    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: object = UNSET
    assignee_id: UUID | None = None
    client_id: object = UNSET
    is_shared: bool | None = None


@dataclass(slots=True)
class TaskFilters:
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    client_id: UUID | None = None


@dataclass(slots=True)
class ShareTaskData:
    user_ids: list[UUID] = field(default_factory=list)
    permission_level: GrantPermission = GrantPermission.VIEW


class CalendarService:
    """Event and task operations filtered through the visibility rules."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = CrmRepository(db)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_event(event: CalendarEvent) -> dict[str, object]:
        return {
            "id": str(event.id),
            "title": event.title,
            "description": event.description,
            "start_time": as_utc(event.start_time).isoformat(),
            "end_time": as_utc(event.end_time).isoformat() if event.end_time else None,
            "type": event.type.value,
            "location": event.location,
            "meeting_url": event.meeting_url,
            "client_id": str(event.client_id) if event.client_id else None,
            "is_shared": event.is_shared,
            "owner_id": str(event.owner_id) if event.owner_id else None,
            "created_by": str(event.created_by),
            "created_at": event.created_at.isoformat(),
            "updated_at": event.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_task(task: Task) -> dict[str, object]:
        return {
            "id": str(task.id),
            "title": task.title,
            "description": task.description,
            "status": task.status.value,
            "priority": task.priority.value,
            "due_date": as_utc(task.due_date).isoformat() if task.due_date else None,
            "assignee_id": str(task.assignee_id) if task.assignee_id else None,
            "client_id": str(task.client_id) if task.client_id else None,
            "is_shared": task.is_shared,
            "created_by": str(task.created_by),
            "created_at": task.created_at.isoformat(),
            "updated_at": task.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_grant(grant: SharedTaskGrant) -> dict[str, object]:
        return {
            "id": str(grant.id),
            "task_id": str(grant.task_id),
            "grantee_id": str(grant.grantee_id),
            "permission_level": grant.permission_level.value,
            "granted_by": str(grant.granted_by),
            "created_at": grant.created_at.isoformat(),
        }

    # ---------- Validation ----------
    def _validate_client(self, client_id: UUID | None) -> None:
        if client_id is not None and self.repo.get_client(client_id) is None:
            raise InvalidArgument("client_id does not reference an existing client")

    def _validate_user(self, user_id: UUID, field_name: str) -> None:
        if self.repo.get_user(user_id) is None:
            raise InvalidArgument(f"{field_name} does not reference an existing user")

    @staticmethod
    def _validate_time_range(start_time: datetime, end_time: datetime | None) -> None:
        if end_time is not None and end_time < start_time:
            raise InvalidArgument("end_time must not be before start_time")

    @staticmethod
    def _require_title(title: str) -> str:
        cleaned = title.strip()
        if not cleaned:
            raise InvalidArgument("title is required")
        return cleaned

    # ---------- Events ----------
    def _visible_event(self, *, context: RequestUserContext, event_id: UUID) -> CalendarEvent:
        event = self.repo.get_event(event_id)
        if event is None or not is_event_visible(event, context.user_id):
            raise NotFound("Event not found")
        return event

    def list_events(
        self,
        *,
        context: RequestUserContext,
        view: ViewFilter | None,
        start_from: datetime | None = None,
        start_before: datetime | None = None,
    ) -> list[CalendarEvent]:
        if start_from is not None and start_before is not None and start_before < start_from:
            raise InvalidArgument("end_date must be greater than or equal to start_date")
        return self.repo.list_events(
            event_visibility_clause(context.user_id, view),
            start_from=start_from,
            start_before=start_before,
        )

    def get_event(self, *, context: RequestUserContext, event_id: UUID) -> CalendarEvent:
        return self._visible_event(context=context, event_id=event_id)

    def create_event(self, *, context: RequestUserContext, data: EventCreateData) -> CalendarEvent:
        title = self._require_title(data.title)
        start_time = as_utc(data.start_time)
        end_time = as_utc(data.end_time)
        self._validate_time_range(start_time, end_time)
        self._validate_client(data.client_id)

        now = datetime.utcnow()
        event = CalendarEvent(
            title=title,
            description=data.description,
            start_time=start_time,
            end_time=end_time,
            type=data.type,
            location=data.location,
            meeting_url=data.meeting_url,
            client_id=data.client_id,
            is_shared=data.is_shared,
            owner_id=None if data.is_shared else context.user_id,
            created_by=context.user_id,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_event(event)
        self.db.commit()
        self.db.refresh(event)
        logger.info("Event %s created by %s (shared=%s)", event.id, context.user_id, event.is_shared)
        return event

    def update_event(self, *, context: RequestUserContext, event_id: UUID, data: EventUpdateData) -> CalendarEvent:
        # Visible events are editable: shared ones by the team, personal ones by their owner.
        event = self._visible_event(context=context, event_id=event_id)

        # Stored values load naive on some backends and aware on others.
        start_time = as_utc(data.start_time if data.start_time is not None else event.start_time)
        end_time = as_utc(data.end_time if data.end_time is not None else event.end_time)
        self._validate_time_range(start_time, end_time)

        if data.title is not None:
            event.title = self._require_title(data.title)
        if data.description is not None:
            event.description = data.description
        event.start_time = start_time
        event.end_time = end_time
        if data.type is not None:
            event.type = data.type
        if data.location is not None:
            event.location = data.location
        if data.meeting_url is not None:
            event.meeting_url = data.meeting_url
        if data.client_id is not UNSET:
            self._validate_client(data.client_id)
            event.client_id = data.client_id
        if data.is_shared is not None and data.is_shared != event.is_shared:
            # A shared event has no owner; a personal one is owned by whoever makes it personal.
            event.is_shared = data.is_shared
            event.owner_id = None if data.is_shared else context.user_id
        event.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(event)
        return event

    def delete_event(self, *, context: RequestUserContext, event_id: UUID) -> None:
        event = self._visible_event(context=context, event_id=event_id)
        self.repo.delete_event(event)
        self.db.commit()
        logger.info("Event %s deleted by %s", event_id, context.user_id)

    # ---------- Tasks ----------
    def _visible_task(self, *, context: RequestUserContext, task_id: UUID) -> tuple[Task, list[SharedTaskGrant]]:
        task = self.repo.get_task(task_id)
        if task is None:
            raise NotFound("Task not found")
        grants = self.repo.list_grants(task.id)
        if not is_task_visible(task, (grant.grantee_id for grant in grants), context.user_id):
            raise NotFound("Task not found")
        return task, grants

    @staticmethod
    def _task_filters(filters: TaskFilters) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        if filters.status is not None:
            conditions.append(Task.status == filters.status)
        if filters.priority is not None:
            conditions.append(Task.priority == filters.priority)
        if filters.client_id is not None:
            conditions.append(Task.client_id == filters.client_id)
        return conditions

    def list_tasks(
        self,
        *,
        context: RequestUserContext,
        view: ViewFilter | None,
        filters: TaskFilters,
    ) -> list[Task]:
        return self.repo.list_tasks(
            task_visibility_clause(context.user_id, view),
            filters=self._task_filters(filters),
        )

    def get_task(self, *, context: RequestUserContext, task_id: UUID) -> Task:
        task, _ = self._visible_task(context=context, task_id=task_id)
        return task

    def create_task(self, *, context: RequestUserContext, data: TaskCreateData) -> Task:
        title = self._require_title(data.title)
        assignee_id = data.assignee_id or context.user_id
        if data.assignee_id is not None:
            self._validate_user(data.assignee_id, "assignee_id")
        self._validate_client(data.client_id)

        now = datetime.utcnow()
        task = Task(
            title=title,
            description=data.description,
            status=data.status,
            priority=data.priority,
            due_date=as_utc(data.due_date),
            assignee_id=assignee_id,
            client_id=data.client_id,
            is_shared=data.is_shared,
            created_by=context.user_id,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_task(task)
        self.db.commit()
        self.db.refresh(task)
        logger.info("Task %s created by %s for %s", task.id, context.user_id, assignee_id)
        return task

    def update_task(self, *, context: RequestUserContext, task_id: UUID, data: TaskUpdateData) -> Task:
        task, grants = self._visible_task(context=context, task_id=task_id)
        if not can_edit_task(task, grants, context.user_id):
            raise NotFound("Task not found")

        if data.title is not None:
            task.title = self._require_title(data.title)
        if data.description is not None:
            task.description = data.description
        if data.status is not None:
            task.status = data.status
        if data.priority is not None:
            task.priority = data.priority
        if data.due_date is not UNSET:
            task.due_date = as_utc(data.due_date)
        if data.assignee_id is not None:
            self._validate_user(data.assignee_id, "assignee_id")
            task.assignee_id = data.assignee_id
        if data.client_id is not UNSET:
            self._validate_client(data.client_id)
            task.client_id = data.client_id
        if data.is_shared is not None:
            task.is_shared = data.is_shared
        task.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(task)
        return task

    def delete_task(self, *, context: RequestUserContext, task_id: UUID) -> None:
        task, _ = self._visible_task(context=context, task_id=task_id)
        if not can_delete_task(task, context.user_id):
            raise NotFound("Task not found")
        self.repo.delete_task(task)
        self.db.commit()
        logger.info("Task %s deleted by %s", task_id, context.user_id)

    # ---------- Sharing ----------
    def list_grants(self, *, context: RequestUserContext, task_id: UUID) -> list[SharedTaskGrant]:
        _, grants = self._visible_task(context=context, task_id=task_id)
        return grants

    def share_task(self, *, context: RequestUserContext, task_id: UUID, data: ShareTaskData) -> list[SharedTaskGrant]:
        """Grant access to ``data.user_ids``; existing grants take the new permission level."""

        if not data.user_ids:
            raise InvalidArgument("user_ids must contain at least one user")
        task, grants = self._visible_task(context=context, task_id=task_id)
        if not can_edit_task(task, grants, context.user_id):
            raise NotFound("Task not found")

        existing = {grant.grantee_id: grant for grant in grants}
        touched: list[SharedTaskGrant] = []
        for user_id in dict.fromkeys(data.user_ids):
            if user_id == task.assignee_id:
                continue
            self._validate_user(user_id, "user_ids")
            grant = existing.get(user_id)
            if grant is None:
                grant = self.repo.add_grant(
                    SharedTaskGrant(
                        task_id=task.id,
                        grantee_id=user_id,
                        permission_level=data.permission_level,
                        granted_by=context.user_id,
                        created_at=datetime.utcnow(),
                    )
                )
            else:
                grant.permission_level = data.permission_level
            touched.append(grant)

        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("Task was shared concurrently; retry the request") from exc
        for grant in touched:
            self.db.refresh(grant)
        logger.info("Task %s shared with %d user(s) by %s", task.id, len(touched), context.user_id)
        return touched

    def unshare_task(self, *, context: RequestUserContext, task_id: UUID, user_id: UUID) -> None:
        task, grants = self._visible_task(context=context, task_id=task_id)
        if not can_edit_task(task, grants, context.user_id):
            raise NotFound("Task not found")
        grant = next((grant for grant in grants if grant.grantee_id == user_id), None)
        if grant is None:
            raise NotFound("Task is not shared with this user")
        self.repo.delete_grant(grant)
        self.db.commit()

    # ---------- Stats ----------
    def stats(self, *, context: RequestUserContext) -> dict[str, object]:
        event_clause = event_visibility_clause(context.user_id)
        task_clause = task_visibility_clause(context.user_id)
        by_status = self.repo.count_tasks_by(task_clause, Task.status)
        by_priority = self.repo.count_tasks_by(task_clause, Task.priority)
        total_tasks = sum(by_status.values())
        completed = by_status.get(TaskStatus.COMPLETED.value, 0)
        return {
            "upcoming_events": self.repo.count_events(event_clause, start_from=datetime.now(timezone.utc)),
            "total_tasks": total_tasks,
            "completed_tasks": completed,
            "tasks_by_status": by_status,
            "tasks_by_priority": by_priority,
            "completion_rate": str(ratio_percent(Decimal(completed), Decimal(total_tasks))),
        }
