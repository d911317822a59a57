"""Chronological views over the tasks and events a caller can see."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from uuid import UUID

from sqlalchemy import ColumnElement, and_, func, select
from sqlalchemy.orm import Session

from crmdesk.core.auth import RequestUserContext
from crmdesk.core.errors import NotFound
from crmdesk.models.entities import CalendarEvent, Client, Task, TaskGroup, TaskGroupMember
from crmdesk.repositories.crm_repository import CrmRepository
from crmdesk.services.calendar_service import as_utc
from crmdesk.services.finance_aggregator import validate_window
from crmdesk.services.visibility import event_visibility_clause, task_visibility_clause

TEAM_ACTIVITY_LIMIT = 50


def _day_start(value: date | None) -> datetime | None:
    return datetime.combine(value, time.min, tzinfo=timezone.utc) if value is not None else None


def _task_date_window(start: datetime | None, end: datetime | None) -> list[ColumnElement[bool]]:
    # A task sits on the timeline at its due date, or its creation time when undated.
    anchor = func.coalesce(Task.due_date, Task.created_at)
    conditions: list[ColumnElement[bool]] = []
    if start is not None:
        conditions.append(anchor >= start)
    if end is not None:
        conditions.append(anchor < end)
    return conditions


def _task_anchor(task: Task) -> datetime:
    return as_utc(task.due_date or task.created_at)


def _sorted(entries: list[tuple[datetime, dict[str, object]]], *, newest_first: bool = False) -> list[dict[str, object]]:
    entries.sort(key=lambda entry: (entry[0], entry[1]["id"]), reverse=newest_first)
    return [item for _, item in entries]


class TimelineService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = CrmRepository(db)

    def client_timeline(
        self,
        *,
        context: RequestUserContext,
        client_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[dict[str, object]]:
        """Visible tasks and events for one client, oldest first."""

        validate_window(start_date, end_date)
        if self.repo.get_client(client_id) is None:
            raise NotFound("Client not found")
        start, end = _day_start(start_date), _day_start(end_date)

        tasks = self.repo.list_tasks(
            task_visibility_clause(context.user_id),
            filters=[Task.client_id == client_id, *_task_date_window(start, end)],
        )
        events = self.repo.list_events(
            and_(event_visibility_clause(context.user_id), CalendarEvent.client_id == client_id),
            start_from=start,
            start_before=end,
        )

        entries: list[tuple[datetime, dict[str, object]]] = []
        for task in tasks:
            anchor = _task_anchor(task)
            entries.append(
                (
                    anchor,
                    {
                        "id": str(task.id),
                        "type": "task",
                        "title": task.title,
                        "description": task.description,
                        "date": anchor.isoformat(),
                        "status": task.status.value,
                        "priority": task.priority.value,
                        "assignee_id": str(task.assignee_id) if task.assignee_id else None,
                    },
                )
            )
        for event in events:
            anchor = as_utc(event.start_time)
            entries.append(
                (
                    anchor,
                    {
                        "id": str(event.id),
                        "type": "event",
                        "title": event.title,
                        "description": event.description,
                        "date": anchor.isoformat(),
                        "status": "scheduled",
                        "event_type": event.type.value,
                    },
                )
            )
        return _sorted(entries)

    def task_timeline(
        self,
        *,
        context: RequestUserContext,
        task_group_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[dict[str, object]]:
        validate_window(start_date, end_date)
        filters = _task_date_window(_day_start(start_date), _day_start(end_date))
        if task_group_id is not None:
            if self.repo.get_task_group(task_group_id) is None:
                raise NotFound("Task group not found")
            filters.append(
                Task.id.in_(select(TaskGroupMember.task_id).where(TaskGroupMember.task_group_id == task_group_id))
            )
        tasks = self.repo.list_tasks(task_visibility_clause(context.user_id), filters=filters)

        clients: dict[UUID, Client | None] = {}
        entries: list[tuple[datetime, dict[str, object]]] = []
        for task in tasks:
            client = None
            if task.client_id is not None:
                if task.client_id not in clients:
                    clients[task.client_id] = self.repo.get_client(task.client_id)
                client = clients[task.client_id]
            group = self._group_for(task, task_group_id)
            anchor = _task_anchor(task)
            entries.append(
                (
                    anchor,
                    {
                        "id": str(task.id),
                        "type": "task",
                        "title": task.title,
                        "description": task.description,
                        "date": anchor.isoformat(),
                        "status": task.status.value,
                        "priority": task.priority.value,
                        "assignee_id": str(task.assignee_id) if task.assignee_id else None,
                        "client": {"id": str(client.id), "company_name": client.company_name} if client else None,
                        "task_group": {"id": str(group.id), "name": group.name} if group else None,
                    },
                )
            )
        return _sorted(entries)

    @staticmethod
    def _group_for(task: Task, preferred_id: UUID | None) -> TaskGroup | None:
        memberships = sorted(task.group_memberships, key=lambda member: (member.created_at, str(member.id)))
        for member in memberships:
            if preferred_id is None or member.task_group_id == preferred_id:
                return member.task_group
        return None

    def team_timeline(
        self,
        *,
        context: RequestUserContext,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[dict[str, object]]:
        """Recent task updates and event creations visible to the caller, newest first."""

        validate_window(start_date, end_date)
        start, end = _day_start(start_date), _day_start(end_date)
        tasks = self.repo.list_recent_tasks(
            task_visibility_clause(context.user_id),
            updated_from=start,
            updated_before=end,
            limit=TEAM_ACTIVITY_LIMIT,
        )
        events = self.repo.list_recent_events(
            event_visibility_clause(context.user_id),
            created_from=start,
            created_before=end,
            limit=TEAM_ACTIVITY_LIMIT,
        )

        entries: list[tuple[datetime, dict[str, object]]] = []
        for task in tasks:
            anchor = as_utc(task.updated_at)
            entries.append(
                (
                    anchor,
                    {
                        "id": str(task.id),
                        "type": "task_update",
                        "title": f"Task updated: {task.title}",
                        "date": anchor.isoformat(),
                        "user_id": str(task.assignee_id) if task.assignee_id else None,
                        "client_id": str(task.client_id) if task.client_id else None,
                        "status": task.status.value,
                        "priority": task.priority.value,
                    },
                )
            )
        for event in events:
            anchor = as_utc(event.created_at)
            entries.append(
                (
                    anchor,
                    {
                        "id": str(event.id),
                        "type": "event_created",
                        "title": f"Event created: {event.title}",
                        "date": anchor.isoformat(),
                        "user_id": str(event.created_by),
                        "event_type": event.type.value,
                        "start_time": as_utc(event.start_time).isoformat(),
                    },
                )
            )
        return _sorted(entries, newest_first=True)
