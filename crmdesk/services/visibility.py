"""Shared/personal partitioning of calendar events and tasks.

Events carry a single ``is_shared`` flag: shared events are visible to every
team member, personal events only to their owner. Tasks are visible to their
assignee and to every user named by a ``SharedTaskGrant``; the task's own
``is_shared`` flag does not widen visibility.

Each rule exists twice: as a SQL predicate for list queries and as an in-memory
predicate for single-record access checks. Both must agree.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import ColumnElement, and_, exists, or_, select

from crmdesk.core.errors import InvalidArgument
from crmdesk.models.entities import CalendarEvent, GrantPermission, SharedTaskGrant, Task


class ViewFilter(str, enum.Enum):
    SHARED = "shared"
    PERSONAL = "personal"


def parse_view(raw: str | None) -> ViewFilter | None:
    """Parse the ``view`` query value; blank means unset, anything unknown is rejected."""

    if raw is None or not raw.strip():
        return None
    try:
        return ViewFilter(raw.strip().lower())
    except ValueError:
        raise InvalidArgument("view must be one of: shared, personal") from None


# ---------- Events ----------
def event_visibility_clause(user_id: UUID, view: ViewFilter | None = None) -> ColumnElement[bool]:
    shared = CalendarEvent.is_shared.is_(True)
    personal = and_(CalendarEvent.is_shared.is_(False), CalendarEvent.owner_id == user_id)
    if view is ViewFilter.SHARED:
        return shared
    if view is ViewFilter.PERSONAL:
        return personal
    return or_(shared, personal)


def is_event_visible(event: CalendarEvent, user_id: UUID) -> bool:
    return bool(event.is_shared) or event.owner_id == user_id


# ---------- Tasks ----------
def _grant_exists(user_id: UUID) -> ColumnElement[bool]:
    return exists(
        select(SharedTaskGrant.id).where(
            and_(SharedTaskGrant.task_id == Task.id, SharedTaskGrant.grantee_id == user_id)
        )
    )


def task_visibility_clause(user_id: UUID, view: ViewFilter | None = None) -> ColumnElement[bool]:
    assigned = Task.assignee_id == user_id
    granted = _grant_exists(user_id)
    if view is ViewFilter.SHARED:
        return granted
    if view is ViewFilter.PERSONAL:
        return assigned
    return or_(assigned, granted)


def is_task_visible(task: Task, grantee_ids: Iterable[UUID], user_id: UUID) -> bool:
    return task.assignee_id == user_id or user_id in set(grantee_ids)


def can_edit_task(task: Task, grants: Iterable[SharedTaskGrant], user_id: UUID) -> bool:
    if task.assignee_id == user_id:
        return True
    return any(
        grant.grantee_id == user_id and grant.permission_level == GrantPermission.EDIT
        for grant in grants
    )


def can_delete_task(task: Task, user_id: UUID) -> bool:
    return task.assignee_id == user_id
