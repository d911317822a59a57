"""Calendar endpoints: events, tasks, sharing, task groups, timelines and stats."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from crmdesk.api.responses import success
from crmdesk.core.auth import RequestUserContext, get_current_user_context
from crmdesk.db.dependencies import get_db_session
from crmdesk.models.entities import EventType, GrantPermission, TaskPriority, TaskStatus
from crmdesk.services.calendar_service import (
    CalendarService,
    EventCreateData,
    EventUpdateData,
    ShareTaskData,
    TaskCreateData,
    TaskFilters,
    TaskUpdateData,
)
from crmdesk.services.task_group_service import TaskGroupCreateData, TaskGroupService, TaskGroupUpdateData
from crmdesk.services.timeline_service import TimelineService
from crmdesk.services.visibility import parse_view

router = APIRouter(tags=["calendar"])


class EventCreatePayload(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    type: EventType = EventType.MEETING
    location: str | None = Field(default=None, max_length=255)
    meeting_url: str | None = Field(default=None, max_length=1000)
    client_id: UUID | None = None
    is_shared: bool = False


class EventUpdatePayload(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    type: EventType | None = None
    location: str | None = Field(default=None, max_length=255)
    meeting_url: str | None = Field(default=None, max_length=1000)
    client_id: UUID | None = None
    is_shared: bool | None = None


class TaskCreatePayload(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    assignee_id: UUID | None = None
    client_id: UUID | None = None
    is_shared: bool = False


class TaskUpdatePayload(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    assignee_id: UUID | None = None
    client_id: UUID | None = None
    is_shared: bool | None = None


class ShareTaskPayload(BaseModel):
    user_ids: list[UUID] = Field(min_length=1)
    permission_level: GrantPermission = GrantPermission.VIEW


class TaskGroupCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    task_ids: list[UUID] = Field(default_factory=list)


class TaskGroupUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None


class TaskGroupMemberPayload(BaseModel):
    task_id: UUID
    order_index: int | None = Field(default=None, ge=0)


def _service(db: Session) -> CalendarService:
    return CalendarService(db)


def _day_start(value: date | None) -> datetime | None:
    return datetime.combine(value, time.min, tzinfo=timezone.utc) if value is not None else None


# ---------- Events ----------
@router.get("/events")
def list_events(
    view: str | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_events(
        context=context,
        view=parse_view(view),
        start_from=_day_start(start_date),
        start_before=_day_start(end_date),
    )
    return success([service.serialize_event(row) for row in rows])


@router.post("/events", status_code=201)
def create_event(
    payload: EventCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    event = service.create_event(context=context, data=EventCreateData(**payload.model_dump()))
    return success(service.serialize_event(event))


@router.get("/events/{event_id}")
def get_event(
    event_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success(service.serialize_event(service.get_event(context=context, event_id=event_id)))


@router.put("/events/{event_id}")
def update_event(
    event_id: UUID,
    payload: EventUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    event = service.update_event(
        context=context,
        event_id=event_id,
        data=EventUpdateData(**payload.model_dump(exclude_unset=True)),
    )
    return success(service.serialize_event(event))


@router.delete("/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(
    event_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_event(context=context, event_id=event_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Tasks ----------
@router.get("/tasks")
def list_tasks(
    view: str | None = Query(default=None),
    task_status: TaskStatus | None = Query(default=None, alias="status"),
    priority: TaskPriority | None = Query(default=None),
    client_id: UUID | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_tasks(
        context=context,
        view=parse_view(view),
        filters=TaskFilters(status=task_status, priority=priority, client_id=client_id),
    )
    return success([service.serialize_task(row) for row in rows])


@router.post("/tasks", status_code=201)
def create_task(
    payload: TaskCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    task = service.create_task(context=context, data=TaskCreateData(**payload.model_dump()))
    return success(service.serialize_task(task))


@router.get("/tasks/{task_id}")
def get_task(
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success(service.serialize_task(service.get_task(context=context, task_id=task_id)))


@router.put("/tasks/{task_id}")
def update_task(
    task_id: UUID,
    payload: TaskUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    task = service.update_task(
        context=context,
        task_id=task_id,
        data=TaskUpdateData(**payload.model_dump(exclude_unset=True)),
    )
    return success(service.serialize_task(task))


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_task(context=context, task_id=task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/tasks/{task_id}/grants")
def list_task_grants(
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return success([service.serialize_grant(row) for row in service.list_grants(context=context, task_id=task_id)])


@router.post("/tasks/{task_id}/share", status_code=201)
def share_task(
    task_id: UUID,
    payload: ShareTaskPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    grants = service.share_task(
        context=context,
        task_id=task_id,
        data=ShareTaskData(user_ids=payload.user_ids, permission_level=payload.permission_level),
    )
    return success([service.serialize_grant(row) for row in grants])


@router.delete("/tasks/{task_id}/share/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def unshare_task(
    task_id: UUID,
    user_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).unshare_task(context=context, task_id=task_id, user_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Stats ----------
@router.get("/calendar/stats")
def calendar_stats(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return success(_service(db).stats(context=context))


# ---------- Task groups ----------
@router.get("/task-groups")
def list_task_groups(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TaskGroupService(db)
    return success([service.serialize_group(row, context=context) for row in service.list_groups()])


@router.post("/task-groups", status_code=201)
def create_task_group(
    payload: TaskGroupCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TaskGroupService(db)
    group = service.create_group(context=context, data=TaskGroupCreateData(**payload.model_dump()))
    return success(service.serialize_group(group, context=context))


@router.get("/task-groups/{group_id}")
def get_task_group(
    group_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TaskGroupService(db)
    return success(service.serialize_group(service.get_group(group_id), context=context))


@router.put("/task-groups/{group_id}")
def update_task_group(
    group_id: UUID,
    payload: TaskGroupUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TaskGroupService(db)
    group = service.update_group(
        group_id=group_id,
        data=TaskGroupUpdateData(**payload.model_dump(exclude_unset=True)),
    )
    return success(service.serialize_group(group, context=context))


@router.delete("/task-groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task_group(
    group_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    TaskGroupService(db).delete_group(context=context, group_id=group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/task-groups/{group_id}/tasks", status_code=201)
def add_task_to_group(
    group_id: UUID,
    payload: TaskGroupMemberPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = TaskGroupService(db)
    member = service.add_task(
        context=context,
        group_id=group_id,
        task_id=payload.task_id,
        order_index=payload.order_index,
    )
    return success(service.serialize_member(member))


@router.delete("/task-groups/{group_id}/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_task_from_group(
    group_id: UUID,
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    TaskGroupService(db).remove_task(context=context, group_id=group_id, task_id=task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Timelines ----------
@router.get("/timeline/client/{client_id}")
def client_timeline(
    client_id: UUID,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return success(
        TimelineService(db).client_timeline(
            context=context,
            client_id=client_id,
            start_date=start_date,
            end_date=end_date,
        )
    )


@router.get("/timeline/tasks")
def task_timeline(
    task_group_id: UUID | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return success(
        TimelineService(db).task_timeline(
            context=context,
            task_group_id=task_group_id,
            start_date=start_date,
            end_date=end_date,
        )
    )


@router.get("/timeline/team")
def team_timeline(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return success(TimelineService(db).team_timeline(context=context, start_date=start_date, end_date=end_date))
