"""ORM model package."""

from crmdesk.models.entities import (
    Budget,
    CalendarEvent,
    Client,
    Expense,
    Payment,
    ReportJob,
    SharedTaskGrant,
    Task,
    TaskGroup,
    TaskGroupMember,
    User,
    Vendor,
)

__all__ = [
    "Budget",
    "CalendarEvent",
    "Client",
    "Expense",
    "Payment",
    "ReportJob",
    "SharedTaskGrant",
    "Task",
    "TaskGroup",
    "TaskGroupMember",
    "User",
    "Vendor",
]
