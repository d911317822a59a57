"""Top-level API router."""

from fastapi import APIRouter

from crmdesk.api.routes.calendar import router as calendar_router
from crmdesk.api.routes.clients import router as clients_router
from crmdesk.api.routes.financial import router as financial_router
from crmdesk.api.routes.health import router as health_router
from crmdesk.api.routes.me import router as me_router
from crmdesk.api.routes.reports import router as reports_router
from crmdesk.api.routes.users import router as users_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(me_router)
api_router.include_router(users_router)
api_router.include_router(clients_router)
api_router.include_router(calendar_router)
api_router.include_router(financial_router)
api_router.include_router(reports_router)
