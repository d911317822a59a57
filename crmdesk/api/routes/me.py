"""Current user endpoint."""

from fastapi import APIRouter, Depends

from crmdesk.api.responses import success
from crmdesk.core.auth import RequestUserContext, get_current_user_context

router = APIRouter(prefix="/me", tags=["me"])


@router.get("")
def get_me(context: RequestUserContext = Depends(get_current_user_context)) -> dict[str, object]:
    """Return the calling user's profile."""

    return success(
        {
            "id": str(context.user_id),
            "email": context.email,
            "full_name": context.full_name,
            "role": context.role,
        }
    )
