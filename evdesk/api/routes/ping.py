from fastapi import APIRouter, Depends

from evdesk.dependencies.auth import CurrentActor, permission_required
from evdesk.security.permissions import Permission

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health check")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/secure",
    summary="Authenticated health check",
    dependencies=[Depends(permission_required(Permission.UPDATE_TICKET_STATUS))],
)
async def secure_ping(actor: CurrentActor) -> dict[str, str]:
    return {"status": "ok", "actor": actor.actor_id, "role": actor.role.value}
