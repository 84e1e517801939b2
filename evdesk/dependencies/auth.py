from collections.abc import Callable, Mapping
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from evdesk.core.config import get_settings
from evdesk.security.permissions import Permission, Role, coerce_role, has_permission


class Actor:
    """Authenticated shop-floor user acting on tickets."""

    def __init__(self, actor_id: str, role: Role):
        self.actor_id = actor_id
        self.role = role

    def can(self, permission: Permission) -> bool:
        return has_permission(self.role, permission)


bearer_scheme = HTTPBearer(auto_error=False)


def parse_token_entry(entry: str) -> Actor:
    """Parse a configured ``"<actor_id>:<role>"`` token value."""

    actor_id, _, role_value = entry.rpartition(":")
    role = coerce_role(role_value.strip())
    if not actor_id.strip() or role is None:
        raise ValueError(f"Invalid token entry {entry!r}; expected '<actor_id>:<role>'")
    return Actor(actor_id=actor_id.strip(), role=role)


def resolve_actor_from_token(token: str | None, token_map: Mapping[str, str] | None = None) -> Actor:
    """Return the actor associated with the provided bearer token."""

    if token is None:
        raise HTTPException(status_code=401, detail="Missing authentication credentials")

    tokens = token_map if token_map is not None else get_settings().api_tokens
    entry = tokens.get(token)
    if entry is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    try:
        return parse_token_entry(entry)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials") from exc


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> Actor:
    cached = getattr(request.state, "actor", None)
    if isinstance(cached, Actor):
        return cached

    token = credentials.credentials if credentials is not None else None
    actor = resolve_actor_from_token(token)
    request.state.actor = actor
    return actor


def permission_required(permission: Permission) -> Callable[[Actor], Actor]:
    """Dependency factory ensuring the current actor holds the requested permission."""

    async def dependency(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        if not actor.can(permission):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return actor

    return dependency


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
