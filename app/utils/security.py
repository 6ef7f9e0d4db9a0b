"""
Security utilities: acting principal extraction.

Authentication happens upstream (identity provider / gateway). The gateway
forwards the authenticated user as trusted headers; this service only reads
them and authorizes against the role.
"""

from typing import Optional
import logging

from fastapi import Header, HTTPException, status

from app.models.workflow import Actor, Role

logger = logging.getLogger(__name__)

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"
ACTOR_NAME_HEADER = "X-Actor-Name"


def parse_actor(actor_id: Optional[str], role: Optional[str], name: Optional[str] = None) -> Actor:
    """
    Build an Actor from identity headers.

    Raises:
        HTTPException 401: headers missing
        HTTPException 400: unknown role
    """
    if not actor_id or not actor_id.strip() or not role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {ACTOR_ID_HEADER} / {ACTOR_ROLE_HEADER} headers"
        )
    try:
        parsed_role = Role(role.strip().lower())
    except ValueError:
        logger.warning(f"Rejected unknown role header: {role!r}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown role: {role}"
        )
    return Actor(id=actor_id.strip(), role=parsed_role, name=name.strip() if name else None)


async def get_actor(
    x_actor_id: Optional[str] = Header(None, alias=ACTOR_ID_HEADER),
    x_actor_role: Optional[str] = Header(None, alias=ACTOR_ROLE_HEADER),
    x_actor_name: Optional[str] = Header(None, alias=ACTOR_NAME_HEADER),
) -> Actor:
    """FastAPI dependency: the acting principal for this request."""
    return parse_actor(x_actor_id, x_actor_role, x_actor_name)


async def require_admin(
    x_actor_id: Optional[str] = Header(None, alias=ACTOR_ID_HEADER),
    x_actor_role: Optional[str] = Header(None, alias=ACTOR_ROLE_HEADER),
    x_actor_name: Optional[str] = Header(None, alias=ACTOR_NAME_HEADER),
) -> Actor:
    """FastAPI dependency: like get_actor, but only admin / superadmin pass."""
    actor = parse_actor(x_actor_id, x_actor_role, x_actor_name)
    if actor.role not in (Role.ADMIN, Role.SUPERADMIN):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return actor
