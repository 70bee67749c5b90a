from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlmodel import Session

from homecare.booking_models import Actor, ActorRole
from homecare.core.db import get_session
from homecare.services.policy import PlatformPolicy, load_policy


SessionDep = Annotated[Session, Depends(get_session)]


def get_current_actor(
    x_actor_id: Annotated[Optional[str], Header()] = None,
    x_actor_role: Annotated[Optional[str], Header()] = None,
) -> Actor:
    """Caller identity as forwarded by the auth gateway."""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor identity",
        )
    try:
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unknown actor role")
    return Actor(id=x_actor_id.strip(), role=role)


CurrentActor = Annotated[Actor, Depends(get_current_actor)]


def get_optional_actor(
    x_actor_id: Annotated[Optional[str], Header()] = None,
    x_actor_role: Annotated[Optional[str], Header()] = None,
) -> Optional[Actor]:
    if not x_actor_id and not x_actor_role:
        return None
    return get_current_actor(x_actor_id, x_actor_role)


OptionalActor = Annotated[Optional[Actor], Depends(get_optional_actor)]


def require_roles(*roles: ActorRole):
    def checker(actor: CurrentActor) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="The actor doesn't have enough privileges",
            )
        return actor

    return checker


StaffActor = Annotated[Actor, Depends(require_roles(ActorRole.ADMIN, ActorRole.CS))]
AdminActor = Annotated[Actor, Depends(require_roles(ActorRole.ADMIN))]
ProviderActor = Annotated[Actor, Depends(require_roles(ActorRole.PROVIDER))]
StaffOrProviderActor = Annotated[
    Actor, Depends(require_roles(ActorRole.ADMIN, ActorRole.CS, ActorRole.PROVIDER))
]


def get_policy(session: SessionDep) -> PlatformPolicy:
    return load_policy(session)


PolicyDep = Annotated[PlatformPolicy, Depends(get_policy)]
