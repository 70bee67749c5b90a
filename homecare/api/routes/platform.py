"""
API routes for the platform commercial policy.
"""
from typing import Any

from fastapi import APIRouter

from homecare.api.deps import AdminActor, PolicyDep, SessionDep, StaffActor
from homecare.booking_models import PlatformPolicyUpdate
from homecare.services.policy import PlatformPolicy, update_policy

router = APIRouter(prefix="/platform", tags=["platform"])


@router.get("/policy", response_model=PlatformPolicy)
def read_policy(policy: PolicyDep, actor: StaffActor) -> Any:
    return policy


@router.put("/policy", response_model=PlatformPolicy)
def write_policy(body: PlatformPolicyUpdate, session: SessionDep, actor: AdminActor) -> Any:
    return update_policy(session, body)
