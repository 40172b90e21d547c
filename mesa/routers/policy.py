"""
Reservation policy router: booking rules and peak windows.
"""
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends

from mesa.core.deps import Actor, get_current_staff, require_admin
from mesa.core.errors import PermissionDenied
from mesa.schemas.base import to_time
from mesa.schemas.policy import PolicyResponse, PolicyUpdate
from mesa.services.engine import AllocationEngine, get_engine
from mesa.services.policy_store import PeakRule

router = APIRouter(tags=["policy"])


@router.get("/restaurants/{restaurant_id}/policy", response_model=PolicyResponse)
def get_policy(
    restaurant_id: UUID,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """Effective policy (stored values over defaults)."""
    if not actor.can_manage(restaurant_id):
        raise PermissionDenied("Only restaurant staff can view the policy")
    return PolicyResponse.from_policy(engine.policies.get_policy(restaurant_id))


@router.put("/restaurants/{restaurant_id}/policy", response_model=PolicyResponse)
def update_policy(
    restaurant_id: UUID,
    update: PolicyUpdate,
    engine: AllocationEngine = Depends(get_engine),
    actor: Actor = Depends(get_current_staff),
):
    """
    Update booking rules.

    Omitted fields keep their value; peakWindows, when present, replaces
    every existing window.
    """
    require_admin(actor)
    if not actor.can_manage(restaurant_id):
        raise PermissionDenied("Only this restaurant's admins can change its policy")

    peak_windows = None
    if update.peak_windows is not None:
        peak_windows = [
            PeakRule(
                start_time=to_time(w.start_time),
                end_time=to_time(w.end_time),
                deposit_amount=Decimal(str(w.deposit_amount)),
                weekday_mask=w.weekday_mask,
                label=w.label,
            )
            for w in update.peak_windows
        ]

    changes = update.model_dump(exclude={"peak_windows"}, exclude_none=True)
    policy = engine.policies.update_policy(restaurant_id, changes, peak_windows)
    return PolicyResponse.from_policy(policy)
