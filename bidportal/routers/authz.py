from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from bidportal.authz import BidPoolResource, BidResource, OrganizationResource, PermissionEvaluator
from bidportal.authz.models import ResourceScope
from bidportal.models.security import User
from bidportal.schemas.authz import DecisionOut
from bidportal.security.dependencies import get_current_user, get_evaluator

router = APIRouter(prefix="/authz", tags=["authz"])


@router.get("/check", response_model=DecisionOut)
def check_permission(
    permission: str,
    organization_id: int | None = None,
    bid_id: int | None = None,
    bid_pool_id: int | None = None,
    user: User = Depends(get_current_user),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
) -> dict[str, object]:
    """
    Report the caller's decision instead of enforcing it (used by the UI to toggle actions).

    ``bid_pool_id`` is an organization id standing for the bids it owns, which
    brings organization-bound bid roles into the check.
    """

    given = [v for v in (organization_id, bid_id, bid_pool_id) if v is not None]
    if len(given) != 1:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Pass exactly one of organization_id, bid_id or bid_pool_id.",
        )

    resource: ResourceScope
    if bid_id is not None:
        resource = BidResource(bid_id)
    elif bid_pool_id is not None:
        resource = BidPoolResource(bid_pool_id)
    else:
        resource = OrganizationResource(organization_id)  # type: ignore[arg-type]
    return evaluator.authorize(user.id, permission, resource).to_dict()
