from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from bidportal.authz import BidResource, Permission, PermissionEvaluator
from bidportal.db.session import get_db
from bidportal.models.organization import Bid
from bidportal.models.security import User
from bidportal.schemas.organizations import BidOut
from bidportal.security.dependencies import enforce_any, get_current_user, get_evaluator

router = APIRouter(prefix="/bids", tags=["bids"])

# Either one is enough to read a bid.
BID_VIEW_PERMISSIONS = (Permission.VIEW_BIDS, Permission.VIEW_ALL)


@router.get("/{bid_id}", response_model=BidOut)
def get_bid(
    bid_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
) -> Bid:
    enforce_any(evaluator, user, BID_VIEW_PERMISSIONS, BidResource(bid_id))
    bid = db.get(Bid, bid_id)
    if bid is None or bid.is_deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bid not found")
    return bid
