from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bidportal.authz import (
    BidPoolResource,
    BidResource,
    OrganizationHierarchy,
    OrganizationResource,
    Permission,
    PermissionEvaluator,
    ScopePolicy,
)
from bidportal.authz.stores import check_bid_binding, check_role_binding
from bidportal.db.session import get_db
from bidportal.db.stores import SqlBidRoleAssignmentStore, SqlRoleAssignmentStore
from bidportal.models.security import User
from bidportal.schemas.authz import (
    BidRoleAssignmentCreate,
    BidRoleAssignmentOut,
    RoleAssignmentCreate,
    RoleAssignmentOut,
)
from bidportal.security.dependencies import (
    enforce,
    enforce_grantable,
    get_current_user,
    get_evaluator,
    get_hierarchy,
    get_scope_policy,
)

router = APIRouter(tags=["role_assignments"])


@router.post("/role-assignments", response_model=RoleAssignmentOut, status_code=status.HTTP_201_CREATED)
def create_role_assignment(
    payload: RoleAssignmentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
    policy: ScopePolicy = Depends(get_scope_policy),
    hierarchy: OrganizationHierarchy = Depends(get_hierarchy),
) -> RoleAssignmentOut:
    resource = OrganizationResource(payload.organization_id)
    enforce(evaluator, user, Permission.MANAGE_USERS, resource)

    _, permissions = check_role_binding(
        policy, payload.role_type, hierarchy.get(payload.organization_id), payload.permissions
    )
    enforce_grantable(evaluator, user, permissions, resource)

    created = SqlRoleAssignmentStore(db, policy).create(
        payload.user_id,
        payload.role_type,
        payload.organization_id,
        permissions,
    )
    return RoleAssignmentOut.from_domain(created)


@router.post("/bid-role-assignments", response_model=BidRoleAssignmentOut, status_code=status.HTTP_201_CREATED)
def create_bid_role_assignment(
    payload: BidRoleAssignmentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
    policy: ScopePolicy = Depends(get_scope_policy),
    hierarchy: OrganizationHierarchy = Depends(get_hierarchy),
) -> BidRoleAssignmentOut:
    resource: BidResource | BidPoolResource
    if payload.bid_id is not None:
        resource = BidResource(payload.bid_id)
    else:
        resource = BidPoolResource(payload.organization_id)  # type: ignore[arg-type]
    enforce(evaluator, user, Permission.MANAGE_BID_USERS, resource)

    organization = hierarchy.get(payload.organization_id) if payload.organization_id is not None else None
    _, permissions = check_bid_binding(policy, payload.role_type, organization, payload.bid_id, payload.permissions)
    enforce_grantable(evaluator, user, permissions, resource)

    created = SqlBidRoleAssignmentStore(db, policy).create(
        payload.user_id,
        payload.role_type,
        scope_organization_id=payload.organization_id,
        bid_id=payload.bid_id,
        permissions=permissions,
    )
    return BidRoleAssignmentOut.from_domain(created)
