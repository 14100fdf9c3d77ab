from __future__ import annotations

from fastapi import APIRouter, Depends

from bidportal.authz import OrganizationHierarchy, OrganizationResource, OrganizationType, Permission, PermissionEvaluator
from bidportal.models.security import User
from bidportal.schemas.organizations import OrganizationOut
from bidportal.security.dependencies import enforce, get_current_user, get_evaluator, get_hierarchy

router = APIRouter(prefix="/organizations", tags=["organizations"])

VIEW_PERMISSION = {
    OrganizationType.COOPERATIVE: Permission.VIEW_ALL,
    OrganizationType.DISTRICT: Permission.VIEW_DISTRICT,
    OrganizationType.SCHOOL: Permission.VIEW_SCHOOL,
}


def _view_permission(hierarchy: OrganizationHierarchy, org_id: int) -> Permission:
    # Unknown ids still go through the evaluator, so callers without
    # assignments get the same 403 whether or not the id exists.
    if org_id not in hierarchy:
        return Permission.VIEW_ALL
    return VIEW_PERMISSION[hierarchy.get(org_id).type]


@router.get("/{org_id}", response_model=OrganizationOut)
def get_organization(
    org_id: int,
    user: User = Depends(get_current_user),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
    hierarchy: OrganizationHierarchy = Depends(get_hierarchy),
) -> OrganizationOut:
    enforce(evaluator, user, _view_permission(hierarchy, org_id), OrganizationResource(org_id))
    return OrganizationOut.model_validate(hierarchy.get(org_id))


@router.get("/{org_id}/descendants", response_model=list[OrganizationOut])
def list_descendants(
    org_id: int,
    user: User = Depends(get_current_user),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
    hierarchy: OrganizationHierarchy = Depends(get_hierarchy),
) -> list[OrganizationOut]:
    enforce(evaluator, user, _view_permission(hierarchy, org_id), OrganizationResource(org_id))
    descendants = sorted(hierarchy.descendants_of(org_id), key=lambda o: o.id)
    return [OrganizationOut.model_validate(o) for o in descendants]
