from __future__ import annotations

from collections.abc import Iterable
import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from bidportal.authz import (
    AuthorizationDecision,
    DecisionReason,
    HierarchyCache,
    OrganizationHierarchy,
    Permission,
    PermissionEvaluator,
    ScopePolicy,
    ScopeResolver,
)
from bidportal.authz.models import ResourceScope
from bidportal.db.session import get_db
from bidportal.db.stores import SqlBidRepository, SqlBidRoleAssignmentStore, SqlRoleAssignmentStore
from bidportal.models.security import User
from bidportal.security.auth import extract_user_id, load_user

logger = logging.getLogger(__name__)


def get_scope_policy(request: Request) -> ScopePolicy:
    policy = getattr(request.app.state, "scope_policy", None)
    if policy is None:
        raise RuntimeError("Scope policy not loaded. Did app startup run?")
    return policy


def get_hierarchy_cache(request: Request) -> HierarchyCache:
    cache = getattr(request.app.state, "hierarchy", None)
    if cache is None:
        raise RuntimeError("Organization hierarchy not loaded. Did app startup run?")
    return cache


def get_hierarchy(cache: HierarchyCache = Depends(get_hierarchy_cache)) -> OrganizationHierarchy:
    """The snapshot this request works against, taken once."""
    return cache.snapshot()


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    user_id = extract_user_id(request)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    user = load_user(db, user_id)
    request.state.user = user
    return user


def get_evaluator(
    db: Session = Depends(get_db),
    policy: ScopePolicy = Depends(get_scope_policy),
    hierarchy: OrganizationHierarchy = Depends(get_hierarchy),
) -> PermissionEvaluator:
    return PermissionEvaluator(
        SqlRoleAssignmentStore(db),
        SqlBidRoleAssignmentStore(db),
        ScopeResolver(hierarchy, SqlBidRepository(db)),
        policy,
    )


def enforce(
    evaluator: PermissionEvaluator,
    user: User,
    permission: str | Permission,
    resource: ResourceScope,
) -> AuthorizationDecision:
    """
    Authorize or raise the matching HTTP error.

    UnknownResource -> 404, any other deny -> 403. StoreUnavailable and
    CorruptHierarchy are left to the app-level exception handlers.
    """

    return _raise_unless_allowed(evaluator.authorize(user.id, permission, resource))


def enforce_any(
    evaluator: PermissionEvaluator,
    user: User,
    permissions: Iterable[str | Permission],
    resource: ResourceScope,
) -> AuthorizationDecision:
    """Like ``enforce`` but satisfied by any one of ``permissions``."""

    return _raise_unless_allowed(evaluator.authorize_any(user.id, permissions, resource))


def enforce_grantable(
    evaluator: PermissionEvaluator,
    user: User,
    permissions: Iterable[str],
    resource: ResourceScope,
) -> None:
    """
    403 unless the caller already holds every permission it is handing out.

    Stops a manager from minting permissions it lacks, including for itself.
    """

    decisions = evaluator.authorize_all(user.id, permissions, resource)
    missing = sorted(name for name, decision in decisions.items() if not decision.allowed)
    if missing:
        logger.warning("Refused assignment beyond caller permissions user=%s missing=%s resource=%s", user.id, missing, resource)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Cannot grant permissions you do not hold: {', '.join(missing)}",
        )


def _raise_unless_allowed(decision: AuthorizationDecision) -> AuthorizationDecision:
    if decision.allowed:
        return decision

    if decision.reason is DecisionReason.UNKNOWN_RESOURCE:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")

    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=f"Forbidden ({decision.reason.value})",
    )
