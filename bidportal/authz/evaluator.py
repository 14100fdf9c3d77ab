"""
The authorization decision function.

Algorithm (allow-list only, no deny rules):
1. Load the user's role assignments, plus bid role assignments when the
   resource is a bid or a bid pool. Nothing loaded -> deny NoAssignments.
2. Resolve the resource into its ancestor chain (and literal bid id).
   Unknown resource -> deny UnknownResource.
3. Walk scopes from most specific (the literal bid, then the resource's own
   organization) up to the root. At each scope, assignments are checked in
   store order; the first well-formed one carrying the permission wins.
4. Otherwise deny PermissionNotGranted, or InvalidScopeBinding when the only
   assignments carrying the permission were malformed.

Scope specificity is the only tie-break. Role rank and recency play no part.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
import logging

from .errors import CorruptHierarchy, NotFound, StoreUnavailable
from .models import (
    Assignment,
    AuthorizationDecision,
    BidPoolResource,
    BidResource,
    BidRoleAssignment,
    DecisionReason,
    ResourceScope,
    RoleAssignment,
)
from .policy import BID_SCOPE, Permission, RoleCategory, RoleType, ScopePolicy, permission_name
from .resolver import ResolvedScope, ScopeResolver
from .stores import BidRoleAssignmentStore, RoleAssignmentStore

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("bidportal.audit")

_BID_FLAVORED = (BidResource, BidPoolResource)


class PermissionEvaluator:
    """
    Usage:
        evaluator = PermissionEvaluator(role_store, bid_role_store, resolver, policy)
        decision = evaluator.authorize(user_id, "edit_school", OrganizationResource(s1))
        if not decision.allowed: ...
    """

    def __init__(
        self,
        role_assignments: RoleAssignmentStore,
        bid_role_assignments: BidRoleAssignmentStore,
        resolver: ScopeResolver,
        policy: ScopePolicy,
    ) -> None:
        self._role_assignments = role_assignments
        self._bid_role_assignments = bid_role_assignments
        self._resolver = resolver
        self._policy = policy

    # ---- Main decision API ----------------------------------------------------------

    def authorize(
        self,
        user_id: int,
        required_permission: str | Permission,
        resource: ResourceScope,
    ) -> AuthorizationDecision:
        """
        Decide whether ``user_id`` holds ``required_permission`` on ``resource``.

        Raises only CorruptHierarchy and StoreUnavailable; every other outcome
        is returned as an AuthorizationDecision.
        """

        permission = permission_name(required_permission)
        return self.authorize_all(user_id, [permission], resource)[permission]

    def authorize_all(
        self,
        user_id: int,
        permissions: Iterable[str | Permission],
        resource: ResourceScope,
    ) -> dict[str, AuthorizationDecision]:
        """Check several permissions against a single load and resolution."""

        names = [permission_name(p) for p in permissions]
        roles, bid_roles = self._load(user_id, resource)

        if not roles and not bid_roles:
            decision = AuthorizationDecision.deny(DecisionReason.NO_ASSIGNMENTS)
            return {name: self._audit(user_id, name, resource, decision) for name in names}

        resolved = self._resolve(user_id, resource)
        if resolved is None:
            decision = AuthorizationDecision.deny(DecisionReason.UNKNOWN_RESOURCE)
            return {name: self._audit(user_id, name, resource, decision) for name in names}

        return {
            name: self._audit(user_id, name, resource, self.decide(roles, bid_roles, name, resolved))
            for name in names
        }

    def authorize_any(
        self,
        user_id: int,
        permissions: Iterable[str | Permission],
        resource: ResourceScope,
    ) -> AuthorizationDecision:
        """
        Allow when any one of ``permissions`` is held on ``resource``.

        The winner is the first grant found walking scopes most specific first,
        whichever of the permissions it carries.
        """

        names = frozenset(permission_name(p) for p in permissions)
        if not names:
            raise ValueError("authorize_any needs at least one permission")
        label = "|".join(sorted(names))

        roles, bid_roles = self._load(user_id, resource)
        if not roles and not bid_roles:
            return self._audit(user_id, label, resource, AuthorizationDecision.deny(DecisionReason.NO_ASSIGNMENTS))

        resolved = self._resolve(user_id, resource)
        if resolved is None:
            return self._audit(user_id, label, resource, AuthorizationDecision.deny(DecisionReason.UNKNOWN_RESOURCE))

        return self._audit(user_id, label, resource, self._scan(roles, bid_roles, names, resolved))

    def decide(
        self,
        role_assignments: Sequence[RoleAssignment],
        bid_role_assignments: Sequence[BidRoleAssignment],
        required_permission: str | Permission,
        resolved: ResolvedScope,
    ) -> AuthorizationDecision:
        """Pure decision step over injected assignment snapshots."""

        if not role_assignments and not bid_role_assignments:
            return AuthorizationDecision.deny(DecisionReason.NO_ASSIGNMENTS)
        return self._scan(
            role_assignments,
            bid_role_assignments,
            frozenset({permission_name(required_permission)}),
            resolved,
        )

    # ---- Helpers --------------------------------------------------------------------

    def _scan(
        self,
        role_assignments: Sequence[RoleAssignment],
        bid_role_assignments: Sequence[BidRoleAssignment],
        permissions: frozenset[str],
        resolved: ResolvedScope,
    ) -> AuthorizationDecision:
        skipped = 0
        for assignment, scope_type in self._candidates(role_assignments, bid_role_assignments, resolved):
            if permissions.isdisjoint(assignment.permissions):
                continue
            if not self._binding_ok(assignment, scope_type):
                skipped += 1
                logger.warning(
                    "Ignoring assignment with invalid scope binding id=%s user=%s role=%s scope_type=%s",
                    assignment.id,
                    assignment.user_id,
                    getattr(assignment.role_type, "value", assignment.role_type),
                    scope_type,
                )
                continue
            return AuthorizationDecision.grant(assignment)

        if skipped:
            return AuthorizationDecision.deny(DecisionReason.INVALID_SCOPE_BINDING)
        return AuthorizationDecision.deny(DecisionReason.PERMISSION_NOT_GRANTED)

    def _load(
        self, user_id: int, resource: ResourceScope
    ) -> tuple[tuple[RoleAssignment, ...], tuple[BidRoleAssignment, ...]]:
        try:
            roles = tuple(self._role_assignments.find_by_user(user_id))
            bid_roles: tuple[BidRoleAssignment, ...] = ()
            if isinstance(resource, _BID_FLAVORED):
                bid_roles = tuple(self._bid_role_assignments.find_by_user(user_id))
        except StoreUnavailable:
            logger.error("Assignment store unavailable user=%s", user_id)
            raise
        except (TimeoutError, ConnectionError) as exc:
            logger.error("Assignment store unavailable user=%s", user_id, exc_info=True)
            raise StoreUnavailable(f"assignment store unavailable: {exc}") from exc
        return roles, bid_roles

    def _resolve(self, user_id: int, resource: ResourceScope) -> ResolvedScope | None:
        """None for an unknown resource."""

        try:
            return self._resolver.resolve(resource)
        except NotFound as exc:
            logger.debug("Unknown resource user=%s resource=%s: %s", user_id, resource, exc)
            return None
        except CorruptHierarchy:
            logger.critical("Corrupt organization hierarchy while resolving %s", resource, exc_info=True)
            raise
        except (TimeoutError, ConnectionError) as exc:
            logger.error("Bid repository unavailable resolving %s", resource, exc_info=True)
            raise StoreUnavailable(f"bid repository unavailable: {exc}") from exc

    def _candidates(
        self,
        role_assignments: Sequence[RoleAssignment],
        bid_role_assignments: Sequence[BidRoleAssignment],
        resolved: ResolvedScope,
    ) -> Iterator[tuple[Assignment, str]]:
        """Yield (assignment, scope type) pairs, most specific scope first."""

        if resolved.bid_id is not None:
            for bid_assignment in bid_role_assignments:
                if bid_assignment.bid_id == resolved.bid_id:
                    yield bid_assignment, BID_SCOPE

        bid_scoped = resolved.bid_scoped or resolved.bid_id is not None
        for org in resolved.chain:
            for assignment in role_assignments:
                if assignment.scope_organization_id == org.id:
                    yield assignment, org.type.value
            if not bid_scoped:
                continue
            for bid_assignment in bid_role_assignments:
                if bid_assignment.bid_id is None and bid_assignment.scope_organization_id == org.id:
                    yield bid_assignment, org.type.value

    def _binding_ok(self, assignment: Assignment, scope_type: str) -> bool:
        try:
            role = RoleType(assignment.role_type)
        except ValueError:
            return False

        if isinstance(assignment, BidRoleAssignment):
            if not (assignment.is_bid_bound or assignment.is_organization_bound):
                return False
            expected = RoleCategory.BID
        else:
            expected = RoleCategory.ADMIN

        return self._policy.category_of(role) is expected and self._policy.allows(role, scope_type)

    def _audit(
        self,
        user_id: int,
        permission: str,
        resource: ResourceScope,
        decision: AuthorizationDecision,
    ) -> AuthorizationDecision:
        audit_logger.info(
            "authz user=%s permission=%s resource=%s allowed=%s reason=%s matched=%s",
            user_id,
            permission,
            resource,
            decision.allowed,
            decision.reason.value,
            decision.matched_scope,
        )
        if not decision.allowed:
            logger.debug("Denied user=%s permission=%s resource=%s reason=%s", user_id, permission, resource, decision.reason.value)
        return decision
