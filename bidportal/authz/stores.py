"""
Collaborator interfaces the evaluator reads from, plus in-memory versions.

The in-memory stores are deterministic and used by tests and fixtures. The
SQLAlchemy-backed implementations live in ``bidportal.db.stores``. Both share
the binding checks below so creation rules cannot drift between them.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
import itertools
import threading
from typing import Protocol

from .errors import InvalidScopeBinding, NotFound
from .models import BidRoleAssignment, Organization, RoleAssignment
from .policy import BID_SCOPE, Permission, RoleCategory, RoleType, ScopePolicy, normalize_permissions


class RoleAssignmentStore(Protocol):
    def find_by_user(self, user_id: int) -> Sequence[RoleAssignment]: ...


class BidRoleAssignmentStore(Protocol):
    def find_by_user(self, user_id: int) -> Sequence[BidRoleAssignment]: ...


class OrganizationRepository(Protocol):
    def get(self, org_id: int) -> Organization: ...

    def list_all(self) -> list[Organization]: ...


class BidRepository(Protocol):
    def owner_organization(self, bid_id: int) -> int: ...


# ---- Creation-time checks ------------------------------------------------------------


def check_role_binding(
    policy: ScopePolicy,
    role_type: RoleType | str,
    organization: Organization,
    permissions: Iterable[str | Permission] | None,
) -> tuple[RoleType, frozenset[str]]:
    """
    Validate a new organization role assignment.

    Returns the parsed role type and the permission set to persist (the role's
    defaults when ``permissions`` is None).
    """

    role = _parse_role(role_type)
    if policy.category_of(role) is not RoleCategory.ADMIN:
        raise InvalidScopeBinding(f"{role.value!r} is a bid role; use the bid role assignment store")
    policy.check_binding(role, organization.type)
    perms = policy.default_permissions(role) if permissions is None else normalize_permissions(permissions)
    if not perms:
        raise InvalidScopeBinding("a role assignment must carry at least one permission")
    return role, perms


def check_bid_binding(
    policy: ScopePolicy,
    role_type: RoleType | str,
    organization: Organization | None,
    bid_id: int | None,
    permissions: Iterable[str | Permission] | None,
) -> tuple[RoleType, frozenset[str]]:
    """Validate a new bid role assignment bound to ``organization`` xor ``bid_id``."""

    role = _parse_role(role_type)
    if policy.category_of(role) is not RoleCategory.BID:
        raise InvalidScopeBinding(f"{role.value!r} is not a bid role")
    if (organization is None) == (bid_id is None):
        raise InvalidScopeBinding("a bid role assignment needs exactly one of scope_organization_id or bid_id")
    policy.check_binding(role, BID_SCOPE if organization is None else organization.type)

    perms = policy.default_permissions(role) if permissions is None else normalize_permissions(permissions)
    if not perms:
        raise InvalidScopeBinding("a bid role assignment must carry at least one permission")
    if policy.bid_permissions:
        outside = perms.difference(policy.bid_permissions)
        if outside:
            raise InvalidScopeBinding(f"permissions outside the bid domain: {sorted(outside)}")
    return role, perms


def _parse_role(role_type: RoleType | str) -> RoleType:
    try:
        return RoleType(role_type)
    except ValueError:
        raise InvalidScopeBinding(f"unknown role type {role_type!r}") from None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---- In-memory implementations -------------------------------------------------------


class InMemoryOrganizationRepository:
    def __init__(self, organizations: Iterable[Organization] = ()) -> None:
        self._orgs = {o.id: o for o in organizations}

    def get(self, org_id: int) -> Organization:
        try:
            return self._orgs[org_id]
        except KeyError:
            raise NotFound(f"organization {org_id} not found") from None

    def list_all(self) -> list[Organization]:
        return sorted(self._orgs.values(), key=lambda o: o.id)

    def save(self, organization: Organization) -> None:
        self._orgs[organization.id] = organization


class InMemoryBidRepository:
    def __init__(self, owners: Mapping[int, int] | None = None) -> None:
        self._owners = dict(owners or {})

    def owner_organization(self, bid_id: int) -> int:
        try:
            return self._owners[bid_id]
        except KeyError:
            raise NotFound(f"bid {bid_id} not found") from None


class InMemoryRoleAssignmentStore:
    """
    Role assignments held in a list, in insertion order.

    ``assignments`` are taken as-is (no validation) so fixtures can model
    drifted rows; ``create`` applies the full creation checks.
    """

    def __init__(
        self,
        assignments: Iterable[RoleAssignment] = (),
        policy: ScopePolicy | None = None,
        organizations: OrganizationRepository | None = None,
    ) -> None:
        self._rows = list(assignments)
        self._policy = policy
        self._organizations = organizations
        self._ids = itertools.count(len(self._rows) + 1)
        self._lock = threading.Lock()

    def find_by_user(self, user_id: int) -> tuple[RoleAssignment, ...]:
        return tuple(a for a in self._rows if a.user_id == user_id)

    def create(
        self,
        user_id: int,
        role_type: RoleType | str,
        scope_organization_id: int,
        permissions: Iterable[str | Permission] | None = None,
    ) -> RoleAssignment:
        if self._policy is None or self._organizations is None:
            raise RuntimeError("store was built without a policy and organization repository")
        organization = self._organizations.get(scope_organization_id)
        role, perms = check_role_binding(self._policy, role_type, organization, permissions)
        with self._lock:
            row = RoleAssignment(
                user_id=user_id,
                role_type=role,
                scope_organization_id=organization.id,
                permissions=perms,
                id=next(self._ids),
                created_at=_utcnow(),
            )
            self._rows.append(row)
        return row


class InMemoryBidRoleAssignmentStore:
    def __init__(
        self,
        assignments: Iterable[BidRoleAssignment] = (),
        policy: ScopePolicy | None = None,
        organizations: OrganizationRepository | None = None,
        bids: BidRepository | None = None,
    ) -> None:
        self._rows = list(assignments)
        self._policy = policy
        self._organizations = organizations
        self._bids = bids
        self._ids = itertools.count(len(self._rows) + 1)
        self._lock = threading.Lock()

    def find_by_user(self, user_id: int) -> tuple[BidRoleAssignment, ...]:
        return tuple(a for a in self._rows if a.user_id == user_id)

    def create(
        self,
        user_id: int,
        role_type: RoleType | str,
        *,
        scope_organization_id: int | None = None,
        bid_id: int | None = None,
        permissions: Iterable[str | Permission] | None = None,
    ) -> BidRoleAssignment:
        if self._policy is None or self._organizations is None or self._bids is None:
            raise RuntimeError("store was built without a policy and repositories")
        organization = None
        if scope_organization_id is not None:
            organization = self._organizations.get(scope_organization_id)
        if bid_id is not None:
            self._bids.owner_organization(bid_id)
        role, perms = check_bid_binding(self._policy, role_type, organization, bid_id, permissions)
        with self._lock:
            row = BidRoleAssignment(
                user_id=user_id,
                role_type=role,
                permissions=perms,
                scope_organization_id=scope_organization_id,
                bid_id=bid_id,
                id=next(self._ids),
                created_at=_utcnow(),
            )
            self._rows.append(row)
        return row

