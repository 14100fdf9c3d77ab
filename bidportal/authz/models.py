"""Immutable facts consumed by the evaluator and the decision it produces."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .policy import OrganizationType, RoleType


@dataclass(frozen=True)
class Organization:
    """One node of the cooperative -> district -> school forest."""

    id: int
    type: OrganizationType
    parent_id: int | None = None
    coop_id: int | None = None
    name: str | None = None


@dataclass(frozen=True)
class RoleAssignment:
    """A role bound to an organization scope."""

    user_id: int
    role_type: RoleType
    scope_organization_id: int
    permissions: frozenset[str]
    id: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class BidRoleAssignment:
    """
    A bid role bound either to an organization that owns bids or to one bid.

    Exactly one of ``scope_organization_id`` / ``bid_id`` should be set. Rows
    that break this are still representable so the evaluator can deny them
    instead of failing to load them.
    """

    user_id: int
    role_type: RoleType
    permissions: frozenset[str]
    scope_organization_id: int | None = None
    bid_id: int | None = None
    id: int | None = None
    created_at: datetime | None = None

    @property
    def is_bid_bound(self) -> bool:
        return self.bid_id is not None and self.scope_organization_id is None

    @property
    def is_organization_bound(self) -> bool:
        return self.scope_organization_id is not None and self.bid_id is None


Assignment = RoleAssignment | BidRoleAssignment


# ---- Resources -----------------------------------------------------------------------


@dataclass(frozen=True)
class OrganizationResource:
    """A resource that belongs directly to an organization."""

    organization_id: int


@dataclass(frozen=True)
class BidResource:
    """A bid; ``owner_organization_id`` skips the repository lookup when known."""

    bid_id: int
    owner_organization_id: int | None = None


@dataclass(frozen=True)
class BidPoolResource:
    """
    The bids owned by an organization and its descendants, as a whole.

    Used to manage bid role assignments bound to an organization. Like a bid,
    it is checked against bid role assignments as well as organization roles.
    """

    organization_id: int


ResourceScope = OrganizationResource | BidResource | BidPoolResource


# ---- Decision ------------------------------------------------------------------------


class DecisionReason(str, Enum):
    GRANTED = "Granted"
    NO_ASSIGNMENTS = "NoAssignments"
    PERMISSION_NOT_GRANTED = "PermissionNotGranted"
    UNKNOWN_RESOURCE = "UnknownResource"
    INVALID_SCOPE_BINDING = "InvalidScopeBinding"


@dataclass(frozen=True)
class AuthorizationDecision:
    """Outcome of one ``authorize`` call. Never persisted."""

    allowed: bool
    reason: DecisionReason
    matched_assignment: Assignment | None = None

    @classmethod
    def grant(cls, assignment: Assignment) -> AuthorizationDecision:
        return cls(allowed=True, reason=DecisionReason.GRANTED, matched_assignment=assignment)

    @classmethod
    def deny(cls, reason: DecisionReason) -> AuthorizationDecision:
        return cls(allowed=False, reason=reason)

    @property
    def matched_scope(self) -> tuple[str, int] | None:
        """("organization", id) or ("bid", id) of the matching grant."""
        a = self.matched_assignment
        if a is None:
            return None
        if isinstance(a, BidRoleAssignment) and a.is_bid_bound:
            return ("bid", a.bid_id)  # type: ignore[return-value]
        return ("organization", a.scope_organization_id)  # type: ignore[return-value]

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict."""
        matched: dict[str, object] | None = None
        a = self.matched_assignment
        if a is not None:
            matched = {
                "id": a.id,
                "user_id": a.user_id,
                "role_type": getattr(a.role_type, "value", a.role_type),
                "scope_organization_id": a.scope_organization_id,
                "bid_id": getattr(a, "bid_id", None),
                "permissions": sorted(a.permissions),
            }
        return {
            "allowed": self.allowed,
            "reason": self.reason.value,
            "matched_assignment": matched,
        }
