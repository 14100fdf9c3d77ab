"""
Role types, permission names and the scope policy table.

The policy is a static YAML artifact loaded once at startup. It answers a
single question: may a role of type R be bound to a scope of type T?

Expected shape (simplified):

    policy:
      bid_permissions: [view_bids, edit_bids, ...]
      roles:
        District-Admin:
          category: admin
          scopes: [district, cooperative]
          default_permissions: [view_district, edit_district, ...]
        Bid-Viewer:
          category: bid
          scopes: [cooperative, district, school, bid]
          default_permissions: [view_bids]

Every ``RoleType`` must appear exactly once. Unknown role names are rejected
so a typo in the file can never become a silently ignored grant.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
import yaml

from .errors import InvalidScopeBinding, PolicyConfigError

logger = logging.getLogger(__name__)

DEFAULT_POLICY_PATH = Path(__file__).resolve().parents[1] / "config" / "scope_policy.yaml"

BID_SCOPE = "bid"


class OrganizationType(str, Enum):
    COOPERATIVE = "cooperative"
    DISTRICT = "district"
    SCHOOL = "school"


SCOPE_TYPES: frozenset[str] = frozenset({t.value for t in OrganizationType} | {BID_SCOPE})


class RoleCategory(str, Enum):
    ADMIN = "admin"
    BID = "bid"


class RoleType(str, Enum):
    SUPER_ADMIN = "Super-Admin"
    GROUP_ADMIN = "Group-Admin"
    COOP_ADMIN = "Coop-Admin"
    DISTRICT_ADMIN = "District-Admin"
    SCHOOL_ADMIN = "School-Admin"
    VIEWER = "Viewer"
    BID_ADMINISTRATOR = "Bid-Administrator"
    BID_VIEWER = "Bid-Viewer"


class Permission(str, Enum):
    """Well-known capability names. Assignments may also carry free-form names."""

    MANAGE_USERS = "manage_users"
    MANAGE_DISTRICTS = "manage_districts"
    MANAGE_SCHOOLS = "manage_schools"
    VIEW_ALL = "view_all"
    EDIT_ALL = "edit_all"
    EDIT_DISTRICT = "edit_district"
    VIEW_DISTRICT = "view_district"
    EDIT_SCHOOL = "edit_school"
    VIEW_SCHOOL = "view_school"
    CREATE_BIDS = "create_bids"
    EDIT_BIDS = "edit_bids"
    DELETE_BIDS = "delete_bids"
    AWARD_BIDS = "award_bids"
    MANAGE_BID_USERS = "manage_bid_users"
    VIEW_BIDS = "view_bids"


def permission_name(permission: str | Permission) -> str:
    """Plain string form of a permission (Enum members hash by name, not value)."""
    if isinstance(permission, Enum):
        return str(permission.value)
    return str(permission)


def normalize_permissions(permissions: Iterable[str | Permission]) -> frozenset[str]:
    return frozenset(permission_name(p) for p in permissions)


def _coerce_role(role_type: RoleType | str) -> RoleType | None:
    try:
        return RoleType(role_type)
    except ValueError:
        return None


# ---- YAML models ---------------------------------------------------------------------


class RolePolicyModel(BaseModel):
    category: RoleCategory
    scopes: list[str] = Field(default_factory=list)
    default_permissions: list[str] = Field(default_factory=list)


class ScopePolicyModel(BaseModel):
    bid_permissions: list[str] = Field(default_factory=list)
    roles: dict[str, RolePolicyModel] = Field(default_factory=dict)


@dataclass(frozen=True)
class RolePolicy:
    """Resolved policy entry for one role type."""

    role_type: RoleType
    category: RoleCategory
    scopes: frozenset[str]
    default_permissions: frozenset[str]


class ScopePolicy:
    """
    Immutable role-type -> allowed-scope-type table.

    Usage:
        policy = load_scope_policy(DEFAULT_POLICY_PATH)
        policy.allows(RoleType.GROUP_ADMIN, "school")  # False
    """

    def __init__(self, roles: Mapping[RoleType, RolePolicy], bid_permissions: Iterable[str]) -> None:
        self._roles = dict(roles)
        self._bid_permissions = frozenset(bid_permissions)

    @property
    def bid_permissions(self) -> frozenset[str]:
        return self._bid_permissions

    def role(self, role_type: RoleType) -> RolePolicy:
        return self._roles[RoleType(role_type)]

    def category_of(self, role_type: RoleType) -> RoleCategory:
        return self.role(role_type).category

    def default_permissions(self, role_type: RoleType) -> frozenset[str]:
        return self.role(role_type).default_permissions

    def role_types(self, category: RoleCategory | None = None) -> tuple[RoleType, ...]:
        return tuple(r for r, p in self._roles.items() if category is None or p.category == category)

    def allows(self, role_type: RoleType, scope_type: str | OrganizationType) -> bool:
        entry = self._roles.get(_coerce_role(role_type))
        if entry is None:
            return False
        scope = scope_type.value if isinstance(scope_type, OrganizationType) else str(scope_type)
        return scope in entry.scopes

    def check_binding(self, role_type: RoleType, scope_type: str | OrganizationType) -> None:
        """Raise InvalidScopeBinding unless ``role_type`` may be scoped to ``scope_type``."""
        if not self.allows(role_type, scope_type):
            scope = scope_type.value if isinstance(scope_type, OrganizationType) else scope_type
            entry = self._roles.get(_coerce_role(role_type))
            allowed = sorted(entry.scopes) if entry else []
            raise InvalidScopeBinding(
                f"role {getattr(role_type, 'value', role_type)!r} cannot be scoped to {scope!r}; "
                f"allowed scope types: {allowed}"
            )


# ---- Loader --------------------------------------------------------------------------


def build_scope_policy(raw: Mapping[str, Any]) -> ScopePolicy:
    """Validate an already-parsed ``policy`` mapping and build a ScopePolicy."""

    try:
        model = ScopePolicyModel.model_validate(raw)
    except ValidationError as exc:
        raise PolicyConfigError(f"invalid scope policy: {exc}") from exc

    roles: dict[RoleType, RolePolicy] = {}
    for role_name, entry in model.roles.items():
        try:
            role_type = RoleType(role_name)
        except ValueError as exc:
            raise PolicyConfigError(f"unknown role type {role_name!r}") from exc

        scopes = frozenset(s.strip().lower() for s in entry.scopes)
        if not scopes:
            raise PolicyConfigError(f"role {role_name!r} must allow at least one scope type")
        unknown = scopes.difference(SCOPE_TYPES)
        if unknown:
            raise PolicyConfigError(f"role {role_name!r} references unknown scope types: {sorted(unknown)}")
        if entry.category is RoleCategory.ADMIN and BID_SCOPE in scopes:
            raise PolicyConfigError(f"admin role {role_name!r} cannot be scoped to a single bid")

        roles[role_type] = RolePolicy(
            role_type=role_type,
            category=entry.category,
            scopes=scopes,
            default_permissions=frozenset(entry.default_permissions),
        )

    missing = set(RoleType).difference(roles.keys())
    if missing:
        raise PolicyConfigError(f"scope policy is missing role types: {sorted(r.value for r in missing)}")

    bid_permissions = frozenset(model.bid_permissions)
    for role in roles.values():
        if role.category is RoleCategory.BID and bid_permissions:
            outside = role.default_permissions.difference(bid_permissions)
            if outside:
                raise PolicyConfigError(
                    f"bid role {role.role_type.value!r} has default permissions outside the bid domain: {sorted(outside)}"
                )

    return ScopePolicy(roles, bid_permissions)


def load_scope_policy(path: Path = DEFAULT_POLICY_PATH) -> ScopePolicy:
    """Load and validate the scope policy YAML from disk."""

    raw_text = Path(path).read_text(encoding="utf-8")
    raw = yaml.safe_load(raw_text) or {}
    if not isinstance(raw, dict) or "policy" not in raw:
        raise PolicyConfigError(f"Missing top-level 'policy' key in config: {path}")

    policy = build_scope_policy(raw["policy"] or {})
    logger.debug("Loaded scope policy path=%s roles=%d", path, len(policy.role_types()))
    return policy
