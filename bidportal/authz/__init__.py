"""
Organization-scoped, bid-scoped authorization core.

This package is pure Python and has no FastAPI or SQLAlchemy dependency.
Build a ``PermissionEvaluator`` from the store interfaces, a ``ScopeResolver``
and a ``ScopePolicy``, then call ``authorize()`` per request.
"""

from .errors import (
    AuthzError,
    CorruptHierarchy,
    InvalidHierarchy,
    InvalidScopeBinding,
    NotFound,
    PolicyConfigError,
    StoreUnavailable,
)
from .evaluator import PermissionEvaluator
from .hierarchy import HierarchyCache, OrganizationHierarchy
from .models import (
    AuthorizationDecision,
    BidPoolResource,
    BidResource,
    BidRoleAssignment,
    DecisionReason,
    Organization,
    OrganizationResource,
    RoleAssignment,
)
from .policy import (
    DEFAULT_POLICY_PATH,
    OrganizationType,
    Permission,
    RoleCategory,
    RoleType,
    ScopePolicy,
    load_scope_policy,
)
from .resolver import ResolvedScope, ScopeResolver

__all__ = [
    "AuthorizationDecision",
    "AuthzError",
    "BidPoolResource",
    "BidResource",
    "BidRoleAssignment",
    "CorruptHierarchy",
    "DEFAULT_POLICY_PATH",
    "DecisionReason",
    "HierarchyCache",
    "InvalidHierarchy",
    "InvalidScopeBinding",
    "NotFound",
    "Organization",
    "OrganizationHierarchy",
    "OrganizationResource",
    "OrganizationType",
    "Permission",
    "PermissionEvaluator",
    "PolicyConfigError",
    "ResolvedScope",
    "RoleAssignment",
    "RoleCategory",
    "RoleType",
    "ScopePolicy",
    "ScopeResolver",
    "StoreUnavailable",
    "load_scope_policy",
]
