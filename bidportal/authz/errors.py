"""
Exception taxonomy for the authorization core.

Only ``CorruptHierarchy`` and ``StoreUnavailable`` ever escape
``PermissionEvaluator.authorize``; every other outcome is reported as an
``AuthorizationDecision``. The remaining classes are raised by the write
paths (publishing a hierarchy, creating an assignment, loading the policy).
"""

from __future__ import annotations


class AuthzError(Exception):
    """Base class for all authorization-core errors."""


class NotFound(AuthzError, LookupError):
    """A referenced organization or bid does not exist."""


class CorruptHierarchy(AuthzError):
    """
    The organization graph is not a forest (cycle or dangling parent).

    Fatal for the current call. Operators must repair the data.
    """


class InvalidHierarchy(AuthzError, ValueError):
    """A candidate snapshot breaks the parent-type or coop_id invariants."""


class InvalidScopeBinding(AuthzError, ValueError):
    """A role type is bound to a scope its policy does not allow."""


class StoreUnavailable(AuthzError):
    """An upstream store failed or timed out. Never coerced into a deny."""


class PolicyConfigError(AuthzError, ValueError):
    """Raised when the scope policy YAML is invalid."""
