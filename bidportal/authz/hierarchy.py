"""
Organization forest snapshot and the cache that publishes it.

Key ideas:
- An ``OrganizationHierarchy`` is an immutable arena of organizations indexed
  by id, plus a child reverse index built once at construction.
- Ancestor walks guard against cycles even though writers validate: a
  revisited id raises ``CorruptHierarchy`` instead of looping.
- ``HierarchyCache`` holds the current snapshot. Readers take the reference
  as-is; writers build and validate a new snapshot, then swap it in.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging
import threading
from typing import Protocol

from .errors import CorruptHierarchy, InvalidHierarchy, NotFound
from .models import Organization
from .policy import OrganizationType

logger = logging.getLogger(__name__)


# Allowed parent type for each organization type (None means "must be a root").
_PARENT_TYPES: Mapping[OrganizationType, OrganizationType | None] = {
    OrganizationType.COOPERATIVE: None,
    OrganizationType.DISTRICT: OrganizationType.COOPERATIVE,
    OrganizationType.SCHOOL: OrganizationType.DISTRICT,
}


class OrganizationHierarchy:
    """
    Read-only view over one consistent set of organizations.

    Usage:
        hierarchy = OrganizationHierarchy(orgs)
        hierarchy.ancestor_chain(school_id)  # (school, district, coop)
    """

    def __init__(self, organizations: Iterable[Organization], version: int = 0) -> None:
        nodes: dict[int, Organization] = {}
        for org in organizations:
            if org.id in nodes:
                raise InvalidHierarchy(f"duplicate organization id {org.id}")
            nodes[org.id] = org
        self._nodes = nodes
        self._version = version

        children: dict[int, list[int]] = {}
        for org in nodes.values():
            if org.parent_id is not None:
                children.setdefault(org.parent_id, []).append(org.id)
        self._children = {parent: tuple(sorted(ids)) for parent, ids in children.items()}

        self._descendants: dict[int, frozenset[Organization]] = {}
        self._lock = threading.Lock()

    @property
    def version(self) -> int:
        return self._version

    def __contains__(self, org_id: object) -> bool:
        return org_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self):
        return iter(self._nodes.values())

    def get(self, org_id: int) -> Organization:
        try:
            return self._nodes[org_id]
        except KeyError:
            raise NotFound(f"organization {org_id} not found") from None

    def roots(self) -> tuple[Organization, ...]:
        return tuple(o for o in self._nodes.values() if o.parent_id is None)

    def children_of(self, org_id: int) -> tuple[Organization, ...]:
        self.get(org_id)
        return tuple(self._nodes[c] for c in self._children.get(org_id, ()))

    # ---- Queries --------------------------------------------------------------------

    def ancestor_chain(self, org_id: int) -> tuple[Organization, ...]:
        """Return (self, parent, ..., root). Raises NotFound or CorruptHierarchy."""

        current = self.get(org_id)
        chain: list[Organization] = []
        seen: set[int] = set()
        while True:
            if current.id in seen:
                raise CorruptHierarchy(
                    f"cycle detected walking ancestors of {org_id}: "
                    f"{' -> '.join(str(o.id) for o in chain)} -> {current.id}"
                )
            seen.add(current.id)
            chain.append(current)
            if current.parent_id is None:
                return tuple(chain)
            parent = self._nodes.get(current.parent_id)
            if parent is None:
                raise CorruptHierarchy(
                    f"organization {current.id} points at missing parent {current.parent_id}"
                )
            current = parent

    def is_descendant_of(self, candidate_id: int, ancestor_id: int) -> bool:
        return any(o.id == ancestor_id for o in self.ancestor_chain(candidate_id))

    def descendants_of(self, org_id: int) -> frozenset[Organization]:
        """Strict descendants of ``org_id``, memoized per snapshot."""

        self.get(org_id)
        cached = self._descendants.get(org_id)
        if cached is not None:
            return cached

        found: dict[int, Organization] = {}
        stack = list(self._children.get(org_id, ()))
        while stack:
            child_id = stack.pop()
            if child_id == org_id or child_id in found:
                raise CorruptHierarchy(f"cycle detected below organization {org_id} at {child_id}")
            found[child_id] = self._nodes[child_id]
            stack.extend(self._children.get(child_id, ()))

        result = frozenset(found.values())
        with self._lock:
            self._descendants.setdefault(org_id, result)
        return result

    # ---- Validation -----------------------------------------------------------------

    def validate(self) -> None:
        """
        Check the forest invariant.

        Raises CorruptHierarchy for cycles and dangling parents, and
        InvalidHierarchy for parent-type or coop_id violations.
        """

        for org in self._nodes.values():
            chain = self.ancestor_chain(org.id)

            expected_parent = _PARENT_TYPES[org.type]
            if org.parent_id is not None:
                parent = self._nodes[org.parent_id]
                if expected_parent is None or parent.type is not expected_parent:
                    raise InvalidHierarchy(
                        f"{org.type.value} {org.id} cannot have a {parent.type.value} parent ({parent.id})"
                    )
            elif org.type is OrganizationType.SCHOOL:
                raise InvalidHierarchy(f"school {org.id} must belong to a district")

            root = chain[-1]
            if org.type is OrganizationType.COOPERATIVE:
                if org.coop_id not in (None, org.id):
                    raise InvalidHierarchy(f"cooperative {org.id} has coop_id {org.coop_id}")
                continue
            expected_coop = root.id if root.type is OrganizationType.COOPERATIVE else None
            if org.coop_id != expected_coop:
                raise InvalidHierarchy(
                    f"{org.type.value} {org.id} has coop_id {org.coop_id}, expected {expected_coop}"
                )


# ---- Cache ---------------------------------------------------------------------------


class OrganizationSource(Protocol):
    def list_all(self) -> list[Organization]: ...


class HierarchyCache:
    """
    Read-mostly holder of the current hierarchy snapshot.

    ``snapshot()`` never blocks. ``publish()`` validates the candidate first and
    only then swaps the reference, so an in-flight evaluation keeps the tree it
    started with and never sees a half-built one.
    """

    def __init__(self, organizations: Iterable[Organization] = ()) -> None:
        self._write_lock = threading.Lock()
        initial = OrganizationHierarchy(organizations, version=0)
        initial.validate()
        self._current = initial

    @property
    def version(self) -> int:
        return self._current.version

    def snapshot(self) -> OrganizationHierarchy:
        return self._current

    def publish(self, organizations: Iterable[Organization]) -> OrganizationHierarchy:
        with self._write_lock:
            candidate = OrganizationHierarchy(organizations, version=self._current.version + 1)
            try:
                candidate.validate()
            except (CorruptHierarchy, InvalidHierarchy):
                logger.error("Rejected hierarchy snapshot version=%d", candidate.version, exc_info=True)
                raise
            self._current = candidate
        logger.info("Published hierarchy snapshot version=%d organizations=%d", candidate.version, len(candidate))
        return candidate

    def reload(self, source: OrganizationSource) -> OrganizationHierarchy:
        """Republish from a repository, e.g. after re-parenting an organization."""
        return self.publish(source.list_all())
