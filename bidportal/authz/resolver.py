"""Translate a requested resource into the scopes that could authorize it."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from .hierarchy import HierarchyCache, OrganizationHierarchy
from .models import BidPoolResource, BidResource, Organization, OrganizationResource, ResourceScope
from .stores import BidRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedScope:
    """
    Ordered candidate scopes for one resource.

    ``chain`` is self-first, root-last. ``bid_id`` is set for bid resources and
    is the most specific scope of all: a grant on the literal bid applies to
    that bid only and bypasses the hierarchy. ``bid_scoped`` is set for bids and
    bid pools; only then do organization-bound bid role assignments count.
    """

    chain: tuple[Organization, ...]
    bid_id: int | None = None
    bid_scoped: bool = False

    @property
    def organization(self) -> Organization:
        return self.chain[0]

    @property
    def organization_ids(self) -> tuple[int, ...]:
        return tuple(o.id for o in self.chain)

    def depth_of(self, org_id: int) -> int | None:
        """Position of ``org_id`` in the chain (0 = the resource itself), or None."""
        for depth, org in enumerate(self.chain):
            if org.id == org_id:
                return depth
        return None


class ScopeResolver:
    """
    Expands resources against a hierarchy snapshot.

    Accepts either a fixed ``OrganizationHierarchy`` or a ``HierarchyCache``;
    with a cache, each ``resolve`` call reads whatever snapshot is current.
    """

    def __init__(self, hierarchy: OrganizationHierarchy | HierarchyCache, bids: BidRepository) -> None:
        self._hierarchy = hierarchy
        self._bids = bids

    def snapshot(self) -> OrganizationHierarchy:
        if isinstance(self._hierarchy, HierarchyCache):
            return self._hierarchy.snapshot()
        return self._hierarchy

    def resolve(self, resource: ResourceScope, hierarchy: OrganizationHierarchy | None = None) -> ResolvedScope:
        """
        Raises NotFound for an unknown organization or bid, and CorruptHierarchy
        when the ancestor walk hits a cycle or a dangling parent.
        """

        snapshot = hierarchy if hierarchy is not None else self.snapshot()

        if isinstance(resource, OrganizationResource):
            return ResolvedScope(chain=snapshot.ancestor_chain(resource.organization_id))

        if isinstance(resource, BidResource):
            owner_id = resource.owner_organization_id
            if owner_id is None:
                owner_id = self._bids.owner_organization(resource.bid_id)
            logger.debug("Resolved bid=%s owner=%s", resource.bid_id, owner_id)
            return ResolvedScope(chain=snapshot.ancestor_chain(owner_id), bid_id=resource.bid_id, bid_scoped=True)

        if isinstance(resource, BidPoolResource):
            return ResolvedScope(chain=snapshot.ancestor_chain(resource.organization_id), bid_scoped=True)

        raise TypeError(f"unsupported resource type: {type(resource).__name__}")
