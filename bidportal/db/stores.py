"""
SQLAlchemy implementations of the authorization store interfaces.

Each adapter wraps one request-scoped Session. Connection-level failures are
reported as ``StoreUnavailable`` so callers can answer 503 instead of telling
a user they lack permission.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
import logging

from sqlalchemy import select
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from bidportal.authz import models as domain
from bidportal.authz.errors import InvalidHierarchy, NotFound, StoreUnavailable
from bidportal.authz.policy import OrganizationType, Permission, RoleType, ScopePolicy
from bidportal.authz.stores import check_bid_binding, check_role_binding
from bidportal.models.organization import Bid, Organization
from bidportal.models.security import BidRoleAssignment, RoleAssignment

logger = logging.getLogger(__name__)

_UNAVAILABLE = (OperationalError, PoolTimeoutError, DisconnectionError, TimeoutError, ConnectionError)


@contextmanager
def _store_call(store: str) -> Iterator[None]:
    try:
        yield
    except _UNAVAILABLE as exc:
        logger.error("%s unavailable: %s", store, type(exc).__name__, exc_info=True)
        raise StoreUnavailable(f"{store} unavailable") from exc


# ---- Row -> domain -------------------------------------------------------------------


def organization_to_domain(row: Organization) -> domain.Organization:
    try:
        org_type = OrganizationType(row.type)
    except ValueError:
        raise InvalidHierarchy(f"organization {row.id} has unknown type {row.type!r}") from None
    return domain.Organization(
        id=row.id,
        type=org_type,
        parent_id=row.parent_id,
        coop_id=row.coop_id,
        name=row.name,
    )


def _role_type(raw: str, row_id: int) -> RoleType:
    try:
        return RoleType(raw)
    except ValueError:
        # Passed through unparsed; the evaluator denies it as an invalid binding.
        logger.warning("Assignment id=%s has unknown role type %r", row_id, raw)
        return raw  # type: ignore[return-value]


def role_assignment_to_domain(row: RoleAssignment) -> domain.RoleAssignment:
    return domain.RoleAssignment(
        user_id=row.user_id,
        role_type=_role_type(row.role_type, row.id),
        scope_organization_id=row.organization_id,
        permissions=frozenset(row.permissions or ()),
        id=row.id,
        created_at=row.created_at,
    )


def bid_role_assignment_to_domain(row: BidRoleAssignment) -> domain.BidRoleAssignment:
    return domain.BidRoleAssignment(
        user_id=row.user_id,
        role_type=_role_type(row.role_type, row.id),
        permissions=frozenset(row.permissions or ()),
        scope_organization_id=row.organization_id,
        bid_id=row.bid_id,
        id=row.id,
        created_at=row.created_at,
    )


# ---- Repositories --------------------------------------------------------------------


class SqlOrganizationRepository:
    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, org_id: int) -> domain.Organization:
        with _store_call("organization repository"):
            row = self._db.get(Organization, org_id)
        if row is None:
            raise NotFound(f"organization {org_id} not found")
        return organization_to_domain(row)

    def list_all(self) -> list[domain.Organization]:
        with _store_call("organization repository"):
            rows = self._db.scalars(select(Organization).order_by(Organization.id)).all()
        return [organization_to_domain(r) for r in rows]


class SqlBidRepository:
    def __init__(self, db: Session) -> None:
        self._db = db

    def owner_organization(self, bid_id: int) -> int:
        with _store_call("bid repository"):
            row = self._db.get(Bid, bid_id)
        if row is None or row.is_deleted:
            raise NotFound(f"bid {bid_id} not found")
        owner = row.owner_organization_id
        if owner is None:
            raise NotFound(f"bid {bid_id} has no owning organization")
        return owner


# ---- Assignment stores ---------------------------------------------------------------


class SqlRoleAssignmentStore:
    def __init__(self, db: Session, policy: ScopePolicy | None = None) -> None:
        self._db = db
        self._policy = policy

    def find_by_user(self, user_id: int) -> list[domain.RoleAssignment]:
        stmt = select(RoleAssignment).where(RoleAssignment.user_id == user_id).order_by(RoleAssignment.id)
        with _store_call("role assignment store"):
            rows = self._db.scalars(stmt).all()
        return [role_assignment_to_domain(r) for r in rows]

    def create(
        self,
        user_id: int,
        role_type: RoleType | str,
        scope_organization_id: int,
        permissions: Iterable[str | Permission] | None = None,
    ) -> domain.RoleAssignment:
        """
        Validate the scope binding and insert the row in one transaction.

        Raises NotFound (unknown organization) or InvalidScopeBinding; either
        way nothing is written.
        """

        if self._policy is None:
            raise RuntimeError("SqlRoleAssignmentStore.create requires a ScopePolicy")

        with _store_call("role assignment store"):
            organization = SqlOrganizationRepository(self._db).get(scope_organization_id)
            role, perms = check_role_binding(self._policy, role_type, organization, permissions)
            row = RoleAssignment(
                user_id=user_id,
                role_type=role.value,
                organization_id=organization.id,
                permissions=sorted(perms),
            )
            self._db.add(row)
            try:
                self._db.commit()
            except Exception:
                self._db.rollback()
                raise
            created = role_assignment_to_domain(row)

        logger.info(
            "Created role assignment id=%s user=%s role=%s organization=%s",
            created.id,
            user_id,
            role.value,
            organization.id,
        )
        return created


class SqlBidRoleAssignmentStore:
    def __init__(self, db: Session, policy: ScopePolicy | None = None) -> None:
        self._db = db
        self._policy = policy

    def find_by_user(self, user_id: int) -> list[domain.BidRoleAssignment]:
        stmt = (
            select(BidRoleAssignment)
            .where(BidRoleAssignment.user_id == user_id)
            .order_by(BidRoleAssignment.id)
        )
        with _store_call("bid role assignment store"):
            rows = self._db.scalars(stmt).all()
        return [bid_role_assignment_to_domain(r) for r in rows]

    def create(
        self,
        user_id: int,
        role_type: RoleType | str,
        *,
        scope_organization_id: int | None = None,
        bid_id: int | None = None,
        permissions: Iterable[str | Permission] | None = None,
    ) -> domain.BidRoleAssignment:
        if self._policy is None:
            raise RuntimeError("SqlBidRoleAssignmentStore.create requires a ScopePolicy")

        with _store_call("bid role assignment store"):
            organization = None
            if scope_organization_id is not None:
                organization = SqlOrganizationRepository(self._db).get(scope_organization_id)
            if bid_id is not None:
                SqlBidRepository(self._db).owner_organization(bid_id)
            role, perms = check_bid_binding(self._policy, role_type, organization, bid_id, permissions)
            row = BidRoleAssignment(
                user_id=user_id,
                role_type=role.value,
                organization_id=scope_organization_id,
                bid_id=bid_id,
                permissions=sorted(perms),
            )
            self._db.add(row)
            try:
                self._db.commit()
            except Exception:
                self._db.rollback()
                raise
            created = bid_role_assignment_to_domain(row)

        logger.info(
            "Created bid role assignment id=%s user=%s role=%s organization=%s bid=%s",
            created.id,
            user_id,
            role.value,
            scope_organization_id,
            bid_id,
        )
        return created
