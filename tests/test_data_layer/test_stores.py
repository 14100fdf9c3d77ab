"""
Tests for the SQLAlchemy store adapters.

Uses db_session fixture: in-memory SQLite, rolled back after each test.
"""
from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from bidportal.authz.errors import InvalidHierarchy, InvalidScopeBinding, NotFound, StoreUnavailable
from bidportal.authz.evaluator import PermissionEvaluator
from bidportal.authz.hierarchy import HierarchyCache
from bidportal.authz.models import BidResource, DecisionReason, OrganizationResource
from bidportal.authz.policy import OrganizationType, RoleType
from bidportal.authz.resolver import ScopeResolver
from bidportal.db.init_db import seed_demo_data
from bidportal.db.stores import (
    SqlBidRepository,
    SqlBidRoleAssignmentStore,
    SqlOrganizationRepository,
    SqlRoleAssignmentStore,
)
from bidportal.models.organization import Bid, Organization
from bidportal.models.security import BidRoleAssignment, RoleAssignment, User
from tests.sample_data import ALL_IDS, C1, D1, D2, S1, S2, S3, sample_organizations


def _add_organizations(db) -> None:
    for org in sample_organizations():
        db.add(
            Organization(
                id=org.id,
                name=org.name,
                type=org.type.value,
                parent_id=org.parent_id,
                coop_id=org.coop_id,
            )
        )
    db.add_all(
        [
            Bid(id=7, name="Coop produce", cooperative_id=C1),
            Bid(id=42, name="Dairy", district_id=D2),
            Bid(id=43, name="Snacks", district_id=D1, school_id=S1),
            Bid(id=44, name="Withdrawn", district_id=D1, is_deleted=True),
            Bid(id=45, name="Orphan"),
        ]
    )
    db.commit()


def _add_user(db, username: str = "user") -> User:
    user = User(username=username, email=f"{username}@example.com", is_active=True)
    db.add(user)
    db.commit()
    return user


def _count(db, model) -> int:
    return db.scalar(select(func.count()).select_from(model))


# ---- Repositories --------------------------------------------------------------------


def test_organization_repository_maps_rows(db_session):
    _add_organizations(db_session)
    repo = SqlOrganizationRepository(db_session)

    school = repo.get(S1)
    assert school.type is OrganizationType.SCHOOL
    assert school.parent_id == D1
    assert school.coop_id == C1
    assert [o.id for o in repo.list_all()] == sorted(ALL_IDS)

    with pytest.raises(NotFound):
        repo.get(999)


def test_organization_repository_rejects_unknown_type(db_session):
    db_session.add(Organization(id=1, name="Mystery", type="region"))
    db_session.commit()

    with pytest.raises(InvalidHierarchy, match="unknown type 'region'"):
        SqlOrganizationRepository(db_session).list_all()


def test_bid_owner_is_most_specific_organization(db_session):
    _add_organizations(db_session)
    bids = SqlBidRepository(db_session)

    assert bids.owner_organization(7) == C1
    assert bids.owner_organization(42) == D2
    assert bids.owner_organization(43) == S1


@pytest.mark.parametrize("bid_id", [44, 45, 999])
def test_deleted_ownerless_or_missing_bid_is_not_found(db_session, bid_id):
    _add_organizations(db_session)
    with pytest.raises(NotFound):
        SqlBidRepository(db_session).owner_organization(bid_id)


# ---- Assignment stores ---------------------------------------------------------------


def test_create_and_find_role_assignments(db_session, policy):
    _add_organizations(db_session)
    user = _add_user(db_session)
    store = SqlRoleAssignmentStore(db_session, policy)

    first = store.create(user.id, RoleType.DISTRICT_ADMIN, D1, ["read", "write"])
    second = store.create(user.id, "School-Admin", S2)

    assert first.id is not None
    assert first.created_at is not None
    assert first.permissions == frozenset({"read", "write"})
    assert second.permissions == policy.default_permissions(RoleType.SCHOOL_ADMIN)
    assert store.find_by_user(user.id) == [first, second]
    assert store.find_by_user(user.id + 1) == []


def test_invalid_role_assignment_writes_nothing(db_session, policy):
    _add_organizations(db_session)
    user = _add_user(db_session)
    store = SqlRoleAssignmentStore(db_session, policy)

    with pytest.raises(InvalidScopeBinding):
        store.create(user.id, RoleType.GROUP_ADMIN, S1)
    with pytest.raises(NotFound):
        store.create(user.id, RoleType.VIEWER, 999)

    assert _count(db_session, RoleAssignment) == 0


def test_create_requires_policy(db_session):
    with pytest.raises(RuntimeError):
        SqlRoleAssignmentStore(db_session).create(1, RoleType.VIEWER, C1)
    with pytest.raises(RuntimeError):
        SqlBidRoleAssignmentStore(db_session).create(1, RoleType.BID_VIEWER, bid_id=42)


def test_create_and_find_bid_role_assignments(db_session, policy):
    _add_organizations(db_session)
    user = _add_user(db_session)
    store = SqlBidRoleAssignmentStore(db_session, policy)

    on_bid = store.create(user.id, RoleType.BID_VIEWER, bid_id=42)
    on_org = store.create(user.id, RoleType.BID_ADMINISTRATOR, scope_organization_id=D1, permissions=["award_bids"])

    assert on_bid.is_bid_bound
    assert on_org.is_organization_bound
    assert store.find_by_user(user.id) == [on_bid, on_org]


def test_invalid_bid_role_assignment_writes_nothing(db_session, policy):
    _add_organizations(db_session)
    user = _add_user(db_session)
    store = SqlBidRoleAssignmentStore(db_session, policy)

    with pytest.raises(InvalidScopeBinding):
        store.create(user.id, RoleType.BID_VIEWER, bid_id=42, scope_organization_id=D2)
    with pytest.raises(InvalidScopeBinding):
        store.create(user.id, RoleType.SCHOOL_ADMIN, scope_organization_id=S1)
    with pytest.raises(NotFound):
        store.create(user.id, RoleType.BID_VIEWER, bid_id=44)

    assert _count(db_session, BidRoleAssignment) == 0


def test_unknown_role_type_row_is_passed_through(db_session, caplog):
    _add_organizations(db_session)
    user = _add_user(db_session)
    db_session.add(RoleAssignment(user_id=user.id, role_type="Owner", organization_id=D1, permissions=["read"]))
    db_session.commit()

    with caplog.at_level(logging.WARNING, logger="bidportal.db.stores"):
        [row] = SqlRoleAssignmentStore(db_session).find_by_user(user.id)

    assert row.role_type == "Owner"
    assert "unknown role type 'Owner'" in caplog.text


def test_operational_error_is_store_unavailable():
    db = MagicMock()
    db.scalars.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
    db.get.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))

    with pytest.raises(StoreUnavailable):
        SqlRoleAssignmentStore(db).find_by_user(1)
    with pytest.raises(StoreUnavailable):
        SqlBidRoleAssignmentStore(db).find_by_user(1)
    with pytest.raises(StoreUnavailable):
        SqlBidRepository(db).owner_organization(42)
    with pytest.raises(StoreUnavailable):
        SqlOrganizationRepository(db).list_all()


# ---- End to end ----------------------------------------------------------------------


def test_evaluator_over_sql_stores(db_session, policy):
    _add_organizations(db_session)
    user = _add_user(db_session)
    SqlRoleAssignmentStore(db_session, policy).create(user.id, RoleType.DISTRICT_ADMIN, D1, ["read", "write"])
    SqlBidRoleAssignmentStore(db_session, policy).create(user.id, RoleType.BID_VIEWER, bid_id=42, permissions=["read"])
    # Drifted row written outside the store.
    db_session.add(RoleAssignment(user_id=user.id, role_type="Group-Admin", organization_id=S3, permissions=["write"]))
    db_session.commit()

    cache = HierarchyCache(SqlOrganizationRepository(db_session).list_all())
    evaluator = PermissionEvaluator(
        SqlRoleAssignmentStore(db_session),
        SqlBidRoleAssignmentStore(db_session),
        ScopeResolver(cache, SqlBidRepository(db_session)),
        policy,
    )

    assert evaluator.authorize(user.id, "write", OrganizationResource(S1)).allowed
    assert evaluator.authorize(user.id, "write", OrganizationResource(C1)).reason is DecisionReason.PERMISSION_NOT_GRANTED
    assert evaluator.authorize(user.id, "write", OrganizationResource(S3)).reason is DecisionReason.INVALID_SCOPE_BINDING
    assert evaluator.authorize(user.id, "read", BidResource(42)).matched_scope == ("bid", 42)
    assert evaluator.authorize(user.id, "read", BidResource(43)).allowed
    assert evaluator.authorize(user.id, "read", BidResource(44)).reason is DecisionReason.UNKNOWN_RESOURCE


def test_seed_demo_data_is_a_valid_hierarchy(db_session, policy):
    seed_demo_data(db_session, policy)

    cache = HierarchyCache(SqlOrganizationRepository(db_session).list_all())
    assert len(cache.snapshot()) == 7
    assert _count(db_session, RoleAssignment) == 3
    assert _count(db_session, BidRoleAssignment) == 2

    dan = db_session.scalar(select(User).where(User.username == "dan_district"))
    roles = SqlRoleAssignmentStore(db_session).find_by_user(dan.id)
    assert [r.role_type for r in roles] == [RoleType.DISTRICT_ADMIN]


def test_bid_owner_accepts_organization_id_zero():
    assert Bid(school_id=None, district_id=0, cooperative_id=1).owner_organization_id == 0
    assert Bid(school_id=0, district_id=10).owner_organization_id == 0
    assert Bid().owner_organization_id is None
