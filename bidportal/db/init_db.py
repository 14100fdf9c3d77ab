from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from bidportal.authz.policy import OrganizationType, Permission, RoleType, ScopePolicy
from bidportal.db.base import Base
from bidportal.db.session import SessionLocal, engine
from bidportal.db.stores import SqlBidRoleAssignmentStore, SqlRoleAssignmentStore
from bidportal.models.organization import Bid, Organization
from bidportal.models.security import User


def init_db(policy: ScopePolicy, seed: bool = True) -> None:
    """
    Create tables + seed demo data.

    The seed is small and deterministic so you can try the authorization
    behavior without additional setup:

        Gulf Coast Cooperative (1)
          Harbor ISD (10)
            Harbor Elementary (100)
            Harbor Middle (101)
          Bayside ISD (30)
        Pine Valley USD (20, no cooperative)
          Pine Valley High (200)
    """

    Base.metadata.create_all(bind=engine)

    if not seed:
        return
    with SessionLocal() as db:
        if _has_seed_data(db):
            return
        seed_demo_data(db, policy)


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Organization.id).limit(1)).first() is not None


def seed_demo_data(db: Session, policy: ScopePolicy) -> None:
    coop = OrganizationType.COOPERATIVE.value
    district = OrganizationType.DISTRICT.value
    school = OrganizationType.SCHOOL.value

    # Organizations
    db.add_all(
        [
            Organization(id=1, name="Gulf Coast Cooperative", type=coop, parent_id=None, coop_id=1),
            Organization(id=10, name="Harbor ISD", type=district, parent_id=1, coop_id=1),
            Organization(id=30, name="Bayside ISD", type=district, parent_id=1, coop_id=1),
            Organization(id=20, name="Pine Valley USD", type=district, parent_id=None, coop_id=None),
        ]
    )
    db.flush()
    db.add_all(
        [
            Organization(id=100, name="Harbor Elementary", type=school, parent_id=10, coop_id=1),
            Organization(id=101, name="Harbor Middle", type=school, parent_id=10, coop_id=1),
            Organization(id=200, name="Pine Valley High", type=school, parent_id=20, coop_id=None),
        ]
    )
    db.flush()

    # Bids
    db.add_all(
        [
            Bid(id=7, code="GC-2025-01", name="Coop produce", status="Open", cooperative_id=1),
            Bid(id=42, code="PV-2025-03", name="Dairy", status="Open", district_id=20),
            Bid(id=43, code="HE-2025-01", name="Snacks", status="Draft", district_id=10, school_id=100),
        ]
    )

    # Users
    alice = User(username="alice_group", email="alice.group@example.com", is_active=True)
    dan = User(username="dan_district", email="dan.district@example.com", is_active=True)
    sara = User(username="sara_school", email="sara.school@example.com", is_active=True)
    vic = User(username="vic_bids", email="vic.bids@example.com", is_active=True)
    nora = User(username="nora_none", email="nora.none@example.com", is_active=True)
    db.add_all([alice, dan, sara, vic, nora])
    db.commit()

    # Assignments go through the stores so the scope policy is enforced.
    roles = SqlRoleAssignmentStore(db, policy)
    roles.create(alice.id, RoleType.GROUP_ADMIN, 1)
    roles.create(dan.id, RoleType.DISTRICT_ADMIN, 10)
    roles.create(sara.id, RoleType.SCHOOL_ADMIN, 100)

    bid_roles = SqlBidRoleAssignmentStore(db, policy)
    bid_roles.create(vic.id, RoleType.BID_VIEWER, bid_id=42, permissions=[Permission.VIEW_BIDS])
    bid_roles.create(dan.id, RoleType.BID_ADMINISTRATOR, scope_organization_id=10)
