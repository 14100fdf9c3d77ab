"""
Shared sample hierarchy:

    C1 (1, cooperative)
      D1 (10, district)
        S1 (100, school)
        S2 (101, school)
      D3 (30, district)
    D2 (20, district, no cooperative)
      S3 (200, school)

Bids: 7 owned by C1, 42 owned by D2, 43 owned by S1.
"""
from __future__ import annotations

from bidportal.authz.models import Organization
from bidportal.authz.policy import OrganizationType

C1, D1, D2, D3, S1, S2, S3 = 1, 10, 20, 30, 100, 101, 200

ALL_IDS = (C1, D1, D2, D3, S1, S2, S3)

BID_OWNERS = {7: C1, 42: D2, 43: S1}


def sample_organizations() -> list[Organization]:
    coop = OrganizationType.COOPERATIVE
    district = OrganizationType.DISTRICT
    school = OrganizationType.SCHOOL
    return [
        Organization(id=C1, type=coop, parent_id=None, coop_id=C1, name="C1"),
        Organization(id=D1, type=district, parent_id=C1, coop_id=C1, name="D1"),
        Organization(id=D3, type=district, parent_id=C1, coop_id=C1, name="D3"),
        Organization(id=D2, type=district, parent_id=None, coop_id=None, name="D2"),
        Organization(id=S1, type=school, parent_id=D1, coop_id=C1, name="S1"),
        Organization(id=S2, type=school, parent_id=D1, coop_id=C1, name="S2"),
        Organization(id=S3, type=school, parent_id=D2, coop_id=None, name="S3"),
    ]
