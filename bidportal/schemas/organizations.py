from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from bidportal.authz.policy import OrganizationType


class OrganizationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str | None
    type: OrganizationType
    parent_id: int | None
    coop_id: int | None


class BidOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str | None
    name: str | None
    status: str | None
    cooperative_id: int | None
    district_id: int | None
    school_id: int | None
    owner_organization_id: int | None
