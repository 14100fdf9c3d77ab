from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from bidportal.authz.models import BidRoleAssignment, RoleAssignment
from bidportal.authz.policy import RoleType


class RoleAssignmentCreate(BaseModel):
    user_id: int
    role_type: RoleType
    organization_id: int
    # None -> the role's default permissions from the scope policy.
    permissions: list[str] | None = None


class BidRoleAssignmentCreate(BaseModel):
    user_id: int
    role_type: RoleType
    organization_id: int | None = None
    bid_id: int | None = None
    permissions: list[str] | None = None

    @model_validator(mode="after")
    def _one_scope(self) -> BidRoleAssignmentCreate:
        if (self.organization_id is None) == (self.bid_id is None):
            raise ValueError("exactly one of organization_id or bid_id is required")
        return self


class RoleAssignmentOut(BaseModel):
    id: int | None
    user_id: int
    role_type: str
    organization_id: int
    permissions: list[str] = Field(default_factory=list)
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, a: RoleAssignment) -> RoleAssignmentOut:
        return cls(
            id=a.id,
            user_id=a.user_id,
            role_type=getattr(a.role_type, "value", a.role_type),
            organization_id=a.scope_organization_id,
            permissions=sorted(a.permissions),
            created_at=a.created_at,
        )


class BidRoleAssignmentOut(BaseModel):
    id: int | None
    user_id: int
    role_type: str
    organization_id: int | None
    bid_id: int | None
    permissions: list[str] = Field(default_factory=list)
    created_at: datetime | None = None

    @classmethod
    def from_domain(cls, a: BidRoleAssignment) -> BidRoleAssignmentOut:
        return cls(
            id=a.id,
            user_id=a.user_id,
            role_type=getattr(a.role_type, "value", a.role_type),
            organization_id=a.scope_organization_id,
            bid_id=a.bid_id,
            permissions=sorted(a.permissions),
            created_at=a.created_at,
        )


class MatchedAssignmentOut(BaseModel):
    id: int | None
    user_id: int
    role_type: str
    scope_organization_id: int | None
    bid_id: int | None
    permissions: list[str]


class DecisionOut(BaseModel):
    allowed: bool
    reason: str
    matched_assignment: MatchedAssignmentOut | None = None
