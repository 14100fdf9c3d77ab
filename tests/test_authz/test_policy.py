"""Tests for the scope policy table and its YAML loader."""
from __future__ import annotations

import pytest

from bidportal.authz.errors import InvalidScopeBinding, PolicyConfigError
from bidportal.authz.policy import (
    BID_SCOPE,
    OrganizationType,
    Permission,
    RoleCategory,
    RoleType,
    build_scope_policy,
    load_scope_policy,
    normalize_permissions,
    permission_name,
)


def test_shipped_policy_covers_every_role_type(policy):
    assert set(policy.role_types()) == set(RoleType)


def test_group_admin_is_cooperative_only(policy):
    assert policy.allows(RoleType.GROUP_ADMIN, OrganizationType.COOPERATIVE)
    assert not policy.allows(RoleType.GROUP_ADMIN, OrganizationType.DISTRICT)
    assert not policy.allows(RoleType.GROUP_ADMIN, OrganizationType.SCHOOL)


def test_district_admin_scopes(policy):
    assert policy.allows(RoleType.DISTRICT_ADMIN, "district")
    assert policy.allows(RoleType.DISTRICT_ADMIN, "cooperative")
    assert not policy.allows(RoleType.DISTRICT_ADMIN, "school")


def test_school_admin_and_super_admin_accept_every_organization_type(policy):
    for org_type in OrganizationType:
        assert policy.allows(RoleType.SCHOOL_ADMIN, org_type)
        assert policy.allows(RoleType.SUPER_ADMIN, org_type)


def test_role_type_given_as_plain_string(policy):
    assert policy.allows("Group-Admin", "cooperative")
    assert not policy.allows("Group-Admin", "school")
    assert not policy.allows("Regional-Admin", "cooperative")


def test_only_bid_roles_bind_to_a_single_bid(policy):
    assert policy.allows(RoleType.BID_VIEWER, BID_SCOPE)
    assert policy.allows(RoleType.BID_ADMINISTRATOR, BID_SCOPE)
    assert not policy.allows(RoleType.DISTRICT_ADMIN, BID_SCOPE)


def test_categories(policy):
    assert policy.category_of(RoleType.VIEWER) is RoleCategory.ADMIN
    assert policy.category_of(RoleType.BID_VIEWER) is RoleCategory.BID
    assert set(policy.role_types(RoleCategory.BID)) == {RoleType.BID_ADMINISTRATOR, RoleType.BID_VIEWER}


def test_default_permissions_of_bid_roles_stay_in_bid_domain(policy):
    assert policy.default_permissions(RoleType.BID_VIEWER) == frozenset({"view_bids"})
    assert policy.default_permissions(RoleType.BID_ADMINISTRATOR) <= policy.bid_permissions


def test_check_binding_raises_for_incompatible_scope(policy):
    policy.check_binding(RoleType.GROUP_ADMIN, OrganizationType.COOPERATIVE)
    with pytest.raises(InvalidScopeBinding, match="Group-Admin"):
        policy.check_binding(RoleType.GROUP_ADMIN, OrganizationType.SCHOOL)


def test_permission_names_are_plain_strings():
    assert permission_name(Permission.VIEW_BIDS) == "view_bids"
    assert permission_name("read") == "read"
    assert normalize_permissions([Permission.EDIT_BIDS, "read"]) == frozenset({"edit_bids", "read"})
    assert "view_bids" in normalize_permissions([Permission.VIEW_BIDS])


def _all_roles(**overrides):
    roles = {
        r.value: {
            "category": "bid" if r in (RoleType.BID_ADMINISTRATOR, RoleType.BID_VIEWER) else "admin",
            "scopes": ["cooperative"],
        }
        for r in RoleType
    }
    roles.update(overrides)
    return {"roles": roles}


def test_build_minimal_policy():
    policy = build_scope_policy(_all_roles())
    assert policy.allows(RoleType.VIEWER, "cooperative")
    assert not policy.allows(RoleType.VIEWER, "school")
    assert policy.bid_permissions == frozenset()


def test_unknown_role_type_rejected():
    raw = _all_roles(**{"Regional-Admin": {"category": "admin", "scopes": ["district"]}})
    with pytest.raises(PolicyConfigError, match="unknown role type 'Regional-Admin'"):
        build_scope_policy(raw)


def test_missing_role_types_rejected():
    with pytest.raises(PolicyConfigError, match="missing role types"):
        build_scope_policy({"roles": {"Viewer": {"category": "admin", "scopes": ["school"]}}})


def test_unknown_scope_type_rejected():
    with pytest.raises(PolicyConfigError, match="unknown scope types"):
        build_scope_policy(_all_roles(Viewer={"category": "admin", "scopes": ["region"]}))


def test_admin_role_cannot_bind_to_bid():
    with pytest.raises(PolicyConfigError, match="single bid"):
        build_scope_policy(_all_roles(Viewer={"category": "admin", "scopes": ["bid"]}))


def test_empty_scopes_rejected():
    with pytest.raises(PolicyConfigError, match="at least one scope"):
        build_scope_policy(_all_roles(Viewer={"category": "admin", "scopes": []}))


def test_invalid_category_rejected():
    with pytest.raises(PolicyConfigError, match="invalid scope policy"):
        build_scope_policy(_all_roles(Viewer={"category": "root", "scopes": ["school"]}))


def test_bid_defaults_outside_domain_rejected():
    raw = _all_roles(**{"Bid-Viewer": {"category": "bid", "scopes": ["bid"], "default_permissions": ["edit_all"]}})
    raw["bid_permissions"] = ["view_bids"]
    with pytest.raises(PolicyConfigError, match="outside the bid domain"):
        build_scope_policy(raw)


def test_load_requires_policy_key(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text("roles: {}\n", encoding="utf-8")
    with pytest.raises(PolicyConfigError, match="Missing top-level 'policy' key"):
        load_scope_policy(path)


def test_load_from_file(tmp_path):
    lines = ["policy:", "  roles:"]
    for role in RoleType:
        category = "bid" if role.value.startswith("Bid-") else "admin"
        lines.append(f"    {role.value}:")
        lines.append(f"      category: {category}")
        lines.append("      scopes: [school]")
    path = tmp_path / "policy.yaml"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    policy = load_scope_policy(path)
    assert policy.allows(RoleType.GROUP_ADMIN, "school")
    assert not policy.allows(RoleType.GROUP_ADMIN, "cooperative")
