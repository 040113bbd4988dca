"""
Tests for loading the YAML access policy and matching routes against it.
"""
from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from workspace_access.access import permissions
from workspace_access.access.permissions import Capability
from workspace_access.security.config import default_policy, load_access_policy


def test_shipped_policy_defaults(policy):
    assert policy.session.window == timedelta(hours=21)
    assert policy.throttle.max_failures_per_email == 5
    assert policy.throttle.max_failures_per_origin == 20
    assert policy.throttle.window == timedelta(minutes=15)
    assert policy.throttle.reset_on_success is False
    assert policy.roles.enforce_unique_priority is True


def test_shipped_system_roles(policy):
    by_name = {spec.name: spec for spec in policy.system_roles}

    assert [spec.priority for spec in policy.system_roles] == [100, 90, 80, 70, 60, 50, 10]
    assert by_name["Owner"].mask() == permissions.OWNER
    assert by_name["Admin"].mask() == permissions.ADMIN
    assert by_name["Viewer"].mask() == permissions.VIEWER


def test_public_routes(policy):
    assert policy.match("/health", "GET").auth_required is False
    assert policy.match("/auth/login", "post").auth_required is False
    # Unlisted routes fall back to the default (authenticated, nothing extra).
    rule = policy.match("/auth/session", "GET")
    assert rule.auth_required is True
    assert rule.capabilities == ()


def test_template_match_is_method_aware(policy):
    delete = policy.match("/tenants/7/members/3", "DELETE")
    patch = policy.match("/tenants/7/members/3", "PATCH")

    assert delete.capabilities == (int(Capability.REMOVE_MEMBERS),)
    assert patch.capabilities == (int(Capability.MANAGE_MEMBERS),)
    assert policy.match("/tenants/7/roles", "POST").capabilities == (int(Capability.MANAGE_ROLES),)


def test_missing_top_level_key_raises(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text("session:\n  window_hours: 1\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_access_policy(path)


def test_unknown_capability_in_route_is_rejected(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text(
        "access:\n  routes:\n    - path: /x\n      methods: [GET]\n      capabilities: [FLY]\n",
        encoding="utf-8",
    )

    with pytest.raises(ValidationError):
        load_access_policy(path)


def test_rule_with_capabilities_implies_auth(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text(
        "access:\n"
        "  default:\n    auth_required: false\n"
        "  routes:\n    - path: /reports\n      methods: [GET]\n      capabilities: [VIEW_REPORTS]\n",
        encoding="utf-8",
    )

    policy = load_access_policy(path)

    assert policy.match("/reports", "GET").auth_required is True
    assert policy.match("/other", "GET").auth_required is False


def test_custom_throttle_section(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text(
        "access:\n  throttle:\n    max_failures_per_email: 3\n    reset_on_success: true\n",
        encoding="utf-8",
    )

    policy = load_access_policy(path)

    assert policy.throttle.max_failures_per_email == 3
    assert policy.throttle.reset_on_success is True
    assert policy.system_roles == []


def test_default_policy_is_usable():
    policy = default_policy()

    assert policy.session.window_hours == 21
    assert policy.match("/anything", "GET").auth_required is True


def test_any_mode_rule_keeps_capabilities_apart(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text(
        "access:\n"
        "  routes:\n"
        "    - path: /tenants/{tenant_id}/reports\n"
        "      methods: [GET]\n"
        "      capabilities: [VIEW_REPORTS, VIEW_ANALYTICS, VIEW_REPORTS]\n"
        "      mode: any\n",
        encoding="utf-8",
    )

    rule = load_access_policy(path).match("/tenants/3/reports", "GET")

    assert rule.mode == "any"
    assert rule.capabilities == (int(Capability.VIEW_REPORTS), int(Capability.VIEW_ANALYTICS))
