"""
Unit tests for the default catalog and role tier matrix.
"""

from dataclasses import dataclass

import pytest

from app.features.rbac.bootstrap import permissions_for
from app.features.rbac.catalog import (
    DEFAULT_ACTIONS,
    DEFAULT_RESOURCES,
    DEFAULT_ROLE_TEMPLATES,
    default_permission_pairs,
)


@dataclass
class Perm:
    action: str
    resource: str


def _template(name: str):
    return next(t for t in DEFAULT_ROLE_TEMPLATES if t.name == name)


def _catalog() -> list[Perm]:
    return [Perm(action, resource) for resource, action in default_permission_pairs()]


@pytest.mark.unit
class TestCatalog:
    """Resources x actions."""

    def test_size(self):
        assert len(DEFAULT_RESOURCES) == 14
        assert len(DEFAULT_ACTIONS) == 5
        assert len(default_permission_pairs()) == 70

    def test_pairs_are_unique(self):
        pairs = default_permission_pairs()
        assert len(set(pairs)) == len(pairs)

    def test_only_customer_is_default(self):
        defaults = [t.name for t in DEFAULT_ROLE_TEMPLATES if t.is_default]
        assert defaults == ["customer"]

    def test_role_order(self):
        assert [t.name for t in DEFAULT_ROLE_TEMPLATES] == [
            "super_admin",
            "admin",
            "manager",
            "staff",
            "customer",
        ]


@pytest.mark.unit
class TestRoleMatrix:
    """Permission counts and specific grants per tier."""

    @pytest.mark.parametrize(
        "role,count",
        [
            ("super_admin", 70),
            ("admin", 70),
            ("manager", 31),
            ("staff", 18),
            ("customer", 5),
        ],
    )
    def test_counts_over_default_catalog(self, role, count):
        assert len(permissions_for(_template(role), _catalog())) == count

    def test_admin_excludes_platform_wildcard(self):
        catalog = _catalog() + [Perm("manage", "*")]

        assert len(permissions_for(_template("super_admin"), catalog)) == 71
        assert len(permissions_for(_template("admin"), catalog)) == 70

    @pytest.mark.parametrize(
        "action,resource",
        [("read", "user"), ("update", "order"), ("manage", "product"), ("manage", "inventory")],
    )
    def test_manager_grants(self, action, resource):
        assert _template("manager").includes(action, resource)

    @pytest.mark.parametrize(
        "action,resource",
        [("manage", "user"), ("delete", "product"), ("create", "order")],
    )
    def test_manager_denials(self, action, resource):
        assert not _template("manager").includes(action, resource)

    def test_staff_grants(self):
        staff = _template("staff")

        assert staff.includes("read", "analytics")
        assert staff.includes("create", "cart")
        assert staff.includes("update", "inventory")
        assert not staff.includes("update", "product")
        assert not staff.includes("manage", "order")

    def test_customer_subset(self):
        granted = {
            (p.action, p.resource) for p in permissions_for(_template("customer"), _catalog())
        }

        assert granted == {
            ("read", "product"),
            ("read", "category"),
            ("create", "cart"),
            ("create", "order"),
            ("update", "cart"),
        }
