"""
Default tenant catalog: resources, actions and the role tier matrix.

The matrix is data, one predicate per role over (action, resource), so it
can be tested on its own and changed without touching the bootstrap code.
"""

from dataclasses import dataclass
from typing import Callable

from app.features.rbac.matching import WILDCARD

DEFAULT_RESOURCES: tuple[str, ...] = (
    "user",
    "role",
    "permission",
    "tenant",
    "product",
    "category",
    "order",
    "cart",
    "payment",
    "delivery",
    "analytics",
    "inventory",
    "customer",
    "report",
)

DEFAULT_ACTIONS: tuple[str, ...] = ("create", "read", "update", "delete", "manage")

PLATFORM_WILDCARD = ("manage", WILDCARD)


@dataclass(frozen=True)
class RoleTemplate:
    """A default role and the rule selecting its permissions."""

    name: str
    display_name: str
    description: str
    rule: Callable[[str, str], bool]
    is_default: bool = False

    def includes(self, action: str, resource: str) -> bool:
        return self.rule(action, resource)


def _super_admin(action: str, resource: str) -> bool:
    return True


def _admin(action: str, resource: str) -> bool:
    return not (action == "manage" and resource == WILDCARD)


def _manager(action: str, resource: str) -> bool:
    return action in {"read", "update"} or (
        action == "manage" and resource in {"product", "order", "inventory"}
    )


def _staff(action: str, resource: str) -> bool:
    return (
        action == "read"
        or (action == "create" and resource in {"order", "cart"})
        or (action == "update" and resource in {"order", "inventory"})
    )


def _customer(action: str, resource: str) -> bool:
    return (
        (action == "read" and resource in {"product", "category"})
        or (action == "create" and resource in {"cart", "order"})
        or (action == "update" and resource == "cart")
    )


DEFAULT_ROLE_TEMPLATES: tuple[RoleTemplate, ...] = (
    RoleTemplate("super_admin", "Super Administrator", "Full access to the tenant", _super_admin),
    RoleTemplate("admin", "Administrator", "Everything except the platform wildcard", _admin),
    RoleTemplate("manager", "Manager", "Read/update plus catalog and order management", _manager),
    RoleTemplate("staff", "Staff", "Read access and day-to-day order handling", _staff),
    RoleTemplate("customer", "Customer", "Storefront self-service", _customer, is_default=True),
)


def default_permission_pairs() -> list[tuple[str, str]]:
    """All (resource, action) pairs of the default catalog."""
    return [(resource, action) for resource in DEFAULT_RESOURCES for action in DEFAULT_ACTIONS]
