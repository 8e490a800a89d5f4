"""
Permission name parsing and wildcard matching.

A permission name is ``"{action}:{resource}"``; either slot of a pattern may
be ``*``. Matching is a plain two-slot comparison, no regex.
"""

from typing import Protocol

from app.core.exceptions import ValidationError

WILDCARD = "*"
SEPARATOR = ":"


class PermissionLike(Protocol):
    name: str
    action: str
    resource: str


def parse_permission_name(name: object) -> tuple[str, str] | None:
    """
    Split ``"action:resource"`` into its slots.

    Returns None for anything that is not exactly two non-empty slots.
    """
    if not isinstance(name, str):
        return None

    parts = name.split(SEPARATOR)
    if len(parts) != 2:
        return None

    action, resource = (part.strip() for part in parts)
    if not action or not resource:
        return None

    return action, resource


def validate_permission_name(name: object) -> tuple[str, str]:
    """Like parse_permission_name, but raises ValidationError when malformed."""
    parsed = parse_permission_name(name)
    if parsed is None:
        raise ValidationError(
            f"Invalid permission {name!r}: expected 'action:resource'",
            details={"permission": str(name)},
        )
    return parsed


def _slot_matches(pattern_value: str, value: str) -> bool:
    return pattern_value == WILDCARD or pattern_value == value


def matches(permission: PermissionLike, pattern: str) -> bool:
    """
    Check a permission against a pattern.

    ``read:product`` matches ``read:product``, ``read:*``, ``*:product`` and
    ``*:*``; it does not match ``update:product`` or ``read:user``.
    """
    parsed = parse_permission_name(pattern)
    if parsed is None:
        return False

    action, resource = parsed
    return _slot_matches(action, permission.action) and _slot_matches(resource, permission.resource)


def grants(permission: PermissionLike, requested: str) -> bool:
    """
    Does holding ``permission`` satisfy a request for ``requested``?

    True on an exact name match, when the requested name is a pattern that
    matches the held permission, or when the held permission itself carries
    a wildcard covering the requested slot values.
    """
    if permission.name == requested:
        return True

    parsed = parse_permission_name(requested)
    if parsed is None:
        return False

    action, resource = parsed
    if _slot_matches(action, permission.action) and _slot_matches(resource, permission.resource):
        return True

    return _slot_matches(permission.action, action) and _slot_matches(permission.resource, resource)


def holds_platform_wildcard(permissions: list[PermissionLike]) -> bool:
    """True when one of the held permissions is literally ``manage:*``."""
    return any(p.action == "manage" and p.resource == WILDCARD for p in permissions)


def is_wildcard(action: str, resource: str) -> bool:
    """True when either slot is ``*``; such permissions grant by pattern."""
    return action == WILDCARD or resource == WILDCARD
