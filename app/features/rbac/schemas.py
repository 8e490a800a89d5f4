"""
RBAC request/response schemas.
"""

from pydantic import Field, field_validator

from app.schemas.common import BaseSchema


def _check_slot(value: str) -> str:
    if ":" in value:
        raise ValueError("must not contain ':'")
    return value


class PermissionRead(BaseSchema):
    id: str
    name: str
    resource: str
    action: str
    description: str | None = None
    tenant_id: str


class PermissionCreate(BaseSchema):
    """Create one permission; the name is derived as action:resource."""

    resource: str = Field(..., min_length=1, max_length=100, examples=["product"])
    action: str = Field(..., min_length=1, max_length=50, examples=["read"])
    description: str | None = Field(None, max_length=1000)

    @field_validator("resource", "action")
    @classmethod
    def validate_slot(cls, v: str) -> str:
        return _check_slot(v)


class PermissionBulkCreate(BaseSchema):
    """Create one permission per action for a resource."""

    resource: str = Field(..., min_length=1, max_length=100)
    actions: list[str] = Field(..., min_length=1, examples=[["create", "read"]])

    @field_validator("resource")
    @classmethod
    def validate_resource(cls, v: str) -> str:
        return _check_slot(v)

    @field_validator("actions")
    @classmethod
    def validate_actions(cls, v: list[str]) -> list[str]:
        cleaned = [action.strip() for action in v]
        if any(not action for action in cleaned):
            raise ValueError("actions must be non-empty strings")
        return [_check_slot(action) for action in cleaned]


class PermissionUpdate(BaseSchema):
    description: str | None = Field(None, max_length=1000)


class RoleRead(BaseSchema):
    id: str
    name: str
    display_name: str
    description: str | None = None
    is_default: bool
    tenant_id: str


class RoleWithPermissions(RoleRead):
    permissions: list[PermissionRead] = []


class RoleCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9_\-]+$")
    display_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)
    is_default: bool = False
    tenant_id: str | None = Field(None, description="Target tenant (defaults to the current one)")


class PermissionIdsRequest(BaseSchema):
    permission_ids: list[str] = Field(default_factory=list)


class RoleIdsRequest(BaseSchema):
    role_ids: list[str] = Field(default_factory=list)
    tenant_id: str | None = Field(None, description="Target tenant (defaults to the current one)")


class RoleNameRequest(BaseSchema):
    role_name: str = Field(..., min_length=1, max_length=100)


class CheckPermissionRequest(BaseSchema):
    permission: str = Field(..., min_length=1, max_length=200, examples=["read:product"])


class CheckPermissionResponse(BaseSchema):
    user_id: str
    tenant_id: str
    permission: str
    allowed: bool


class UserPermissionsResponse(BaseSchema):
    user_id: str
    tenant_id: str
    roles: list[str]
    permissions: list[PermissionRead]


class UserRolesResponse(BaseSchema):
    user_id: str
    tenant_id: str
    roles: list[RoleRead]
