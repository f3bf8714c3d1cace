"""
workboard/roles.py

Organization role hierarchy and effective-role resolution.

An organization records its owner twice: Organization.owner_id and the owning
User's stored role. resolve_effective_role() is the only place that reads
either; every other check goes through it.

Pure Python logic - no FastAPI imports, no database access.
"""

from typing import Iterable, Optional

from workboard.errors import ValidationError
from workboard.models import Organization, Role, User


# ============================================================================
# Role Hierarchy
# ============================================================================

ROLE_HIERARCHY = {
    Role.owner.value: 4,
    Role.admin.value: 3,
    Role.manager.value: 2,
    Role.member.value: 1,
}

# Roles that can be granted through an invitation or a member edit.
# Ownership only moves with the Organization.owner linkage.
ASSIGNABLE_ROLES = (Role.admin.value, Role.manager.value, Role.member.value)


def role_level(role: Optional[str]) -> int:
    """
    Get numeric level for a role.

    Args:
        role: Role name

    Returns:
        Numeric level (higher = more privileged), 0 if unknown
    """
    return ROLE_HIERARCHY.get(role.lower() if role else "", 0)


def role_at_least(user_role: Optional[str], required_role: str) -> bool:
    """True if user_role meets or exceeds required_role in the hierarchy."""
    return role_level(user_role) >= role_level(required_role)


# ============================================================================
# Effective Role
# ============================================================================

def resolve_effective_role(user: User, organization: Optional[Organization]) -> Optional[str]:
    """
    Role used for every authorization decision.

    The Organization.owner linkage wins over a stale stored role, so an owner
    is recognized even before User.role is updated. A stored "owner" role that
    the linkage does not confirm is not trusted and counts as member.

    Returns None when the user does not belong to the organization.
    """
    if organization is None or user.organization_id != organization.id:
        return None
    if organization.owner_id is not None and organization.owner_id == user.id:
        return Role.owner.value
    stored = (user.role or Role.member.value).lower()
    if stored == Role.owner.value:
        return Role.member.value
    if stored not in ROLE_HIERARCHY:
        return Role.member.value
    return stored


def normalize_role(value: Optional[str], allowed: Iterable[str] = ASSIGNABLE_ROLES,
                   default: Optional[str] = Role.member.value) -> str:
    """
    Validate a role supplied by a caller.

    Raises:
        ValidationError: If the role is not one of the allowed values
    """
    allowed = tuple(allowed)
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is None:
            raise ValidationError("Role is required")
        return default
    role = str(value.value if isinstance(value, Role) else value).strip().lower()
    if role not in allowed:
        raise ValidationError(f"Invalid role '{value}'. Allowed: {', '.join(allowed)}")
    return role
