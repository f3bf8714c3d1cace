"""
workboard/organizations.py

Organization lifecycle, organization members and invitations.

Deleting an organization cascades to its projects, boards, tasks, comments,
invitations and workspaces. Its users stay behind unaffiliated
(organization_id NULL, role member) and may create a new organization.

Removing a member deletes the user and purges the organization's invitations
for that email or member id. Task assignments of the removed user are left
in place as stale ids.
"""

from __future__ import annotations

import sqlite3
from typing import List, Optional, Tuple

from workboard.authz import Action, AuthorizationPolicy, default_policy
from workboard.config import IS_DEV
from workboard.db import now_iso
from workboard.errors import ConflictError, NotFoundError, ValidationError
from workboard.hierarchy import get_organization, get_user, list_org_users
from workboard.invitations import (
    create_or_recycle_invitation,
    invitation_link,
    latest_invitation_role,
    list_invitations,
    purge_member_invitations,
)
from workboard.membership import require_target_in_org
from workboard.models import Invitation, Organization, Role, User
from workboard.notifications import NotificationDispatcher
from workboard.roles import ASSIGNABLE_ROLES, normalize_role


def _scoped_organization(conn: sqlite3.Connection, actor: User, organization_id: int,
                         policy: AuthorizationPolicy) -> Organization:
    organization = get_organization(conn, organization_id)
    policy.require_same_tenant(actor, organization, f"organization:{organization_id}")
    return organization


# ============================================================================
# Organization CRUD
# ============================================================================

def create_organization(
    conn: sqlite3.Connection,
    actor: User,
    name: str,
    description: Optional[str] = None,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Organization:
    """Create an organization owned by an unaffiliated user."""
    if not policy.can_create_organization(actor):
        raise ConflictError("User already belongs to an organization")
    name = (name or "").strip()
    if not name:
        raise ValidationError("Organization name is required")

    stamp = now_iso()
    cur = conn.execute(
        "INSERT INTO organizations (name, description, owner_id, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
        (name, description, actor.id, stamp, stamp),
    )
    organization_id = cur.lastrowid
    try:
        conn.execute(
            "UPDATE users SET organization_id = ?, role = ? WHERE id = ?",
            (organization_id, Role.owner.value, actor.id),
        )
    except sqlite3.IntegrityError as e:
        raise ConflictError("User already exists in this organization") from e
    actor.organization_id = organization_id
    actor.role = Role.owner.value
    print(f"[ORG] Organization created: id={organization_id}, owner={actor.id}")
    return get_organization(conn, organization_id)


def get_organization_for(conn: sqlite3.Connection, actor: User, organization_id: int, *,
                         policy: AuthorizationPolicy = default_policy) -> Organization:
    return _scoped_organization(conn, actor, organization_id, policy)


def update_organization(
    conn: sqlite3.Connection,
    actor: User,
    organization_id: int,
    name: Optional[str] = None,
    description: Optional[str] = None,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Organization:
    organization = _scoped_organization(conn, actor, organization_id, policy)
    policy.require(policy.can_update_organization(actor, organization), actor, Action.ORG_UPDATE)
    if name is not None and not name.strip():
        raise ValidationError("Organization name cannot be empty")
    conn.execute(
        "UPDATE organizations SET name = ?, description = ?, updated_at = ? WHERE id = ?",
        (
            name.strip() if name is not None else organization.name,
            description if description is not None else organization.description,
            now_iso(),
            organization_id,
        ),
    )
    return get_organization(conn, organization_id)


def delete_organization(conn: sqlite3.Connection, actor: User, organization_id: int, *,
                        policy: AuthorizationPolicy = default_policy) -> int:
    """
    Delete an organization and everything it owns.

    Returns:
        Number of users left unaffiliated
    """
    organization = _scoped_organization(conn, actor, organization_id, policy)
    policy.require(policy.can_delete_organization(actor, organization), actor, Action.ORG_DELETE)

    cur = conn.execute(
        "UPDATE users SET role = ? WHERE organization_id = ?",
        (Role.member.value, organization_id),
    )
    released = cur.rowcount
    # users.organization_id is SET NULL, everything else cascades
    conn.execute("DELETE FROM organizations WHERE id = ?", (organization_id,))
    print(f"[ORG] Organization deleted: id={organization_id}, by={actor.id}, released_users={released}")
    return released


# ============================================================================
# Organization members
# ============================================================================

def list_members(conn: sqlite3.Connection, actor: User, organization_id: int, *,
                 policy: AuthorizationPolicy = default_policy) -> List[Tuple[User, str]]:
    """Members paired with their effective role."""
    organization = _scoped_organization(conn, actor, organization_id, policy)
    return [(u, policy.effective_role(u, organization)) for u in list_org_users(conn, organization_id)]


def _require_not_owner(policy: AuthorizationPolicy, target: User, organization: Organization, message: str) -> None:
    if policy.is_owner(target, organization):
        raise ConflictError(message)


def update_member(
    conn: sqlite3.Connection,
    actor: User,
    organization_id: int,
    user_id: int,
    name: Optional[str] = None,
    role: Optional[str] = None,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> User:
    """Edit a member's name or role. Admin or above; the owner's row is never edited."""
    organization = _scoped_organization(conn, actor, organization_id, policy)
    target = require_target_in_org(conn, policy, organization, user_id)
    _require_not_owner(policy, target, organization, "Cannot modify the organization owner")
    policy.require(policy.can_edit_org_member(actor, organization, target), actor, Action.ORG_MEMBER_EDIT)

    new_name = target.name
    if name is not None:
        new_name = name.strip()
        if not new_name:
            raise ValidationError("Name cannot be empty")
    new_role = normalize_role(role, ASSIGNABLE_ROLES, default=None) if role is not None else target.role

    conn.execute("UPDATE users SET name = ?, role = ? WHERE id = ?", (new_name, new_role, target.id))
    if IS_DEV:
        print(f"[ORG] Member updated: org={organization_id}, user={target.id}, role={new_role}")
    return get_user(conn, target.id)


def remove_member(conn: sqlite3.Connection, actor: User, organization_id: int, user_id: int, *,
                  policy: AuthorizationPolicy = default_policy) -> int:
    """
    Remove a user from the organization (owner only).

    Returns:
        Number of invitation records purged
    """
    organization = _scoped_organization(conn, actor, organization_id, policy)
    policy.require(policy.can_remove_org_member(actor, organization), actor, Action.ORG_MEMBER_REMOVE)
    target = require_target_in_org(conn, policy, organization, user_id)
    _require_not_owner(policy, target, organization, "Cannot remove the organization owner")

    purged = purge_member_invitations(conn, organization_id, target.email, target.id)
    # Memberships cascade with the user row; task assignees stay stale
    conn.execute("DELETE FROM users WHERE id = ?", (target.id,))
    print(f"[ORG] Member removed: org={organization_id}, user={target.id}, invitations_purged={purged}")
    return purged


def sync_member_role_from_invitation(conn: sqlite3.Connection, actor: User, organization_id: int,
                                     user_id: int, *,
                                     policy: AuthorizationPolicy = default_policy) -> User:
    """Re-apply the role recorded on the member's latest invitation (owner only)."""
    organization = _scoped_organization(conn, actor, organization_id, policy)
    policy.require(policy.is_owner(actor, organization), actor, Action.ORG_MEMBER_EDIT)
    target = require_target_in_org(conn, policy, organization, user_id)
    _require_not_owner(policy, target, organization, "Cannot modify the organization owner")

    role = latest_invitation_role(conn, organization_id, target.email)
    if role is None:
        raise NotFoundError("No invitation found for this member")
    conn.execute("UPDATE users SET role = ? WHERE id = ?", (role, target.id))
    return get_user(conn, target.id)


# ============================================================================
# Invitations
# ============================================================================

def invite_member(
    conn: sqlite3.Connection,
    actor: User,
    organization_id: int,
    email: str,
    role: Optional[str] = None,
    *,
    policy: AuthorizationPolicy = default_policy,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Tuple[Invitation, str]:
    """
    Invite an email address to the organization (admin or above).

    The invitation email is queued on the dispatcher; delivery failures never
    affect the returned invitation.

    Returns:
        (invitation, registration link)
    """
    organization = _scoped_organization(conn, actor, organization_id, policy)
    policy.require(policy.can_invite(actor, organization), actor, Action.ORG_INVITE)

    invitation = create_or_recycle_invitation(conn, organization, email, role, actor)
    link = invitation_link(invitation.invitation_token, invitation.invited_email)
    if dispatcher is not None:
        dispatcher.email(
            invitation.invited_email,
            f"You're invited to join {organization.name}",
            f"{actor.name} invited you to join {organization.name} as {invitation.role}.\n\n"
            f"Accept the invitation: {link}\n\n"
            f"This link expires on {invitation.token_expires_at}.",
        )
    return invitation, link


def list_org_invitations(conn: sqlite3.Connection, actor: User, organization_id: int, *,
                         policy: AuthorizationPolicy = default_policy) -> List[Invitation]:
    organization = _scoped_organization(conn, actor, organization_id, policy)
    policy.require(policy.can_invite(actor, organization), actor, Action.ORG_INVITE)
    return list_invitations(conn, organization_id)
