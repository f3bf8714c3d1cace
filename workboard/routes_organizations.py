"""
workboard/routes_organizations.py

Organization, organization member and invitation endpoints.

Security guarantees:
- Every organization-scoped route checks the actor belongs to that organization
  (other tenants get 403 "Access denied")
- Member edits need admin or above and never touch the owner's row
- Member removal and organization deletion are owner-only
- Invitation tokens are only returned inside the registration link
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from workboard.auth_context import get_conn, require_actor
from workboard.authz import AuthorizationPolicy
from workboard.db import transaction
from workboard.dependencies import get_dispatcher, get_policy
from workboard.hierarchy import get_organization
from workboard.invitations import decline_invitation, get_live_invitation
from workboard.models import User
from workboard.notifications import NotificationDispatcher
from workboard.organizations import (
    create_organization,
    delete_organization,
    get_organization_for,
    invite_member,
    list_members,
    list_org_invitations,
    remove_member,
    sync_member_role_from_invitation,
    update_member,
    update_organization,
)
from workboard.schemas import (
    InviteRequest,
    MemberUpdateRequest,
    OrganizationCreateRequest,
    OrganizationUpdateRequest,
    invitation_out,
    organization_out,
    user_out,
)


router = APIRouter(
    prefix="/organizations",
    tags=["organizations"],
)

invitations_router = APIRouter(
    prefix="/invitations",
    tags=["invitations"],
)


# ---------------------------------------------------------
# Organizations
# ---------------------------------------------------------
@router.post("")
def create_organization_route(
    req: OrganizationCreateRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        org = create_organization(conn, actor, req.name, req.description, policy=policy)
    return organization_out(org)


@router.get("/{organization_id}")
def get_organization_route(
    organization_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    return organization_out(get_organization_for(conn, actor, organization_id, policy=policy))


@router.patch("/{organization_id}")
def update_organization_route(
    organization_id: int,
    req: OrganizationUpdateRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        org = update_organization(conn, actor, organization_id, req.name, req.description, policy=policy)
    return organization_out(org)


@router.delete("/{organization_id}")
def delete_organization_route(
    organization_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        released = delete_organization(conn, actor, organization_id, policy=policy)
    return {"deleted": True, "released_users": released}


# ---------------------------------------------------------
# Members
# ---------------------------------------------------------
@router.get("/{organization_id}/members")
def list_members_route(
    organization_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> List[Dict[str, Any]]:
    return [user_out(u, role) for u, role in list_members(conn, actor, organization_id, policy=policy)]


@router.patch("/{organization_id}/members/{user_id}")
def update_member_route(
    organization_id: int,
    user_id: int,
    req: MemberUpdateRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        user = update_member(conn, actor, organization_id, user_id, req.name, req.role, policy=policy)
    return user_out(user, policy.effective_role(user, get_organization(conn, organization_id)))


@router.delete("/{organization_id}/members/{user_id}")
def remove_member_route(
    organization_id: int,
    user_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        purged = remove_member(conn, actor, organization_id, user_id, policy=policy)
    return {"removed": True, "invitations_purged": purged}


@router.post("/{organization_id}/members/{user_id}/sync-role")
def sync_member_role_route(
    organization_id: int,
    user_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        user = sync_member_role_from_invitation(conn, actor, organization_id, user_id, policy=policy)
    return user_out(user)


# ---------------------------------------------------------
# Invitations (organization side)
# ---------------------------------------------------------
@router.post("/{organization_id}/invitations")
def invite_route(
    organization_id: int,
    req: InviteRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    """
    Invite an email address. The email is sent in the background; a delivery
    failure never fails the invitation, and the link is returned either way.
    """
    with transaction(conn):
        invitation, link = invite_member(
            conn, actor, organization_id, req.email, req.role, policy=policy, dispatcher=dispatcher,
        )
    dispatcher.flush()
    return invitation_out(invitation, link)


@router.get("/{organization_id}/invitations")
def list_invitations_route(
    organization_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> List[Dict[str, Any]]:
    return [invitation_out(i) for i in list_org_invitations(conn, actor, organization_id, policy=policy)]


# ---------------------------------------------------------
# Invitations (public, token based)
# ---------------------------------------------------------
@invitations_router.get("/{token}")
def lookup_invitation_route(token: str, conn: sqlite3.Connection = Depends(get_conn)) -> Dict[str, Any]:
    """What the registration page shows for a live token."""
    invitation = get_live_invitation(conn, token)
    org = get_organization(conn, invitation.organization_id)
    return {
        "organization_name": org.name,
        "invited_email": invitation.invited_email,
        "role": invitation.role,
        "token_expires_at": invitation.token_expires_at,
    }


@invitations_router.post("/{token}/decline")
def decline_invitation_route(token: str, conn: sqlite3.Connection = Depends(get_conn)) -> Dict[str, Any]:
    with transaction(conn):
        invitation = decline_invitation(conn, token)
    return {"status": invitation.status}
