"""
workboard/membership.py

Membership mutators for project, board and workspace member lists.

Every mutator walks the resource chain, runs the tenant check, asks the
authorization policy, and then validates the target:
- the target user belongs to the resource's organization (else CrossTenantError)
- adding someone already present is a ConflictError, never a silent no-op
- the creator/owner of the resource can never be removed or re-roled
  (ConflictError, checked ahead of the role check so it fails for every caller)

Lists are read-modify-write without locking; concurrent edits race.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from workboard.authz import Action, AuthorizationPolicy, default_policy
from workboard.config import IS_DEV
from workboard.db import now_iso
from workboard.errors import ConflictError, CrossTenantError, NotFoundError, ValidationError
from workboard.hierarchy import (
    board_chain,
    find_user,
    get_board,
    get_organization,
    get_project,
    get_workspace,
    project_chain,
)
from workboard.models import Board, Organization, Project, ProjectRole, User, Workspace, WorkspaceRole
from workboard.notifications import NotificationDispatcher
from workboard.roles import normalize_role


PROJECT_ROLES = tuple(r.value for r in ProjectRole)
WORKSPACE_ROLES = tuple(r.value for r in WorkspaceRole)


def require_target_in_org(conn: sqlite3.Connection, policy: AuthorizationPolicy,
                          organization: Organization, user_id: int) -> User:
    """Load the target user and reject anyone outside the resource's organization."""
    target = find_user(conn, user_id)
    if target is None:
        raise NotFoundError("User not found")
    if not policy.is_member(target, organization):
        print(f"[MEMBERSHIP] Cross-tenant target rejected: user_id={user_id}, org={organization.id}")
        raise CrossTenantError("User must belong to the same organization")
    return target


# ============================================================================
# Project members
# ============================================================================

def add_project_member(
    conn: sqlite3.Connection,
    actor: User,
    project_id: int,
    user_id: int,
    role: Optional[str] = None,
    *,
    policy: AuthorizationPolicy = default_policy,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Project:
    chain = project_chain(conn, project_id)
    policy.require_chain(actor, chain)
    policy.require(
        policy.can_manage_project_members(actor, chain.organization, chain.project),
        actor, Action.PROJECT_MEMBERS,
    )
    role = normalize_role(role, PROJECT_ROLES, default=ProjectRole.member.value)
    target = require_target_in_org(conn, policy, chain.organization, user_id)
    if target.id in chain.project.member_ids:
        raise ConflictError("User already in project")

    try:
        conn.execute(
            "INSERT INTO project_members (project_id, user_id, role, added_at) VALUES (?, ?, ?, ?)",
            (project_id, target.id, role, now_iso()),
        )
    except sqlite3.IntegrityError as e:
        raise ConflictError("User already in project") from e

    if IS_DEV:
        print(f"[MEMBERSHIP] Project member added: project={project_id}, user={target.id}, role={role}")
    if dispatcher is not None:
        dispatcher.notify(
            [target.id], "Added to project",
            body=f'You were added to "{chain.project.name}"',
            link=f"/projects/{project_id}",
            data={"type": "PROJECT_MEMBER_ADDED", "projectId": project_id},
            exclude=actor.id,
        )
    return get_project(conn, project_id)


def remove_project_member(
    conn: sqlite3.Connection,
    actor: User,
    project_id: int,
    user_id: int,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Project:
    chain = project_chain(conn, project_id)
    policy.require_chain(actor, chain)
    if user_id == chain.project.created_by:
        raise ConflictError("Cannot remove project creator")
    policy.require(
        policy.can_manage_project_members(actor, chain.organization, chain.project),
        actor, Action.PROJECT_MEMBERS,
    )
    if user_id not in chain.project.member_ids:
        raise NotFoundError("Member not found")

    conn.execute("DELETE FROM project_members WHERE project_id = ? AND user_id = ?", (project_id, user_id))
    if IS_DEV:
        print(f"[MEMBERSHIP] Project member removed: project={project_id}, user={user_id}")
    return get_project(conn, project_id)


def change_project_member_role(
    conn: sqlite3.Connection,
    actor: User,
    project_id: int,
    user_id: int,
    role: str,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Project:
    chain = project_chain(conn, project_id)
    policy.require_chain(actor, chain)
    if user_id == chain.project.created_by:
        raise ConflictError("Cannot change project creator role")
    policy.require(
        policy.can_manage_project_members(actor, chain.organization, chain.project),
        actor, Action.PROJECT_MEMBERS,
    )
    role = normalize_role(role, PROJECT_ROLES, default=None)
    if user_id not in chain.project.member_ids:
        raise NotFoundError("Member not found")

    conn.execute(
        "UPDATE project_members SET role = ? WHERE project_id = ? AND user_id = ?",
        (role, project_id, user_id),
    )
    return get_project(conn, project_id)


# ============================================================================
# Board members
# ============================================================================

def add_board_member(
    conn: sqlite3.Connection,
    actor: User,
    board_id: int,
    user_id: int,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Board:
    chain = board_chain(conn, board_id)
    policy.require_chain(actor, chain)
    policy.require(
        policy.can_manage_board_members(actor, chain.organization, chain.project, chain.board),
        actor, Action.BOARD_MEMBERS,
    )
    target = require_target_in_org(conn, policy, chain.organization, user_id)
    if not policy.is_project_member(target, chain.organization, chain.project):
        raise ValidationError("Board members must be project members")
    if target.id in chain.board.members:
        raise ConflictError("User already on board")

    try:
        conn.execute(
            "INSERT INTO board_members (board_id, user_id, added_at) VALUES (?, ?, ?)",
            (board_id, target.id, now_iso()),
        )
    except sqlite3.IntegrityError as e:
        raise ConflictError("User already on board") from e
    return get_board(conn, board_id)


def remove_board_member(
    conn: sqlite3.Connection,
    actor: User,
    board_id: int,
    user_id: int,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Board:
    chain = board_chain(conn, board_id)
    policy.require_chain(actor, chain)
    if user_id == chain.board.owner_id:
        raise ConflictError("Cannot remove board owner")
    policy.require(
        policy.can_manage_board_members(actor, chain.organization, chain.project, chain.board),
        actor, Action.BOARD_MEMBERS,
    )
    if user_id not in chain.board.members:
        raise NotFoundError("Member not found")

    conn.execute("DELETE FROM board_members WHERE board_id = ? AND user_id = ?", (board_id, user_id))
    return get_board(conn, board_id)


# ============================================================================
# Workspace members
# ============================================================================

def _workspace_scope(conn: sqlite3.Connection, actor: User, workspace_id: int,
                     policy: AuthorizationPolicy) -> tuple:
    workspace = get_workspace(conn, workspace_id)
    organization = get_organization(conn, workspace.organization_id)
    policy.require_same_tenant(actor, organization, f"workspace:{workspace_id}")
    return organization, workspace


def add_workspace_member(
    conn: sqlite3.Connection,
    actor: User,
    workspace_id: int,
    user_id: int,
    role: Optional[str] = None,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Workspace:
    organization, workspace = _workspace_scope(conn, actor, workspace_id, policy)
    policy.require(policy.can_manage_workspace(actor, organization, workspace), actor, Action.WORKSPACE_MANAGE)
    role = normalize_role(role, WORKSPACE_ROLES, default=WorkspaceRole.member.value)
    target = require_target_in_org(conn, policy, organization, user_id)
    if workspace.member_role(target.id) is not None:
        raise ConflictError("User already in workspace")

    try:
        conn.execute(
            "INSERT INTO workspace_members (workspace_id, user_id, role, added_at) VALUES (?, ?, ?, ?)",
            (workspace_id, target.id, role, now_iso()),
        )
    except sqlite3.IntegrityError as e:
        raise ConflictError("User already in workspace") from e
    return get_workspace(conn, workspace_id)


def remove_workspace_member(
    conn: sqlite3.Connection,
    actor: User,
    workspace_id: int,
    user_id: int,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Workspace:
    organization, workspace = _workspace_scope(conn, actor, workspace_id, policy)
    if user_id == workspace.created_by:
        raise ConflictError("Cannot remove workspace creator")
    policy.require(policy.can_manage_workspace(actor, organization, workspace), actor, Action.WORKSPACE_MANAGE)
    if workspace.member_role(user_id) is None:
        raise NotFoundError("Member not found")

    conn.execute("DELETE FROM workspace_members WHERE workspace_id = ? AND user_id = ?", (workspace_id, user_id))
    return get_workspace(conn, workspace_id)


def change_workspace_member_role(
    conn: sqlite3.Connection,
    actor: User,
    workspace_id: int,
    user_id: int,
    role: str,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Workspace:
    organization, workspace = _workspace_scope(conn, actor, workspace_id, policy)
    if user_id == workspace.created_by:
        raise ConflictError("Cannot change workspace creator role")
    policy.require(policy.can_manage_workspace(actor, organization, workspace), actor, Action.WORKSPACE_MANAGE)
    role = normalize_role(role, WORKSPACE_ROLES, default=None)
    if workspace.member_role(user_id) is None:
        raise NotFoundError("Member not found")

    conn.execute(
        "UPDATE workspace_members SET role = ? WHERE workspace_id = ? AND user_id = ?",
        (role, workspace_id, user_id),
    )
    return get_workspace(conn, workspace_id)
