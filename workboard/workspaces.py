"""
workboard/workspaces.py

Workspaces: organization-scoped groupings of boards with their own member list.
The creator becomes a workspace admin. Member mutations live in membership.py.
"""

from __future__ import annotations

import sqlite3
from typing import List, Optional

from workboard.authz import Action, AuthorizationPolicy, default_policy
from workboard.db import now_iso
from workboard.errors import CrossTenantError, ValidationError
from workboard.hierarchy import (
    board_chain,
    get_actor_organization,
    get_board,
    get_organization,
    get_workspace,
)
from workboard.models import Board, Role, User, Workspace, WorkspaceRole


def _scope(conn: sqlite3.Connection, actor: User, workspace_id: int, policy: AuthorizationPolicy):
    workspace = get_workspace(conn, workspace_id)
    organization = get_organization(conn, workspace.organization_id)
    policy.require_same_tenant(actor, organization, f"workspace:{workspace_id}")
    return organization, workspace


def create_workspace(conn: sqlite3.Connection, actor: User, name: str, description: Optional[str] = None, *,
                     policy: AuthorizationPolicy = default_policy) -> Workspace:
    organization = get_actor_organization(conn, actor)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Workspace name is required")

    stamp = now_iso()
    cur = conn.execute(
        """
        INSERT INTO workspaces (organization_id, name, description, created_by, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (organization.id, name, description, actor.id, stamp, stamp),
    )
    workspace_id = cur.lastrowid
    conn.execute(
        "INSERT INTO workspace_members (workspace_id, user_id, role, added_at) VALUES (?, ?, ?, ?)",
        (workspace_id, actor.id, WorkspaceRole.admin.value, stamp),
    )
    return get_workspace(conn, workspace_id)


def list_workspaces(conn: sqlite3.Connection, actor: User, *,
                    policy: AuthorizationPolicy = default_policy) -> List[Workspace]:
    """Workspaces the actor belongs to; org admins and owners see all of them."""
    organization = get_actor_organization(conn, actor)
    if policy.at_least(actor, organization, Role.admin.value):
        rows = conn.execute(
            "SELECT id FROM workspaces WHERE organization_id = ? ORDER BY created_at DESC, id DESC",
            (organization.id,),
        ).fetchall()
    else:
        rows = conn.execute(
            """
            SELECT w.id FROM workspaces w
            JOIN workspace_members m ON m.workspace_id = w.id
            WHERE w.organization_id = ? AND m.user_id = ?
            ORDER BY w.created_at DESC, w.id DESC
            """,
            (organization.id, actor.id),
        ).fetchall()
    return [get_workspace(conn, r["id"]) for r in rows]


def get_workspace_for(conn: sqlite3.Connection, actor: User, workspace_id: int, *,
                      policy: AuthorizationPolicy = default_policy) -> Workspace:
    organization, workspace = _scope(conn, actor, workspace_id, policy)
    policy.require(policy.can_view_workspace(actor, organization, workspace), actor, Action.WORKSPACE_VIEW)
    return workspace


def update_workspace(conn: sqlite3.Connection, actor: User, workspace_id: int, name: Optional[str] = None,
                     description: Optional[str] = None, *,
                     policy: AuthorizationPolicy = default_policy) -> Workspace:
    organization, workspace = _scope(conn, actor, workspace_id, policy)
    policy.require(policy.can_manage_workspace(actor, organization, workspace), actor, Action.WORKSPACE_MANAGE)
    if name is not None and not name.strip():
        raise ValidationError("Workspace name cannot be empty")
    conn.execute(
        "UPDATE workspaces SET name = ?, description = ?, updated_at = ? WHERE id = ?",
        (
            name.strip() if name is not None else workspace.name,
            description if description is not None else workspace.description,
            now_iso(),
            workspace_id,
        ),
    )
    return get_workspace(conn, workspace_id)


def delete_workspace(conn: sqlite3.Connection, actor: User, workspace_id: int, *,
                     policy: AuthorizationPolicy = default_policy) -> None:
    """Boards attached to the workspace are detached, not deleted."""
    organization, workspace = _scope(conn, actor, workspace_id, policy)
    policy.require(policy.can_manage_workspace(actor, organization, workspace), actor, Action.WORKSPACE_MANAGE)
    conn.execute("DELETE FROM workspaces WHERE id = ?", (workspace_id,))


def attach_board(conn: sqlite3.Connection, actor: User, workspace_id: int, board_id: int, *,
                 policy: AuthorizationPolicy = default_policy) -> Board:
    """Place a board in a workspace. Needs workspace management and board edit rights."""
    organization, workspace = _scope(conn, actor, workspace_id, policy)
    policy.require(policy.can_manage_workspace(actor, organization, workspace), actor, Action.WORKSPACE_MANAGE)
    chain = board_chain(conn, board_id)
    if chain.organization.id != organization.id:
        print(f"[AUTHZ] Cross-tenant board rejected: user_id={actor.id}, board={board_id}, workspace={workspace_id}")
        raise CrossTenantError("Board belongs to another organization")
    policy.require(
        policy.can_update_board(actor, chain.organization, chain.project, chain.board),
        actor, Action.BOARD_UPDATE,
    )
    conn.execute("UPDATE boards SET workspace_id = ?, updated_at = ? WHERE id = ?", (workspace_id, now_iso(), board_id))
    return get_board(conn, board_id)


def list_workspace_boards(conn: sqlite3.Connection, actor: User, workspace_id: int, *,
                          policy: AuthorizationPolicy = default_policy) -> List[Board]:
    """Boards of the workspace restricted to projects the actor can see."""
    organization, workspace = _scope(conn, actor, workspace_id, policy)
    policy.require(policy.can_view_workspace(actor, organization, workspace), actor, Action.WORKSPACE_VIEW)
    rows = conn.execute("SELECT id FROM boards WHERE workspace_id = ? ORDER BY created_at, id", (workspace_id,)).fetchall()
    boards = []
    for r in rows:
        chain = board_chain(conn, r["id"])
        if policy.is_project_member(actor, chain.organization, chain.project):
            boards.append(chain.board)
    return boards
