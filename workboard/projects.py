"""
workboard/projects.py

Projects and boards.

A project's creator is stored as a project admin member and is also tracked
in created_by, which membership mutators protect. Listing applies
AuthorizationPolicy.visible_projects over fully loaded candidates.
Deleting a project cascades to its boards; deleting a board cascades to its
tasks.
"""

from __future__ import annotations

import sqlite3
from typing import Iterable, List, Optional

from workboard.authz import Action, AuthorizationPolicy, default_policy
from workboard.config import IS_DEV
from workboard.db import now_iso
from workboard.errors import CrossTenantError, ValidationError
from workboard.hierarchy import (
    board_chain,
    get_actor_organization,
    get_board,
    get_project,
    get_workspace,
    list_org_projects,
    list_project_boards,
    project_chain,
)
from workboard.membership import require_target_in_org
from workboard.models import Board, Organization, Project, ProjectRole, User
from workboard.notifications import NotificationDispatcher


def _clean_name(name: Optional[str], label: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} name is required")
    return cleaned


# ============================================================================
# Projects
# ============================================================================

def create_project(
    conn: sqlite3.Connection,
    actor: User,
    name: str,
    description: Optional[str] = None,
    member_ids: Iterable[int] = (),
    *,
    policy: AuthorizationPolicy = default_policy,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Project:
    organization = get_actor_organization(conn, actor)
    policy.require(policy.can_create_project(actor, organization), actor, Action.PROJECT_CREATE,
                   "Requires manager role or above")
    name = _clean_name(name, "Project")

    initial = []
    for user_id in dict.fromkeys(member_ids):
        if user_id == actor.id:
            continue
        initial.append(require_target_in_org(conn, policy, organization, user_id))

    stamp = now_iso()
    cur = conn.execute(
        """
        INSERT INTO projects (organization_id, name, description, created_by, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (organization.id, name, description, actor.id, stamp, stamp),
    )
    project_id = cur.lastrowid
    conn.execute(
        "INSERT INTO project_members (project_id, user_id, role, added_at) VALUES (?, ?, ?, ?)",
        (project_id, actor.id, ProjectRole.admin.value, stamp),
    )
    for target in initial:
        conn.execute(
            "INSERT INTO project_members (project_id, user_id, role, added_at) VALUES (?, ?, ?, ?)",
            (project_id, target.id, ProjectRole.member.value, stamp),
        )

    if IS_DEV:
        print(f"[PROJECT] Created: id={project_id}, org={organization.id}, by={actor.id}, "
              f"members={1 + len(initial)}")
    if dispatcher is not None:
        dispatcher.notify(
            [t.id for t in initial], "Added to project",
            body=f'You were added to "{name}"',
            link=f"/projects/{project_id}",
            data={"type": "PROJECT_MEMBER_ADDED", "projectId": project_id},
            exclude=actor.id,
        )
    return get_project(conn, project_id)


def list_projects(conn: sqlite3.Connection, actor: User, *,
                  policy: AuthorizationPolicy = default_policy) -> List[Project]:
    organization = get_actor_organization(conn, actor)
    return policy.visible_projects(actor, organization, list_org_projects(conn, organization.id))


def get_project_for(conn: sqlite3.Connection, actor: User, project_id: int, *,
                    policy: AuthorizationPolicy = default_policy) -> Project:
    chain = project_chain(conn, project_id)
    policy.require_project_member(actor, chain)
    return chain.project


def update_project(
    conn: sqlite3.Connection,
    actor: User,
    project_id: int,
    name: Optional[str] = None,
    description: Optional[str] = None,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Project:
    chain = project_chain(conn, project_id)
    policy.require_chain(actor, chain)
    policy.require(policy.can_update_project(actor, chain.organization, chain.project), actor,
                   Action.PROJECT_UPDATE)
    project = chain.project
    conn.execute(
        "UPDATE projects SET name = ?, description = ?, updated_at = ? WHERE id = ?",
        (
            _clean_name(name, "Project") if name is not None else project.name,
            description if description is not None else project.description,
            now_iso(),
            project_id,
        ),
    )
    return get_project(conn, project_id)


def delete_project(conn: sqlite3.Connection, actor: User, project_id: int, *,
                   policy: AuthorizationPolicy = default_policy) -> None:
    chain = project_chain(conn, project_id)
    policy.require_chain(actor, chain)
    policy.require(policy.can_update_project(actor, chain.organization, chain.project), actor,
                   Action.PROJECT_UPDATE)
    conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
    print(f"[PROJECT] Deleted: id={project_id}, by={actor.id}")


# ============================================================================
# Boards
# ============================================================================

def _require_workspace_in_org(conn: sqlite3.Connection, actor: User,
                              organization: Organization, workspace_id: Optional[int]) -> None:
    if workspace_id is None:
        return
    workspace = get_workspace(conn, workspace_id)
    if workspace.organization_id != organization.id:
        print(f"[AUTHZ] Cross-tenant workspace rejected: user_id={actor.id}, workspace={workspace_id}")
        raise CrossTenantError("Workspace belongs to another organization")


def create_board(
    conn: sqlite3.Connection,
    actor: User,
    project_id: int,
    name: str,
    description: Optional[str] = None,
    workspace_id: Optional[int] = None,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Board:
    chain = project_chain(conn, project_id)
    policy.require_chain(actor, chain)
    policy.require(policy.can_create_board(actor, chain.organization), actor, Action.BOARD_CREATE,
                   "Requires manager role or above")
    name = _clean_name(name, "Board")
    _require_workspace_in_org(conn, actor, chain.organization, workspace_id)

    stamp = now_iso()
    cur = conn.execute(
        """
        INSERT INTO boards (project_id, workspace_id, name, description, owner_id, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (project_id, workspace_id, name, description, actor.id, stamp, stamp),
    )
    board_id = cur.lastrowid
    conn.execute(
        "INSERT INTO board_members (board_id, user_id, added_at) VALUES (?, ?, ?)",
        (board_id, actor.id, stamp),
    )
    if IS_DEV:
        print(f"[BOARD] Created: id={board_id}, project={project_id}, owner={actor.id}")
    return get_board(conn, board_id)


def list_boards(conn: sqlite3.Connection, actor: User, project_id: int, *,
                policy: AuthorizationPolicy = default_policy) -> List[Board]:
    chain = project_chain(conn, project_id)
    policy.require_project_member(actor, chain)
    return list_project_boards(conn, project_id)


def get_board_for(conn: sqlite3.Connection, actor: User, board_id: int, *,
                  policy: AuthorizationPolicy = default_policy) -> Board:
    chain = board_chain(conn, board_id)
    policy.require_project_member(actor, chain)
    return chain.board


def update_board(
    conn: sqlite3.Connection,
    actor: User,
    board_id: int,
    name: Optional[str] = None,
    description: Optional[str] = None,
    *,
    policy: AuthorizationPolicy = default_policy,
) -> Board:
    chain = board_chain(conn, board_id)
    policy.require_chain(actor, chain)
    policy.require(
        policy.can_update_board(actor, chain.organization, chain.project, chain.board),
        actor, Action.BOARD_UPDATE,
    )
    board = chain.board
    conn.execute(
        "UPDATE boards SET name = ?, description = ?, updated_at = ? WHERE id = ?",
        (
            _clean_name(name, "Board") if name is not None else board.name,
            description if description is not None else board.description,
            now_iso(),
            board_id,
        ),
    )
    return get_board(conn, board_id)


def delete_board(conn: sqlite3.Connection, actor: User, board_id: int, *,
                 policy: AuthorizationPolicy = default_policy) -> None:
    chain = board_chain(conn, board_id)
    policy.require_chain(actor, chain)
    policy.require(
        policy.can_update_board(actor, chain.organization, chain.project, chain.board),
        actor, Action.BOARD_UPDATE,
    )
    conn.execute("DELETE FROM boards WHERE id = ?", (board_id,))
    print(f"[BOARD] Deleted: id={board_id}, by={actor.id}")
