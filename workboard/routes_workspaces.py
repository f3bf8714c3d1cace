"""
workboard/routes_workspaces.py

Workspace endpoints: CRUD, member management and board placement.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from workboard.auth_context import get_conn, require_actor
from workboard.authz import AuthorizationPolicy
from workboard.db import transaction
from workboard.dependencies import get_policy
from workboard.membership import (
    add_workspace_member,
    change_workspace_member_role,
    remove_workspace_member,
)
from workboard.models import User
from workboard.schemas import (
    MemberAddRequest,
    MemberRoleRequest,
    WorkspaceCreateRequest,
    WorkspaceUpdateRequest,
    board_out,
    workspace_out,
)
from workboard.workspaces import (
    attach_board,
    create_workspace,
    delete_workspace,
    get_workspace_for,
    list_workspace_boards,
    list_workspaces,
    update_workspace,
)


router = APIRouter(
    prefix="/workspaces",
    tags=["workspaces"],
)


@router.post("")
def create_workspace_route(
    req: WorkspaceCreateRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        workspace = create_workspace(conn, actor, req.name, req.description, policy=policy)
    print(f"[WORKSPACE] Created: id={workspace.id}, org={workspace.organization_id}, by={actor.id}")
    return workspace_out(workspace)


@router.get("")
def list_workspaces_route(
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> List[Dict[str, Any]]:
    return [workspace_out(w) for w in list_workspaces(conn, actor, policy=policy)]


@router.get("/{workspace_id}")
def get_workspace_route(
    workspace_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    return workspace_out(get_workspace_for(conn, actor, workspace_id, policy=policy))


@router.patch("/{workspace_id}")
def update_workspace_route(
    workspace_id: int,
    req: WorkspaceUpdateRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        workspace = update_workspace(conn, actor, workspace_id, req.name, req.description, policy=policy)
    return workspace_out(workspace)


@router.delete("/{workspace_id}")
def delete_workspace_route(
    workspace_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        delete_workspace(conn, actor, workspace_id, policy=policy)
    print(f"[WORKSPACE] Deleted: id={workspace_id}, by={actor.id}")
    return {"deleted": True}


@router.post("/{workspace_id}/members")
def add_workspace_member_route(
    workspace_id: int,
    req: MemberAddRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        workspace = add_workspace_member(conn, actor, workspace_id, req.user_id, req.role, policy=policy)
    return workspace_out(workspace)


@router.patch("/{workspace_id}/members/{user_id}")
def change_workspace_member_role_route(
    workspace_id: int,
    user_id: int,
    req: MemberRoleRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        workspace = change_workspace_member_role(conn, actor, workspace_id, user_id, req.role, policy=policy)
    return workspace_out(workspace)


@router.delete("/{workspace_id}/members/{user_id}")
def remove_workspace_member_route(
    workspace_id: int,
    user_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        workspace = remove_workspace_member(conn, actor, workspace_id, user_id, policy=policy)
    return workspace_out(workspace)


@router.get("/{workspace_id}/boards")
def list_workspace_boards_route(
    workspace_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> List[Dict[str, Any]]:
    return [board_out(b) for b in list_workspace_boards(conn, actor, workspace_id, policy=policy)]


@router.put("/{workspace_id}/boards/{board_id}")
def attach_board_route(
    workspace_id: int,
    board_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        board = attach_board(conn, actor, workspace_id, board_id, policy=policy)
    return board_out(board)
