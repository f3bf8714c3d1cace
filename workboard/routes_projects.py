"""
workboard/routes_projects.py

Project, project member, board and board member endpoints.

Project listings only contain projects the actor can see (org admin/owner,
creator, or listed member). Resources of another organization answer
403 "Access denied", exactly like resources the actor is not a member of.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from workboard.auth_context import get_conn, require_actor
from workboard.authz import AuthorizationPolicy
from workboard.db import transaction
from workboard.dependencies import get_dispatcher, get_policy
from workboard.membership import (
    add_board_member,
    add_project_member,
    change_project_member_role,
    remove_board_member,
    remove_project_member,
)
from workboard.models import User
from workboard.notifications import NotificationDispatcher
from workboard.projects import (
    create_board,
    create_project,
    delete_board,
    delete_project,
    get_board_for,
    get_project_for,
    list_boards,
    list_projects,
    update_board,
    update_project,
)
from workboard.schemas import (
    BoardCreateRequest,
    BoardUpdateRequest,
    MemberAddRequest,
    MemberRoleRequest,
    ProjectCreateRequest,
    ProjectUpdateRequest,
    board_out,
    project_out,
)


router = APIRouter(
    prefix="/projects",
    tags=["projects"],
)

boards_router = APIRouter(
    prefix="/boards",
    tags=["boards"],
)


# ---------------------------------------------------------
# Projects
# ---------------------------------------------------------
@router.post("")
def create_project_route(
    req: ProjectCreateRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    with transaction(conn):
        project = create_project(conn, actor, req.name, req.description, req.member_ids,
                                 policy=policy, dispatcher=dispatcher)
    dispatcher.flush()
    return project_out(project)


@router.get("")
def list_projects_route(
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> List[Dict[str, Any]]:
    return [project_out(p) for p in list_projects(conn, actor, policy=policy)]


@router.get("/{project_id}")
def get_project_route(
    project_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    return project_out(get_project_for(conn, actor, project_id, policy=policy))


@router.patch("/{project_id}")
def update_project_route(
    project_id: int,
    req: ProjectUpdateRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        project = update_project(conn, actor, project_id, req.name, req.description, policy=policy)
    return project_out(project)


@router.delete("/{project_id}")
def delete_project_route(
    project_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        delete_project(conn, actor, project_id, policy=policy)
    return {"deleted": True}


@router.post("/{project_id}/members")
def add_project_member_route(
    project_id: int,
    req: MemberAddRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    with transaction(conn):
        project = add_project_member(conn, actor, project_id, req.user_id, req.role,
                                     policy=policy, dispatcher=dispatcher)
    dispatcher.flush()
    return project_out(project)


@router.patch("/{project_id}/members/{user_id}")
def change_project_member_role_route(
    project_id: int,
    user_id: int,
    req: MemberRoleRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        project = change_project_member_role(conn, actor, project_id, user_id, req.role, policy=policy)
    return project_out(project)


@router.delete("/{project_id}/members/{user_id}")
def remove_project_member_route(
    project_id: int,
    user_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        project = remove_project_member(conn, actor, project_id, user_id, policy=policy)
    return project_out(project)


@router.get("/{project_id}/boards")
def list_boards_route(
    project_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> List[Dict[str, Any]]:
    return [board_out(b) for b in list_boards(conn, actor, project_id, policy=policy)]


# ---------------------------------------------------------
# Boards
# ---------------------------------------------------------
@boards_router.post("")
def create_board_route(
    req: BoardCreateRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        board = create_board(conn, actor, req.project_id, req.name, req.description, req.workspace_id,
                             policy=policy)
    return board_out(board)


@boards_router.get("/{board_id}")
def get_board_route(
    board_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    return board_out(get_board_for(conn, actor, board_id, policy=policy))


@boards_router.patch("/{board_id}")
def update_board_route(
    board_id: int,
    req: BoardUpdateRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        board = update_board(conn, actor, board_id, req.name, req.description, policy=policy)
    return board_out(board)


@boards_router.delete("/{board_id}")
def delete_board_route(
    board_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        delete_board(conn, actor, board_id, policy=policy)
    return {"deleted": True}


@boards_router.post("/{board_id}/members")
def add_board_member_route(
    board_id: int,
    req: MemberAddRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        board = add_board_member(conn, actor, board_id, req.user_id, policy=policy)
    return board_out(board)


@boards_router.delete("/{board_id}/members/{user_id}")
def remove_board_member_route(
    board_id: int,
    user_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        board = remove_board_member(conn, actor, board_id, user_id, policy=policy)
    return board_out(board)
