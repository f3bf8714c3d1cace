"""
workboard/hierarchy.py

Hierarchy store: loads Organization -> Project -> Board -> Task records and
walks a resource's containment chain up to its Organization.

Every step of a chain walk that finds a missing parent raises NotFoundError.
A broken chain is never treated as an implicit deny.
"""

from __future__ import annotations

import sqlite3
from typing import Dict, List, NamedTuple, Optional

from workboard.errors import ForbiddenError, NotFoundError
from workboard.models import (
    Board,
    Comment,
    Organization,
    Project,
    ProjectMember,
    Task,
    User,
    Workspace,
    WorkspaceMember,
)


class Chain(NamedTuple):
    """A resource together with every container above it."""
    organization: Organization
    project: Optional[Project] = None
    board: Optional[Board] = None
    task: Optional[Task] = None


# ---------------------------------------------------------
# Users & organizations
# ---------------------------------------------------------
def find_user(conn: sqlite3.Connection, user_id: int) -> Optional[User]:
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return User.from_row(row) if row else None


def get_user(conn: sqlite3.Connection, user_id: int) -> User:
    user = find_user(conn, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def find_user_in_org(conn: sqlite3.Connection, email: str, organization_id: int) -> Optional[User]:
    row = conn.execute(
        "SELECT * FROM users WHERE email = ? AND organization_id = ?",
        (email, organization_id),
    ).fetchone()
    return User.from_row(row) if row else None


def list_org_users(conn: sqlite3.Connection, organization_id: int) -> List[User]:
    rows = conn.execute(
        "SELECT * FROM users WHERE organization_id = ? ORDER BY id",
        (organization_id,),
    ).fetchall()
    return [User.from_row(r) for r in rows]


def get_organization(conn: sqlite3.Connection, organization_id: Optional[int]) -> Organization:
    if organization_id is None:
        raise NotFoundError("Organization not found")
    row = conn.execute("SELECT * FROM organizations WHERE id = ?", (organization_id,)).fetchone()
    if not row:
        raise NotFoundError("Organization not found")
    return Organization.from_row(row)


def get_actor_organization(conn: sqlite3.Connection, actor: User) -> Organization:
    """The organization the actor belongs to. Unaffiliated actors are denied."""
    if actor.organization_id is None:
        raise ForbiddenError("User does not belong to an organization")
    return get_organization(conn, actor.organization_id)


# ---------------------------------------------------------
# Projects, boards, tasks
# ---------------------------------------------------------
def _project_members(conn: sqlite3.Connection, project_ids: List[int]) -> Dict[int, List[ProjectMember]]:
    members: Dict[int, List[ProjectMember]] = {pid: [] for pid in project_ids}
    if not project_ids:
        return members
    placeholders = ",".join("?" for _ in project_ids)
    rows = conn.execute(
        f"SELECT project_id, user_id, role FROM project_members "
        f"WHERE project_id IN ({placeholders}) ORDER BY added_at, user_id",
        tuple(project_ids),
    ).fetchall()
    for r in rows:
        members[r["project_id"]].append(ProjectMember(user_id=r["user_id"], role=r["role"]))
    return members


def _project_from_row(row, members: List[ProjectMember]) -> Project:
    return Project(
        id=row["id"],
        organization_id=row["organization_id"],
        name=row["name"],
        description=row["description"],
        created_by=row["created_by"],
        members=members,
        created_at=row["created_at"],
    )


def get_project(conn: sqlite3.Connection, project_id: int) -> Project:
    row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
    if not row:
        raise NotFoundError("Project not found")
    return _project_from_row(row, _project_members(conn, [row["id"]])[row["id"]])


def list_org_projects(conn: sqlite3.Connection, organization_id: int) -> List[Project]:
    """All projects of an organization with their member lists fully loaded."""
    rows = conn.execute(
        "SELECT * FROM projects WHERE organization_id = ? ORDER BY created_at DESC, id DESC",
        (organization_id,),
    ).fetchall()
    members = _project_members(conn, [r["id"] for r in rows])
    return [_project_from_row(r, members[r["id"]]) for r in rows]


def _board_from_row(conn: sqlite3.Connection, row) -> Board:
    member_rows = conn.execute(
        "SELECT user_id FROM board_members WHERE board_id = ? ORDER BY added_at, user_id",
        (row["id"],),
    ).fetchall()
    return Board(
        id=row["id"],
        project_id=row["project_id"],
        name=row["name"],
        description=row["description"],
        owner_id=row["owner_id"],
        workspace_id=row["workspace_id"],
        members=[m["user_id"] for m in member_rows],
        created_at=row["created_at"],
    )


def get_board(conn: sqlite3.Connection, board_id: int) -> Board:
    row = conn.execute("SELECT * FROM boards WHERE id = ?", (board_id,)).fetchone()
    if not row:
        raise NotFoundError("Board not found")
    return _board_from_row(conn, row)


def list_project_boards(conn: sqlite3.Connection, project_id: int) -> List[Board]:
    rows = conn.execute(
        "SELECT * FROM boards WHERE project_id = ? ORDER BY created_at, id",
        (project_id,),
    ).fetchall()
    return [_board_from_row(conn, r) for r in rows]


def _task_from_row(conn: sqlite3.Connection, row) -> Task:
    assignee_rows = conn.execute(
        "SELECT user_id FROM task_assignees WHERE task_id = ? ORDER BY assigned_at, user_id",
        (row["id"],),
    ).fetchall()
    return Task(
        id=row["id"],
        board_id=row["board_id"],
        title=row["title"],
        description=row["description"],
        status=row["status"],
        priority=row["priority"],
        due_date=row["due_date"],
        attachment=row["attachment"],
        position=row["position"],
        created_by=row["created_by"],
        assigned_to=[a["user_id"] for a in assignee_rows],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def get_task(conn: sqlite3.Connection, task_id: int) -> Task:
    row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
    if not row:
        raise NotFoundError("Task not found")
    return _task_from_row(conn, row)


def list_board_tasks(conn: sqlite3.Connection, board_id: int) -> List[Task]:
    rows = conn.execute(
        "SELECT * FROM tasks WHERE board_id = ? ORDER BY position, id",
        (board_id,),
    ).fetchall()
    return [_task_from_row(conn, r) for r in rows]


def get_comment(conn: sqlite3.Connection, comment_id: int) -> Comment:
    row = conn.execute("SELECT * FROM comments WHERE id = ?", (comment_id,)).fetchone()
    if not row:
        raise NotFoundError("Comment not found")
    mention_rows = conn.execute(
        "SELECT user_id FROM comment_mentions WHERE comment_id = ? ORDER BY user_id",
        (comment_id,),
    ).fetchall()
    return Comment(
        id=row["id"],
        task_id=row["task_id"],
        author_id=row["author_id"],
        text=row["text"],
        mentions=[m["user_id"] for m in mention_rows],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# ---------------------------------------------------------
# Workspaces
# ---------------------------------------------------------
def get_workspace(conn: sqlite3.Connection, workspace_id: int) -> Workspace:
    row = conn.execute("SELECT * FROM workspaces WHERE id = ?", (workspace_id,)).fetchone()
    if not row:
        raise NotFoundError("Workspace not found")
    member_rows = conn.execute(
        "SELECT user_id, role FROM workspace_members WHERE workspace_id = ? ORDER BY added_at, user_id",
        (workspace_id,),
    ).fetchall()
    return Workspace(
        id=row["id"],
        organization_id=row["organization_id"],
        name=row["name"],
        description=row["description"],
        created_by=row["created_by"],
        members=[WorkspaceMember(user_id=m["user_id"], role=m["role"]) for m in member_rows],
        created_at=row["created_at"],
    )


# ---------------------------------------------------------
# Chain walks
# ---------------------------------------------------------
def project_chain(conn: sqlite3.Connection, project_id: int) -> Chain:
    project = get_project(conn, project_id)
    organization = get_organization(conn, project.organization_id)
    return Chain(organization=organization, project=project)


def board_chain(conn: sqlite3.Connection, board_id: int) -> Chain:
    board = get_board(conn, board_id)
    upper = project_chain(conn, board.project_id)
    return Chain(organization=upper.organization, project=upper.project, board=board)


def task_chain(conn: sqlite3.Connection, task_id: int) -> Chain:
    task = get_task(conn, task_id)
    upper = board_chain(conn, task.board_id)
    return Chain(organization=upper.organization, project=upper.project, board=upper.board, task=task)
