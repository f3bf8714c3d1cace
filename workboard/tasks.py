"""
workboard/tasks.py

Tasks and task comments.

Task updates are split in two families:
- content edits (title, description, assignees, attachment, priority, due date)
  need manager or above, or org membership plus being an assignee
- workflow edits (status, board move, position) are open to any project member

Assignees must be project members when they are assigned. They are not
re-checked later, so a removed member can stay assigned.
"""

from __future__ import annotations

import re
import sqlite3
from typing import Any, Dict, Iterable, List, Optional

from workboard.authz import Action, AuthorizationPolicy, default_policy
from workboard.config import IS_DEV
from workboard.db import now_iso
from workboard.errors import ValidationError
from workboard.hierarchy import (
    Chain,
    board_chain,
    find_user,
    get_comment,
    get_task,
    list_board_tasks,
    task_chain,
)
from workboard.models import Comment, Task, TaskPriority, TaskStatus, User
from workboard.notifications import NotificationDispatcher


CONTENT_FIELDS = {"title", "description", "assigned_to", "attachment", "priority", "due_date"}
WORKFLOW_FIELDS = {"status", "board_id", "position"}

COMMENT_MAX_LENGTH = 500
MENTION_PATTERN = re.compile(r"@\[[^\]]+\]\(([^)]+)\)")


# ---------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------
def _enum_value(value: Optional[str], enum_cls, label: str) -> str:
    raw = value.value if hasattr(value, "value") else value
    allowed = [e.value for e in enum_cls]
    if raw not in allowed:
        raise ValidationError(f"Invalid {label} '{raw}'. Allowed: {', '.join(allowed)}")
    return raw


def _clean_title(title: Optional[str]) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Task title is required")
    return cleaned


def _validate_assignees(conn: sqlite3.Connection, policy: AuthorizationPolicy, chain: Chain,
                        user_ids: Iterable[int]) -> List[int]:
    assignees = list(dict.fromkeys(user_ids))
    for user_id in assignees:
        user = find_user(conn, user_id)
        if user is None or not policy.is_project_member(user, chain.organization, chain.project):
            raise ValidationError("All assigned users must be project members")
    return assignees


def _task_link(task_id: int, board_id: int) -> str:
    return f"/boards/{board_id}?task={task_id}"


# ============================================================================
# Tasks
# ============================================================================

def create_task(
    conn: sqlite3.Connection,
    actor: User,
    board_id: int,
    title: str,
    description: Optional[str] = None,
    status: str = TaskStatus.todo.value,
    priority: str = TaskPriority.medium.value,
    due_date: Optional[str] = None,
    attachment: Optional[str] = None,
    assigned_to: Iterable[int] = (),
    position: Optional[int] = None,
    *,
    policy: AuthorizationPolicy = default_policy,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Task:
    chain = board_chain(conn, board_id)
    policy.require_chain(actor, chain)
    policy.require(policy.can_create_task(actor, chain.organization), actor, Action.TASK_CREATE)

    title = _clean_title(title)
    status = _enum_value(status, TaskStatus, "status")
    priority = _enum_value(priority, TaskPriority, "priority")
    assignees = _validate_assignees(conn, policy, chain, assigned_to)
    if position is None:
        row = conn.execute(
            "SELECT COALESCE(MAX(position), -1) + 1 AS next FROM tasks WHERE board_id = ?",
            (board_id,),
        ).fetchone()
        position = row["next"]

    stamp = now_iso()
    cur = conn.execute(
        """
        INSERT INTO tasks (board_id, title, description, status, priority, due_date, attachment,
                           position, created_by, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (board_id, title, description, status, priority, due_date, attachment, position, actor.id, stamp, stamp),
    )
    task_id = cur.lastrowid
    conn.executemany(
        "INSERT INTO task_assignees (task_id, user_id, assigned_at) VALUES (?, ?, ?)",
        [(task_id, uid, stamp) for uid in assignees],
    )

    if IS_DEV:
        print(f"[TASK] Created: id={task_id}, board={board_id}, by={actor.id}, assignees={assignees}")
    if dispatcher is not None:
        dispatcher.notify(
            assignees, "New task assigned",
            body=f'You were assigned "{title}"',
            link=_task_link(task_id, board_id),
            data={"type": "TASK_ASSIGNED", "taskId": task_id, "boardId": board_id},
            exclude=actor.id,
        )
    return get_task(conn, task_id)


def list_tasks(conn: sqlite3.Connection, actor: User, board_id: int, *,
               policy: AuthorizationPolicy = default_policy) -> List[Task]:
    chain = board_chain(conn, board_id)
    policy.require_project_member(actor, chain)
    return list_board_tasks(conn, board_id)


def get_task_for(conn: sqlite3.Connection, actor: User, task_id: int, *,
                 policy: AuthorizationPolicy = default_policy) -> Task:
    chain = task_chain(conn, task_id)
    policy.require_project_member(actor, chain)
    return chain.task


def update_task(
    conn: sqlite3.Connection,
    actor: User,
    task_id: int,
    changes: Dict[str, Any],
    *,
    policy: AuthorizationPolicy = default_policy,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Task:
    """
    Apply a partial update to a task.

    Workflow-only changes (status, board_id, position) are allowed for any
    project member, and for anyone allowed to edit the content. Any content
    field in the change set requires the content rule.

    Raises:
        ValidationError: Unknown field, bad enum, non-member assignee, or a
            board move outside the task's project
        CrossTenantError: Task or target board belongs to another organization
    """
    unknown = set(changes) - CONTENT_FIELDS - WORKFLOW_FIELDS
    if unknown:
        raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}")

    chain = task_chain(conn, task_id)
    policy.require_chain(actor, chain)
    task = chain.task

    content_allowed = policy.can_update_task_content(actor, chain.organization, task)
    if set(changes) & CONTENT_FIELDS:
        policy.require(content_allowed, actor, Action.TASK_UPDATE, "Not an assignee or manager")
    else:
        policy.require(
            content_allowed or policy.can_move_task(actor, chain.organization, chain.project),
            actor, Action.TASK_MOVE, "Not a project member",
        )

    columns: Dict[str, Any] = {}
    if "title" in changes:
        columns["title"] = _clean_title(changes["title"])
    if "description" in changes:
        columns["description"] = changes["description"]
    if "attachment" in changes:
        columns["attachment"] = changes["attachment"]
    if "due_date" in changes:
        columns["due_date"] = changes["due_date"]
    if "priority" in changes:
        columns["priority"] = _enum_value(changes["priority"], TaskPriority, "priority")
    if "status" in changes:
        columns["status"] = _enum_value(changes["status"], TaskStatus, "status")
    if "position" in changes and changes["position"] is not None:
        columns["position"] = int(changes["position"])
    if "board_id" in changes and changes["board_id"] is not None and changes["board_id"] != task.board_id:
        target = board_chain(conn, changes["board_id"])
        policy.require_chain(actor, target)
        if target.project.id != chain.project.id:
            raise ValidationError("Cannot move task to a board in a different project")
        columns["board_id"] = target.board.id

    previous = set(task.assigned_to)
    added: List[int] = []
    if "assigned_to" in changes and changes["assigned_to"] is not None:
        wanted = list(dict.fromkeys(changes["assigned_to"]))
        # Keeping an existing (possibly stale) assignee is not a new assignment
        added = _validate_assignees(conn, policy, chain, [u for u in wanted if u not in previous])
        removed = previous - set(wanted)
        stamp = now_iso()
        for user_id in removed:
            conn.execute("DELETE FROM task_assignees WHERE task_id = ? AND user_id = ?", (task_id, user_id))
        conn.executemany(
            "INSERT INTO task_assignees (task_id, user_id, assigned_at) VALUES (?, ?, ?)",
            [(task_id, uid, stamp) for uid in added],
        )

    columns["updated_at"] = now_iso()
    assignments = ", ".join(f"{col} = ?" for col in columns)
    conn.execute(f"UPDATE tasks SET {assignments} WHERE id = ?", (*columns.values(), task_id))

    updated = get_task(conn, task_id)
    if IS_DEV:
        print(f"[TASK] Updated: id={task_id}, by={actor.id}, fields={sorted(changes)}")
    if dispatcher is not None:
        link = _task_link(task_id, updated.board_id)
        dispatcher.notify(
            added, "New task assigned",
            body=f'You were assigned "{updated.title}"',
            link=link,
            data={"type": "TASK_ASSIGNED", "taskId": task_id, "boardId": updated.board_id},
            exclude=actor.id,
        )
        status_only = set(changes) == {"status"}
        existing = [u for u in updated.assigned_to if u in previous]
        dispatcher.notify(
            existing,
            "Task status updated" if status_only else "Task updated",
            body=f'"{updated.title}" moved to {updated.status}' if status_only else f'"{updated.title}" was updated',
            link=link,
            data={
                "type": "STATUS_CHANGED" if status_only else "TASK_UPDATED",
                "taskId": task_id,
                "boardId": updated.board_id,
                "status": updated.status,
            },
            exclude=actor.id,
        )
    return updated


def update_task_status(conn: sqlite3.Connection, actor: User, task_id: int, status: str, *,
                       policy: AuthorizationPolicy = default_policy,
                       dispatcher: Optional[NotificationDispatcher] = None) -> Task:
    return update_task(conn, actor, task_id, {"status": status}, policy=policy, dispatcher=dispatcher)


def move_task(conn: sqlite3.Connection, actor: User, task_id: int, board_id: int,
              position: Optional[int] = None, *,
              policy: AuthorizationPolicy = default_policy,
              dispatcher: Optional[NotificationDispatcher] = None) -> Task:
    changes: Dict[str, Any] = {"board_id": board_id}
    if position is not None:
        changes["position"] = position
    return update_task(conn, actor, task_id, changes, policy=policy, dispatcher=dispatcher)


def delete_task(conn: sqlite3.Connection, actor: User, task_id: int, *,
                policy: AuthorizationPolicy = default_policy) -> None:
    chain = task_chain(conn, task_id)
    policy.require_chain(actor, chain)
    policy.require(policy.can_delete_task(actor, chain.organization), actor, Action.TASK_DELETE,
                   "Requires manager role or above")
    conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
    if IS_DEV:
        print(f"[TASK] Deleted: id={task_id}, by={actor.id}")


# ============================================================================
# Comments
# ============================================================================

def extract_mentions(text: str) -> List[int]:
    """User ids referenced as @[Name](id), in order of first appearance."""
    ids: List[int] = []
    for match in MENTION_PATTERN.finditer(text or ""):
        raw = match.group(1).strip()
        if raw.isdigit() and int(raw) not in ids:
            ids.append(int(raw))
    return ids


def _clean_comment(text: Optional[str]) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("Comment text is required")
    if len(cleaned) > COMMENT_MAX_LENGTH:
        raise ValidationError(f"Comment text must be at most {COMMENT_MAX_LENGTH} characters")
    return cleaned


def _member_mentions(conn: sqlite3.Connection, policy: AuthorizationPolicy, chain: Chain, text: str) -> List[int]:
    mentions = []
    for user_id in extract_mentions(text):
        user = find_user(conn, user_id)
        if user is not None and policy.is_project_member(user, chain.organization, chain.project):
            mentions.append(user_id)
    return mentions


def _store_mentions(conn: sqlite3.Connection, comment_id: int, mentions: List[int]) -> None:
    conn.execute("DELETE FROM comment_mentions WHERE comment_id = ?", (comment_id,))
    conn.executemany(
        "INSERT INTO comment_mentions (comment_id, user_id) VALUES (?, ?)",
        [(comment_id, uid) for uid in mentions],
    )


def create_comment(
    conn: sqlite3.Connection,
    actor: User,
    task_id: int,
    text: str,
    *,
    policy: AuthorizationPolicy = default_policy,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Comment:
    chain = task_chain(conn, task_id)
    policy.require_chain(actor, chain)
    policy.require(policy.can_comment(actor, chain.organization, chain.project), actor,
                   Action.COMMENT_CREATE, "Not a project member")
    text = _clean_comment(text)
    mentions = _member_mentions(conn, policy, chain, text)

    stamp = now_iso()
    cur = conn.execute(
        "INSERT INTO comments (task_id, author_id, text, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
        (task_id, actor.id, text, stamp, stamp),
    )
    comment_id = cur.lastrowid
    _store_mentions(conn, comment_id, mentions)

    if dispatcher is not None:
        dispatcher.notify(
            mentions, "You were mentioned",
            body=f'{actor.name} mentioned you on "{chain.task.title}"',
            link=_task_link(task_id, chain.board.id),
            data={"type": "MENTION", "taskId": task_id, "commentId": comment_id},
            exclude=actor.id,
        )
    return get_comment(conn, comment_id)


def list_comments(conn: sqlite3.Connection, actor: User, task_id: int, *,
                  policy: AuthorizationPolicy = default_policy) -> List[Comment]:
    chain = task_chain(conn, task_id)
    policy.require_project_member(actor, chain, Action.COMMENT_CREATE)
    rows = conn.execute(
        "SELECT id FROM comments WHERE task_id = ? ORDER BY created_at, id",
        (task_id,),
    ).fetchall()
    return [get_comment(conn, r["id"]) for r in rows]


def _comment_scope(conn: sqlite3.Connection, actor: User, comment_id: int,
                   policy: AuthorizationPolicy) -> tuple:
    comment = get_comment(conn, comment_id)
    chain = task_chain(conn, comment.task_id)
    policy.require_chain(actor, chain)
    policy.require(policy.can_edit_comment(actor, chain.organization, comment), actor,
                   Action.COMMENT_EDIT, "Not the comment author")
    return comment, chain


def update_comment(conn: sqlite3.Connection, actor: User, comment_id: int, text: str, *,
                   policy: AuthorizationPolicy = default_policy) -> Comment:
    comment, chain = _comment_scope(conn, actor, comment_id, policy)
    text = _clean_comment(text)
    conn.execute(
        "UPDATE comments SET text = ?, updated_at = ? WHERE id = ?",
        (text, now_iso(), comment.id),
    )
    _store_mentions(conn, comment.id, _member_mentions(conn, policy, chain, text))
    return get_comment(conn, comment.id)


def delete_comment(conn: sqlite3.Connection, actor: User, comment_id: int, *,
                   policy: AuthorizationPolicy = default_policy) -> None:
    comment, _ = _comment_scope(conn, actor, comment_id, policy)
    conn.execute("DELETE FROM comments WHERE id = ?", (comment.id,))
