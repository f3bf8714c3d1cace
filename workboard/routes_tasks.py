"""
workboard/routes_tasks.py

Task and comment endpoints.

Creating a task needs organization membership only. Content edits need
manager or above, or being an assignee. Status changes and board moves are
open to any project member. Deleting a task needs manager or above.
Assignment and mention notifications are delivered after the response.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query

from workboard.auth_context import get_conn, require_actor
from workboard.authz import AuthorizationPolicy
from workboard.db import transaction
from workboard.dependencies import get_dispatcher, get_policy
from workboard.models import User
from workboard.notifications import NotificationDispatcher
from workboard.schemas import (
    CommentRequest,
    TaskCreateRequest,
    TaskMoveRequest,
    TaskStatusRequest,
    TaskUpdateRequest,
    comment_out,
    task_out,
)
from workboard.tasks import (
    create_comment,
    create_task,
    delete_comment,
    delete_task,
    get_task_for,
    list_comments,
    list_tasks,
    move_task,
    update_comment,
    update_task,
    update_task_status,
)


router = APIRouter(
    prefix="/tasks",
    tags=["tasks"],
)

comments_router = APIRouter(
    prefix="/comments",
    tags=["comments"],
)


@router.post("")
def create_task_route(
    req: TaskCreateRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    with transaction(conn):
        task = create_task(
            conn, actor, req.board_id, req.title,
            description=req.description,
            status=req.status,
            priority=req.priority,
            due_date=req.due_date,
            attachment=req.attachment,
            assigned_to=req.assigned_to,
            position=req.position,
            policy=policy,
            dispatcher=dispatcher,
        )
    dispatcher.flush()
    return task_out(task)


@router.get("")
def list_tasks_route(
    board_id: int = Query(..., description="Board whose tasks to list"),
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> List[Dict[str, Any]]:
    return [task_out(t) for t in list_tasks(conn, actor, board_id, policy=policy)]


@router.get("/{task_id}")
def get_task_route(
    task_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    return task_out(get_task_for(conn, actor, task_id, policy=policy))


@router.patch("/{task_id}")
def update_task_route(
    task_id: int,
    req: TaskUpdateRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    # Only fields present in the body count, so a status-only PATCH stays a workflow edit
    changes = req.dict(exclude_unset=True)
    with transaction(conn):
        task = update_task(conn, actor, task_id, changes, policy=policy, dispatcher=dispatcher)
    dispatcher.flush()
    return task_out(task)


@router.patch("/{task_id}/status")
def update_task_status_route(
    task_id: int,
    req: TaskStatusRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    with transaction(conn):
        task = update_task_status(conn, actor, task_id, req.status, policy=policy, dispatcher=dispatcher)
    dispatcher.flush()
    return task_out(task)


@router.post("/{task_id}/move")
def move_task_route(
    task_id: int,
    req: TaskMoveRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    with transaction(conn):
        task = move_task(conn, actor, task_id, req.board_id, req.position, policy=policy, dispatcher=dispatcher)
    dispatcher.flush()
    return task_out(task)


@router.delete("/{task_id}")
def delete_task_route(
    task_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        delete_task(conn, actor, task_id, policy=policy)
    return {"deleted": True}


# ---------------------------------------------------------
# Comments
# ---------------------------------------------------------
@router.get("/{task_id}/comments")
def list_comments_route(
    task_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> List[Dict[str, Any]]:
    return [comment_out(c) for c in list_comments(conn, actor, task_id, policy=policy)]


@router.post("/{task_id}/comments")
def create_comment_route(
    task_id: int,
    req: CommentRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    with transaction(conn):
        comment = create_comment(conn, actor, task_id, req.text, policy=policy, dispatcher=dispatcher)
    dispatcher.flush()
    return comment_out(comment)


@comments_router.patch("/{comment_id}")
def update_comment_route(
    comment_id: int,
    req: CommentRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        comment = update_comment(conn, actor, comment_id, req.text, policy=policy)
    return comment_out(comment)


@comments_router.delete("/{comment_id}")
def delete_comment_route(
    comment_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    with transaction(conn):
        delete_comment(conn, actor, comment_id, policy=policy)
    return {"deleted": True}
