"""
workboard/routes_notifications.py

In-app notification inbox and push token registration for the current user.
Every query is scoped to the authenticated user; there is no way to read or
mark another user's notifications.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from workboard.auth_context import get_conn, require_actor
from workboard.db import transaction
from workboard.errors import NotFoundError
from workboard.models import User
from workboard.notifications import list_notifications, mark_read, register_push_token, unread_count
from workboard.schemas import PushTokenRequest


router = APIRouter(
    tags=["notifications"],
)


@router.get("/notifications")
def list_notifications_route(
    unread_only: bool = False,
    limit: int = 50,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
) -> List[Dict[str, Any]]:
    limit = max(1, min(limit, 200))
    return list_notifications(conn, actor.id, unread_only=unread_only, limit=limit)


@router.get("/notifications/unread-count")
def unread_count_route(
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
) -> Dict[str, int]:
    return {"unread": unread_count(conn, actor.id)}


@router.post("/notifications/read-all")
def mark_all_read_route(
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
) -> Dict[str, int]:
    with transaction(conn):
        updated = mark_read(conn, actor.id)
    return {"updated": updated}


@router.post("/notifications/{notification_id}/read")
def mark_read_route(
    notification_id: int,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
) -> Dict[str, int]:
    with transaction(conn):
        updated = mark_read(conn, actor.id, notification_id)
    if not updated:
        raise NotFoundError("Notification not found")
    return {"updated": updated}


@router.post("/push-tokens")
def register_push_token_route(
    req: PushTokenRequest,
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
) -> Dict[str, bool]:
    with transaction(conn):
        register_push_token(conn, actor.id, req.token.strip())
    return {"registered": True}
