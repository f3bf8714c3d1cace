"""
workboard/notifications.py

Fire-and-forget notification dispatch (in-app records, push, email).

Mutations queue events on a NotificationDispatcher while they run. The caller
flushes the outbox only after its transaction commits; events of a rolled back
mutation are dropped. Delivery runs through an optional scheduler (FastAPI
BackgroundTasks.add_task in the HTTP layer) or inline when none is set.
Sender failures are printed and never reach the mutation's caller.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from workboard import config
from workboard.db import get_db, now_iso


@dataclass
class NotificationEvent:
    """In-app + push notification for a set of users."""
    user_ids: List[int]
    title: str
    body: str = ""
    link: str = "/"
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EmailMessage:
    to: str
    subject: str
    body: str


# ---------------------------------------------------------
# Senders
# ---------------------------------------------------------
class NotificationSender:
    def send(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class InAppNotificationSender(NotificationSender):
    """Persists one notification row per existing recipient on its own connection."""

    def __init__(self, connect: Callable[[], sqlite3.Connection] = get_db):
        self.connect = connect

    def send(self, event: NotificationEvent) -> None:
        conn = self.connect()
        try:
            payload = json.dumps(event.data)
            stamp = now_iso()
            for user_id in event.user_ids:
                # Stale ids (removed users) are skipped
                conn.execute(
                    """
                    INSERT INTO notifications (user_id, title, body, link, data, is_read, created_at)
                    SELECT id, ?, ?, ?, ?, 0, ? FROM users WHERE id = ?
                    """,
                    (event.title, event.body, event.link, payload, stamp, user_id),
                )
            conn.commit()
        finally:
            conn.close()


class WebhookPushSender(NotificationSender):
    """
    Posts push payloads to PUSH_WEBHOOK_URL for users with registered device tokens.

    The gateway may answer {"invalid_tokens": [...]}; those tokens are removed.
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None,
                 connect: Callable[[], sqlite3.Connection] = get_db):
        self.url = url if url is not None else config.PUSH_WEBHOOK_URL
        self.timeout = timeout if timeout is not None else config.PUSH_TIMEOUT_SECONDS
        self.connect = connect

    def send(self, event: NotificationEvent) -> None:
        if not self.url:
            return
        conn = self.connect()
        try:
            placeholders = ",".join("?" for _ in event.user_ids)
            rows = conn.execute(
                f"SELECT token FROM push_tokens WHERE user_id IN ({placeholders})",
                tuple(event.user_ids),
            ).fetchall()
            tokens = [r["token"] for r in rows]
            if not tokens:
                if config.IS_DEV:
                    print(f"[NOTIFY] Push skipped (no tokens): users={event.user_ids}")
                return

            # Push gateways require string values in the data payload
            data = {k: str(v) for k, v in {**event.data, "link": event.link or "/"}.items()}
            response = requests.post(
                self.url,
                json={"tokens": tokens, "notification": {"title": event.title, "body": event.body}, "data": data},
                timeout=self.timeout,
            )
            response.raise_for_status()

            invalid = []
            if response.content:
                invalid = response.json().get("invalid_tokens", [])
            if invalid:
                conn.executemany("DELETE FROM push_tokens WHERE token = ?", [(t,) for t in invalid])
                conn.commit()
                print(f"[NOTIFY] Removed {len(invalid)} invalid push token(s)")
        finally:
            conn.close()


class LoggingEmailSender:
    """Outbound email is delivered by an external service; this records what would be sent."""

    def send(self, message: EmailMessage) -> None:
        print(f"[EMAIL] to={message.to} subject={message.subject!r}")
        if config.IS_DEV:
            print(f"[EMAIL] body:\n{message.body}")


# ---------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------
def default_senders() -> List[NotificationSender]:
    return [InAppNotificationSender(), WebhookPushSender()]


class NotificationDispatcher:
    """
    Best-effort outbox for side effects of an authorized mutation.

    Usage:
        dispatcher = NotificationDispatcher(schedule=background_tasks.add_task)
        with transaction(conn):
            create_task(conn, actor, ..., dispatcher=dispatcher)
        dispatcher.flush()
    """

    def __init__(
        self,
        senders: Optional[Sequence[NotificationSender]] = None,
        email_sender: Optional[LoggingEmailSender] = None,
        schedule: Optional[Callable[..., Any]] = None,
    ):
        self.senders = list(senders) if senders is not None else default_senders()
        self.email_sender = email_sender or LoggingEmailSender()
        self.schedule = schedule
        self.outbox: List[Any] = []

    def notify(self, user_ids, title: str, body: str = "", link: str = "/",
               data: Optional[Dict[str, Any]] = None, exclude: Optional[int] = None) -> None:
        recipients = sorted({uid for uid in user_ids if uid is not None and uid != exclude})
        if not recipients:
            return
        self.outbox.append(NotificationEvent(recipients, title, body, link, dict(data or {})))

    def email(self, to: str, subject: str, body: str) -> None:
        self.outbox.append(EmailMessage(to, subject, body))

    def discard(self) -> None:
        self.outbox.clear()

    def flush(self) -> None:
        """Hand queued items to the scheduler (or deliver inline). Never raises."""
        pending, self.outbox = self.outbox, []
        for item in pending:
            if self.schedule is None:
                self.deliver(item)
                continue
            try:
                self.schedule(self.deliver, item)
            except Exception as e:
                print(f"[NOTIFY] Could not schedule delivery: {type(e).__name__}: {e}")

    def deliver(self, item) -> None:
        if isinstance(item, EmailMessage):
            try:
                self.email_sender.send(item)
            except Exception as e:
                print(f"[NOTIFY] Email to {item.to} failed: {type(e).__name__}: {e}")
            return
        for sender in self.senders:
            try:
                sender.send(item)
            except Exception as e:
                print(f"[NOTIFY] {type(sender).__name__} failed for users={item.user_ids}: "
                      f"{type(e).__name__}: {e}")


# ---------------------------------------------------------
# In-app notification queries
# ---------------------------------------------------------
def list_notifications(conn: sqlite3.Connection, user_id: int, unread_only: bool = False,
                       limit: int = 50) -> List[Dict[str, Any]]:
    query = "SELECT * FROM notifications WHERE user_id = ?"
    if unread_only:
        query += " AND is_read = 0"
    query += " ORDER BY created_at DESC, id DESC LIMIT ?"
    rows = conn.execute(query, (user_id, limit)).fetchall()
    items = []
    for r in rows:
        item = dict(r)
        item["data"] = json.loads(item["data"]) if item["data"] else {}
        item["is_read"] = bool(item["is_read"])
        items.append(item)
    return items


def unread_count(conn: sqlite3.Connection, user_id: int) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM notifications WHERE user_id = ? AND is_read = 0",
        (user_id,),
    ).fetchone()
    return int(row["n"]) if row else 0


def mark_read(conn: sqlite3.Connection, user_id: int, notification_id: Optional[int] = None) -> int:
    """Mark one notification (or all of them) read for this user only."""
    if notification_id is None:
        cur = conn.execute("UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0", (user_id,))
    else:
        cur = conn.execute(
            "UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?",
            (notification_id, user_id),
        )
    return cur.rowcount


def register_push_token(conn: sqlite3.Connection, user_id: int, token: str) -> None:
    """Attach a device token to a user; a token seen before moves to the new user."""
    conn.execute("DELETE FROM push_tokens WHERE token = ?", (token,))
    conn.execute(
        "INSERT INTO push_tokens (user_id, token, created_at) VALUES (?, ?, ?)",
        (user_id, token, now_iso()),
    )
