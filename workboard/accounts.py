"""
workboard/accounts.py

Registration and login.

Registering with an invitation token consumes the invitation and creates the
user inside the caller's transaction, so a failure after the token is claimed
rolls both back. A token can therefore produce at most one user.

Email is unique per organization only. Login matches every user with that
email and requires organization_id when more than one of them accepts the
password.
"""

from __future__ import annotations

import sqlite3
from typing import List, Optional

from workboard.auth_context import hash_password, verify_password
from workboard.config import IS_DEV
from workboard.db import now_iso
from workboard.errors import ConflictError, ValidationError
from workboard.hierarchy import find_user_in_org, get_organization, get_user
from workboard.invitations import accept_invitation, normalize_email, stamp_invitation_member
from workboard.models import Role, User
from workboard.notifications import NotificationDispatcher


def _insert_user(conn: sqlite3.Connection, name: str, email: str, password: str,
                 organization_id: Optional[int], role: str) -> int:
    try:
        cur = conn.execute(
            """
            INSERT INTO users (name, email, password_hash, organization_id, role, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (name, email, hash_password(password), organization_id, role, now_iso()),
        )
    except sqlite3.IntegrityError as e:
        print(f"[REGISTER] IntegrityError caught: {e}, email={email!r}")
        raise ConflictError("User already exists in this organization") from e
    return cur.lastrowid


def register_user(
    conn: sqlite3.Connection,
    name: str,
    email: str,
    password: str,
    organization_name: Optional[str] = None,
    invitation_token: Optional[str] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> User:
    """
    Create a user either from an invitation or together with a new organization.

    Raises:
        InvalidInvitationError: Token unknown, consumed, declined or expired
        ValidationError: Neither organization_name nor invitation_token, or email mismatch
        ConflictError: A user with this email already exists in the organization
    """
    email = normalize_email(email)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")

    if invitation_token:
        accepted = accept_invitation(conn, invitation_token)
        if email != accepted.invited_email:
            raise ValidationError("Email does not match the invitation")
        if find_user_in_org(conn, email, accepted.organization_id) is not None:
            raise ConflictError("User already exists in this organization")

        user_id = _insert_user(conn, name, email, password, accepted.organization_id, accepted.role)
        stamp_invitation_member(conn, accepted.invitation_id, user_id)
        print(f"[REGISTER] User {user_id} joined org={accepted.organization_id} via invitation "
              f"{accepted.invitation_id} as {accepted.role}")

        if dispatcher is not None:
            organization = get_organization(conn, accepted.organization_id)
            dispatcher.notify(
                [accepted.invited_by], "Invitation accepted",
                body=f"{name} ({email}) joined {organization.name}",
                link="/organization/members",
                data={"type": "INVITATION_ACCEPTED", "userId": user_id},
            )
        return get_user(conn, user_id)

    organization_name = (organization_name or "").strip()
    if not organization_name:
        raise ValidationError("Either organization_name or invitation_token is required")

    stamp = now_iso()
    cur = conn.execute(
        "INSERT INTO organizations (name, description, owner_id, created_at, updated_at) VALUES (?, NULL, NULL, ?, ?)",
        (organization_name, stamp, stamp),
    )
    organization_id = cur.lastrowid
    user_id = _insert_user(conn, name, email, password, organization_id, Role.owner.value)
    conn.execute("UPDATE organizations SET owner_id = ? WHERE id = ?", (user_id, organization_id))
    print(f"[REGISTER] User {user_id} created org={organization_id} ({organization_name!r}) as owner")
    return get_user(conn, user_id)


def authenticate(
    conn: sqlite3.Connection,
    email: str,
    password: str,
    organization_id: Optional[int] = None,
) -> Optional[User]:
    """
    Resolve credentials to a single user, or None when they do not match.

    Raises:
        ValidationError: The credentials match users in several organizations
            and no organization_id was supplied
    """
    email_norm = (email or "").strip().lower()
    query = "SELECT * FROM users WHERE email = ?"
    params: list = [email_norm]
    if organization_id is not None:
        query += " AND organization_id = ?"
        params.append(organization_id)
    rows = conn.execute(query + " ORDER BY id", tuple(params)).fetchall()

    matches: List[User] = [User.from_row(r) for r in rows if verify_password(password, r["password_hash"])]
    if IS_DEV:
        print(f"[LOGIN] candidates={len(rows)}, password_matches={len(matches)}")
    if not matches:
        return None
    if len(matches) > 1:
        raise ValidationError("This email belongs to several organizations; specify organization_id")
    return matches[0]
