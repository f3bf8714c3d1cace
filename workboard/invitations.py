"""
workboard/invitations.py

Invitation ledger: tokenized, time-bounded records that admit an email address
into an organization.

One row per (organization, email). A live invitation (status "invited" and
not yet expired) blocks a second invite; an expired, declined, or accepted
invitation whose user no longer exists is recycled in place with a fresh token
and expiry. Expiry is passive: every read compares token_expires_at with now.

Functions take an open connection and do not commit; callers own the
transaction.
"""

from __future__ import annotations

import secrets
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from urllib.parse import urlencode

from workboard import config
from workboard.db import now_iso, parse_iso, to_iso, utcnow
from workboard.errors import ConflictError, InvalidInvitationError, NotFoundError, ValidationError
from workboard.hierarchy import find_user, find_user_in_org
from workboard.models import Invitation, InvitationStatus, Organization, User
from workboard.roles import ASSIGNABLE_ROLES, normalize_role


@dataclass(frozen=True)
class AcceptedInvitation:
    """Outcome of accepting a token: where the new user goes and with which role."""
    invitation_id: int
    organization_id: int
    role: str
    invited_email: str
    invited_by: int


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def generate_invitation_token() -> str:
    return secrets.token_hex(32)


def normalize_email(email: Optional[str]) -> str:
    normalized = (email or "").strip().lower()
    if not normalized or "@" not in normalized:
        raise ValidationError("A valid email address is required")
    return normalized


def invitation_link(token: str, email: str) -> str:
    return f"{config.FRONTEND_URL}/register?{urlencode({'inviteToken': token, 'email': email})}"


def is_live(invitation: Invitation, now: Optional[datetime] = None) -> bool:
    """Invited and unexpired. An invited row past its expiry is inert."""
    now = now or utcnow()
    expires_at = parse_iso(invitation.token_expires_at)
    return invitation.status == InvitationStatus.invited.value and expires_at is not None and expires_at > now


def _is_token_collision(error: sqlite3.IntegrityError) -> bool:
    return "invitation_token" in str(error)


# ---------------------------------------------------------
# Lookups
# ---------------------------------------------------------
def get_invitation(conn: sqlite3.Connection, invitation_id: int) -> Invitation:
    row = conn.execute("SELECT * FROM organization_invitations WHERE id = ?", (invitation_id,)).fetchone()
    if not row:
        raise NotFoundError("Invitation not found")
    return Invitation.from_row(row)


def find_invitation(conn: sqlite3.Connection, organization_id: int, email: str) -> Optional[Invitation]:
    row = conn.execute(
        "SELECT * FROM organization_invitations WHERE organization_id = ? AND invited_email = ?",
        (organization_id, email),
    ).fetchone()
    return Invitation.from_row(row) if row else None


def get_live_invitation(conn: sqlite3.Connection, token: str) -> Invitation:
    """
    Invitation for a token that can still be accepted.

    Raises:
        InvalidInvitationError: Unknown token, not in "invited" state, or expired
    """
    row = conn.execute(
        """
        SELECT * FROM organization_invitations
        WHERE invitation_token = ? AND status = ? AND token_expires_at > ?
        """,
        (token or "", InvitationStatus.invited.value, now_iso()),
    ).fetchone()
    if not row:
        raise InvalidInvitationError()
    return Invitation.from_row(row)


def list_invitations(conn: sqlite3.Connection, organization_id: int) -> List[Invitation]:
    rows = conn.execute(
        "SELECT * FROM organization_invitations WHERE organization_id = ? ORDER BY updated_at DESC, id DESC",
        (organization_id,),
    ).fetchall()
    return [Invitation.from_row(r) for r in rows]


# ---------------------------------------------------------
# Create or recycle
# ---------------------------------------------------------
def _ensure_recyclable(conn: sqlite3.Connection, existing: Invitation, now: datetime) -> None:
    if is_live(existing, now):
        raise ConflictError("Invitation already pending for this email")
    if existing.status == InvitationStatus.accepted.value and existing.member_id is not None:
        member = find_user(conn, existing.member_id)
        if member is not None and member.organization_id == existing.organization_id:
            raise ConflictError("Invitation already accepted")


def create_or_recycle_invitation(
    conn: sqlite3.Connection,
    organization: Organization,
    email: str,
    role: Optional[str],
    inviter: User,
) -> Invitation:
    """
    Issue an invitation for (organization, email), reusing the existing row when allowed.

    Token uniqueness violations are retried with a fresh token up to
    INVITATION_TOKEN_RETRIES times. Losing a race against a concurrent invite
    for the same email surfaces as ConflictError, leaving exactly one live row.

    Raises:
        ValidationError: Malformed email or role
        ConflictError: Email already a member, live invitation exists, or tokens exhausted
    """
    email = normalize_email(email)
    role = normalize_role(role, ASSIGNABLE_ROLES)

    if find_user_in_org(conn, email, organization.id) is not None:
        raise ConflictError("User already in organization")

    retries = max(1, config.INVITATION_TOKEN_RETRIES)
    for attempt in range(1, retries + 1):
        now = utcnow()
        token = generate_invitation_token()
        expires_at = to_iso(now + timedelta(days=config.INVITATION_EXPIRY_DAYS))
        stamp = to_iso(now)
        existing = find_invitation(conn, organization.id, email)

        try:
            if existing is None:
                cur = conn.execute(
                    """
                    INSERT INTO organization_invitations (
                        organization_id, invited_email, invited_by, member_id, status, role,
                        invitation_token, token_expires_at, accepted_at, created_at, updated_at
                    ) VALUES (?, ?, ?, NULL, ?, ?, ?, ?, NULL, ?, ?)
                    """,
                    (organization.id, email, inviter.id, InvitationStatus.invited.value, role,
                     token, expires_at, stamp, stamp),
                )
                invitation_id = cur.lastrowid
                action = "created"
            else:
                _ensure_recyclable(conn, existing, now)
                # Guard on the token we inspected so a concurrent recycle is detected
                cur = conn.execute(
                    """
                    UPDATE organization_invitations
                    SET status = ?, role = ?, invited_by = ?, invitation_token = ?,
                        token_expires_at = ?, member_id = NULL, accepted_at = NULL, updated_at = ?
                    WHERE id = ? AND invitation_token = ?
                    """,
                    (InvitationStatus.invited.value, role, inviter.id, token, expires_at, stamp,
                     existing.id, existing.invitation_token),
                )
                if cur.rowcount != 1:
                    raise ConflictError("Invitation already pending for this email")
                invitation_id = existing.id
                action = "recycled"
        except sqlite3.IntegrityError as e:
            if _is_token_collision(e):
                print(f"[INVITE] Token collision (attempt {attempt}/{retries}) for org={organization.id}")
                continue
            raise ConflictError("Invitation already pending for this email") from e

        if config.IS_DEV:
            print(f"[INVITE] Invitation {action}: id={invitation_id}, org={organization.id}, "
                  f"email={email}, role={role}, expires_at={expires_at}")
        return get_invitation(conn, invitation_id)

    print(f"[INVITE] Token retries exhausted for org={organization.id}, email={email}")
    raise ConflictError("Could not issue invitation, please retry")


# ---------------------------------------------------------
# Accept / decline
# ---------------------------------------------------------
def accept_invitation(conn: sqlite3.Connection, token: str, member_id: Optional[int] = None) -> AcceptedInvitation:
    """
    Consume a live token and report the organization and role to provision.

    Does not create the user. The registration flow calls this and creates the
    user in the same transaction, then stamps the member id with
    stamp_invitation_member(). The conditional update makes the token single use
    even when two registrations race.

    Raises:
        InvalidInvitationError: Unknown, consumed, declined or expired token
    """
    invitation = get_live_invitation(conn, token)
    stamp = now_iso()
    cur = conn.execute(
        """
        UPDATE organization_invitations
        SET status = ?, accepted_at = ?, member_id = ?, updated_at = ?
        WHERE id = ? AND status = ? AND token_expires_at > ?
        """,
        (InvitationStatus.accepted.value, stamp, member_id, stamp,
         invitation.id, InvitationStatus.invited.value, stamp),
    )
    if cur.rowcount != 1:
        raise InvalidInvitationError()

    if config.IS_DEV:
        print(f"[INVITE] Invitation accepted: id={invitation.id}, org={invitation.organization_id}, "
              f"role={invitation.role}")
    return AcceptedInvitation(
        invitation_id=invitation.id,
        organization_id=invitation.organization_id,
        role=invitation.role,
        invited_email=invitation.invited_email,
        invited_by=invitation.invited_by,
    )


def stamp_invitation_member(conn: sqlite3.Connection, invitation_id: int, member_id: int) -> None:
    conn.execute(
        "UPDATE organization_invitations SET member_id = ?, updated_at = ? WHERE id = ?",
        (member_id, now_iso(), invitation_id),
    )


def decline_invitation(conn: sqlite3.Connection, token: str) -> Invitation:
    invitation = get_live_invitation(conn, token)
    conn.execute(
        "UPDATE organization_invitations SET status = ?, updated_at = ? WHERE id = ?",
        (InvitationStatus.declined.value, now_iso(), invitation.id),
    )
    return get_invitation(conn, invitation.id)


# ---------------------------------------------------------
# Member removal support
# ---------------------------------------------------------
def purge_member_invitations(conn: sqlite3.Connection, organization_id: int, email: str,
                             member_id: Optional[int]) -> int:
    """Delete every invitation of the organization that references the user or the email."""
    cur = conn.execute(
        """
        DELETE FROM organization_invitations
        WHERE organization_id = ? AND (invited_email = ? OR member_id = ?)
        """,
        (organization_id, (email or "").strip().lower(), member_id),
    )
    return cur.rowcount


def latest_invitation_role(conn: sqlite3.Connection, organization_id: int, email: str) -> Optional[str]:
    row = conn.execute(
        """
        SELECT role FROM organization_invitations
        WHERE organization_id = ? AND invited_email = ? AND status IN (?, ?)
        ORDER BY updated_at DESC, id DESC
        LIMIT 1
        """,
        (organization_id, (email or "").strip().lower(),
         InvitationStatus.accepted.value, InvitationStatus.invited.value),
    ).fetchone()
    return row["role"] if row else None
