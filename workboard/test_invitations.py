"""
workboard/test_invitations.py

Invitation ledger: create, duplicate rejection, recycling, expiry, token
collisions and single-use acceptance.

Run:
    pytest workboard/test_invitations.py -v
"""

import threading
from datetime import timedelta

import pytest

from workboard import invitations
from workboard.accounts import register_user
from workboard.db import get_db, to_iso, transaction, utcnow
from workboard.errors import ConflictError, InvalidInvitationError, ValidationError
from workboard.invitations import (
    accept_invitation,
    create_or_recycle_invitation,
    decline_invitation,
    find_invitation,
    get_live_invitation,
    invitation_link,
)


def _expire(conn, invitation):
    conn.execute(
        "UPDATE organization_invitations SET token_expires_at = ? WHERE id = ?",
        (to_iso(utcnow() - timedelta(minutes=1)), invitation.id),
    )
    conn.commit()


def _live_rows(conn, org_id, email):
    return conn.execute(
        "SELECT COUNT(*) AS n FROM organization_invitations WHERE organization_id = ? AND invited_email = ? "
        "AND status = 'invited' AND token_expires_at > ?",
        (org_id, email, to_iso(utcnow())),
    ).fetchone()["n"]


def test_create_normalizes_email_and_sets_expiry(conn, make_org):
    org, owner = make_org("Acme")
    with transaction(conn):
        inv = create_or_recycle_invitation(conn, org, "  Bob@X.com ", "manager", owner)

    assert inv.invited_email == "bob@x.com"
    assert inv.status == "invited"
    assert inv.role == "manager"
    assert inv.invited_by == owner.id
    assert inv.member_id is None
    assert len(inv.invitation_token) == 64
    remaining = invitations.parse_iso(inv.token_expires_at) - utcnow()
    assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)


def test_role_defaults_to_member_and_rejects_unknown(conn, make_org):
    org, owner = make_org("Acme")
    with transaction(conn):
        inv = create_or_recycle_invitation(conn, org, "amy@x.com", None, owner)
    assert inv.role == "member"

    with pytest.raises(ValidationError):
        create_or_recycle_invitation(conn, org, "zed@x.com", "superuser", owner)
    with pytest.raises(ValidationError):
        create_or_recycle_invitation(conn, org, "zed@x.com", "owner", owner)
    with pytest.raises(ValidationError):
        create_or_recycle_invitation(conn, org, "not-an-email", "member", owner)


def test_second_invite_while_live_is_rejected_and_first_unchanged(conn, make_org):
    org, owner = make_org("Acme")
    with transaction(conn):
        first = create_or_recycle_invitation(conn, org, "bob@x.com", "manager", owner)

    with pytest.raises(ConflictError):
        with transaction(conn):
            create_or_recycle_invitation(conn, org, "BOB@x.com", "admin", owner)

    current = find_invitation(conn, org.id, "bob@x.com")
    assert current.id == first.id
    assert current.invitation_token == first.invitation_token
    assert current.role == "manager"
    assert _live_rows(conn, org.id, "bob@x.com") == 1


def test_declined_invitation_is_recycled_and_old_token_dies(conn, make_org):
    org, owner = make_org("Acme")
    with transaction(conn):
        first = create_or_recycle_invitation(conn, org, "bob@x.com", "member", owner)
    with transaction(conn):
        decline_invitation(conn, first.invitation_token)

    with transaction(conn):
        second = create_or_recycle_invitation(conn, org, "bob@x.com", "manager", owner)

    assert second.id == first.id
    assert second.invitation_token != first.invitation_token
    assert second.status == "invited"
    assert second.role == "manager"

    with pytest.raises(InvalidInvitationError):
        accept_invitation(conn, first.invitation_token)
    accepted = accept_invitation(conn, second.invitation_token)
    assert accepted.organization_id == org.id
    assert accepted.role == "manager"


def test_expired_invitation_is_recycled(conn, make_org):
    org, owner = make_org("Acme")
    with transaction(conn):
        first = create_or_recycle_invitation(conn, org, "bob@x.com", "member", owner)
    _expire(conn, first)

    with transaction(conn):
        second = create_or_recycle_invitation(conn, org, "bob@x.com", "member", owner)
    assert second.id == first.id
    assert second.invitation_token != first.invitation_token
    assert invitations.is_live(second)


def test_accepting_expired_token_fails_even_when_still_invited(conn, make_org):
    org, owner = make_org("Acme")
    with transaction(conn):
        inv = create_or_recycle_invitation(conn, org, "bob@x.com", "member", owner)
    _expire(conn, inv)

    assert find_invitation(conn, org.id, "bob@x.com").status == "invited"
    with pytest.raises(InvalidInvitationError):
        accept_invitation(conn, inv.invitation_token)
    with pytest.raises(InvalidInvitationError):
        get_live_invitation(conn, inv.invitation_token)


def test_token_is_single_use(conn, make_org):
    org, owner = make_org("Acme")
    with transaction(conn):
        inv = create_or_recycle_invitation(conn, org, "bob@x.com", "admin", owner)

    with transaction(conn):
        accepted = accept_invitation(conn, inv.invitation_token, member_id=None)
    assert accepted.role == "admin"
    assert find_invitation(conn, org.id, "bob@x.com").status == "accepted"
    assert find_invitation(conn, org.id, "bob@x.com").accepted_at is not None

    with pytest.raises(InvalidInvitationError):
        accept_invitation(conn, inv.invitation_token)
    with pytest.raises(InvalidInvitationError):
        accept_invitation(conn, "does-not-exist")


def test_accepted_invitation_recycled_once_its_user_is_gone(conn, make_org):
    org, owner = make_org("Acme")
    with transaction(conn):
        inv = create_or_recycle_invitation(conn, org, "bob@x.com", "manager", owner)
    with transaction(conn):
        bob = register_user(conn, "Bob", "bob@x.com", "secret123", invitation_token=inv.invitation_token)

    # While Bob exists in the org the email cannot be invited again
    with pytest.raises(ConflictError):
        create_or_recycle_invitation(conn, org, "bob@x.com", "member", owner)

    conn.execute("DELETE FROM users WHERE id = ?", (bob.id,))
    conn.commit()

    with transaction(conn):
        again = create_or_recycle_invitation(conn, org, "bob@x.com", "member", owner)
    assert again.id == inv.id
    assert again.status == "invited"
    assert again.member_id is None
    assert again.accepted_at is None


def test_token_collision_is_retried(conn, make_org, monkeypatch):
    org, owner = make_org("Acme")
    with transaction(conn):
        taken = create_or_recycle_invitation(conn, org, "amy@x.com", "member", owner)

    tokens = iter([taken.invitation_token, "f" * 64])
    monkeypatch.setattr(invitations, "generate_invitation_token", lambda: next(tokens))

    with transaction(conn):
        inv = create_or_recycle_invitation(conn, org, "bob@x.com", "member", owner)
    assert inv.invitation_token == "f" * 64


def test_token_collision_exhaustion_surfaces_conflict(conn, make_org, monkeypatch):
    org, owner = make_org("Acme")
    with transaction(conn):
        taken = create_or_recycle_invitation(conn, org, "amy@x.com", "member", owner)

    calls = []

    def colliding_token():
        calls.append(1)
        return taken.invitation_token

    monkeypatch.setattr(invitations, "generate_invitation_token", colliding_token)

    with pytest.raises(ConflictError):
        with transaction(conn):
            create_or_recycle_invitation(conn, org, "bob@x.com", "member", owner)
    assert len(calls) == invitations.config.INVITATION_TOKEN_RETRIES
    assert find_invitation(conn, org.id, "bob@x.com") is None


def test_invitation_link_carries_token_and_email(conn, make_org):
    link = invitation_link("abc123", "bob@x.com")
    assert link.startswith(invitations.config.FRONTEND_URL + "/register?")
    assert "inviteToken=abc123" in link
    assert "email=bob%40x.com" in link


def test_invite_endpoint_requires_admin(client, conn, make_org, make_user, auth):
    org, owner = make_org("Acme")
    manager = make_user(org, "Mo", role="manager")
    admin = make_user(org, "Ada", role="admin")

    denied = client.post(f"/organizations/{org.id}/invitations", json={"email": "bob@x.com"}, headers=auth(manager))
    assert denied.status_code == 403
    assert denied.json()["detail"] == "Access denied"

    created = client.post(
        f"/organizations/{org.id}/invitations",
        json={"email": "bob@x.com", "role": "manager"},
        headers=auth(admin),
    )
    assert created.status_code == 200
    body = created.json()
    assert body["status"] == "invited"
    assert "invitation_token" not in body
    assert "inviteToken=" in body["invitation_link"]

    duplicate = client.post(f"/organizations/{org.id}/invitations", json={"email": "bob@x.com"}, headers=auth(owner))
    assert duplicate.status_code == 409

    bad_role = client.post(
        f"/organizations/{org.id}/invitations",
        json={"email": "cy@x.com", "role": "emperor"},
        headers=auth(owner),
    )
    assert bad_role.status_code == 400
    assert bad_role.json()["kind"] == "validation_error"


def test_lookup_and_decline_by_token(client, conn, make_org):
    org, owner = make_org("Acme")
    with transaction(conn):
        inv = create_or_recycle_invitation(conn, org, "bob@x.com", "manager", owner)

    looked_up = client.get(f"/invitations/{inv.invitation_token}")
    assert looked_up.status_code == 200
    assert looked_up.json()["organization_name"] == "Acme"
    assert looked_up.json()["role"] == "manager"

    declined = client.post(f"/invitations/{inv.invitation_token}/decline")
    assert declined.status_code == 200
    assert declined.json()["status"] == "declined"

    gone = client.get(f"/invitations/{inv.invitation_token}")
    assert gone.status_code == 400
    assert gone.json()["kind"] == "invalid_or_expired_invitation"


def test_concurrent_invites_leave_one_live_invitation(db_path, conn, make_org):
    org, owner = make_org("Acme")
    barrier = threading.Barrier(2)
    outcomes = []

    def invite():
        worker_conn = get_db()
        try:
            barrier.wait(timeout=5)
            with transaction(worker_conn):
                inv = create_or_recycle_invitation(worker_conn, org, "bob@x.com", "member", owner)
            outcomes.append(("ok", inv.id))
        except ConflictError as e:
            outcomes.append(("conflict", e.message))
        finally:
            worker_conn.close()

    workers = [threading.Thread(target=invite) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=30)

    assert sorted(kind for kind, _ in outcomes) == ["conflict", "ok"]
    assert ("conflict", "Invitation already pending for this email") in outcomes
    assert _live_rows(conn, org.id, "bob@x.com") == 1


def test_stale_insert_loses_to_committed_invite(db_path, conn, make_org, monkeypatch):
    """The second writer read before the first committed, so it tries a fresh INSERT."""
    org, owner = make_org("Acme")
    with transaction(conn):
        winner = create_or_recycle_invitation(conn, org, "bob@x.com", "member", owner)

    monkeypatch.setattr(invitations, "find_invitation", lambda *args: None)
    other = get_db()
    try:
        with pytest.raises(ConflictError, match="already pending"):
            with transaction(other):
                create_or_recycle_invitation(other, org, "bob@x.com", "admin", owner)
    finally:
        other.close()

    assert _live_rows(conn, org.id, "bob@x.com") == 1
    row = conn.execute(
        "SELECT invitation_token, role FROM organization_invitations WHERE id = ?", (winner.id,)
    ).fetchone()
    assert row["invitation_token"] == winner.invitation_token
    assert row["role"] == "member"


def test_concurrent_recycle_of_expired_invitation_has_one_winner(db_path, conn, make_org, monkeypatch):
    org, owner = make_org("Acme")
    with transaction(conn):
        expired = create_or_recycle_invitation(conn, org, "bob@x.com", "member", owner)
    _expire(conn, expired)

    other = get_db()
    try:
        stale = find_invitation(other, org.id, "bob@x.com")
        with transaction(conn):
            winner = create_or_recycle_invitation(conn, org, "bob@x.com", "manager", owner)

        # The loser still acts on what it read before the winner committed
        monkeypatch.setattr(invitations, "find_invitation", lambda *args: stale)
        with pytest.raises(ConflictError, match="already pending"):
            with transaction(other):
                create_or_recycle_invitation(other, org, "bob@x.com", "admin", owner)
    finally:
        other.close()

    current = get_live_invitation(conn, winner.invitation_token)
    assert current.id == expired.id
    assert current.role == "manager"
    assert _live_rows(conn, org.id, "bob@x.com") == 1
