"""
workboard/routes_auth.py

Registration, login and the current-user endpoint.

Registration with an invitation token runs acceptance and user creation in a
single transaction; the inviter is notified after commit.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from workboard.accounts import authenticate, register_user
from workboard.auth_context import create_access_token, get_conn, require_actor
from workboard.authz import AuthorizationPolicy
from workboard.db import transaction
from workboard.dependencies import get_dispatcher, get_policy
from workboard.hierarchy import get_organization
from workboard.models import User
from workboard.notifications import NotificationDispatcher
from workboard.schemas import LoginRequest, RegisterRequest, user_out


router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


def _effective_role(conn: sqlite3.Connection, user: User, policy: AuthorizationPolicy):
    if user.organization_id is None:
        return user.role
    return policy.effective_role(user, get_organization(conn, user.organization_id))


def _token_response(conn: sqlite3.Connection, user: User, policy: AuthorizationPolicy) -> Dict[str, Any]:
    return {
        "access_token": create_access_token(user),
        "token_type": "bearer",
        "user": user_out(user, _effective_role(conn, user, policy)),
    }


@router.post("/register")
def register(
    req: RegisterRequest,
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    """
    Create an account.

    Either organization_name (creates a new organization owned by the user)
    or invitation_token (joins the inviting organization with the invited role)
    must be supplied.

    Raises:
        400: Invalid or expired invitation, or malformed input
        409: Email already registered in that organization
    """
    print(f"[REGISTER] email={req.email!r}, via_invitation={bool(req.invitation_token)}")
    with transaction(conn):
        user = register_user(
            conn,
            name=req.name,
            email=req.email,
            password=req.password,
            organization_name=req.organization_name,
            invitation_token=req.invitation_token,
            dispatcher=dispatcher,
        )
    dispatcher.flush()
    return _token_response(conn, user, policy)


@router.post("/login")
def login(
    req: LoginRequest,
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    user = authenticate(conn, req.email, req.password, req.organization_id)
    if user is None:
        print("[LOGIN] Invalid credentials")
        raise HTTPException(status_code=401, detail="Invalid credentials")
    print(f"[LOGIN] Login succeeded: user_id={user.id}, organization_id={user.organization_id}")
    return _token_response(conn, user, policy)


@router.get("/me")
def me(
    actor: User = Depends(require_actor),
    conn: sqlite3.Connection = Depends(get_conn),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> Dict[str, Any]:
    return user_out(actor, _effective_role(conn, actor, policy))
