"""
workboard/auth_context.py

Shared authentication primitives for FastAPI dependency injection.

Contains:
- hash_password / verify_password: credential hashing (opaque to the core)
- create_access_token / verify_token: JWT issue and verification
- get_conn: per-request SQLite connection
- require_actor: resolves the bearer token to the acting User record

This module MUST NOT import workboard.main to avoid circular dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import sqlite3
from datetime import timedelta
from typing import Generator

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from workboard.config import ACCESS_TOKEN_MINUTES, ALGORITHM, IS_DEV, SECRET_KEY
from workboard.db import get_db, utcnow
from workboard.hierarchy import find_user
from workboard.models import User

# Security scheme for HTTPBearer
security = HTTPBearer()

PASSWORD_ITERATIONS = 120_000


# ---------------------------------------------------------
# Credentials
# ---------------------------------------------------------
def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PASSWORD_ITERATIONS).hex()
    return f"pbkdf2_sha256${PASSWORD_ITERATIONS}${salt}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        _, iterations, salt, digest = password_hash.split("$")
    except (AttributeError, ValueError):
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations)).hex()
    return hmac.compare_digest(candidate, digest)


# ---------------------------------------------------------
# JWT
# ---------------------------------------------------------
def create_access_token(user: User) -> str:
    now = utcnow()
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "organization_id": user.organization_id,
        "iat": now,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_MINUTES),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        HTTPException(401): If token is expired or invalid
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


# ---------------------------------------------------------
# Request dependencies
# ---------------------------------------------------------
def get_conn() -> Generator[sqlite3.Connection, None, None]:
    """One connection per request, closed when the request finishes."""
    conn = get_db()
    try:
        yield conn
    finally:
        conn.close()


def require_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    conn: sqlite3.Connection = Depends(get_conn),
) -> User:
    """
    Resolve the authenticated actor from the bearer token.

    The user record in the database is the source of truth for organization
    and role; token claims other than "sub" are never trusted.

    Raises:
        HTTPException(401): Invalid token, or the user no longer exists
    """
    payload = verify_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        print("[AUTH] Missing user_id in token payload")
        raise HTTPException(status_code=401, detail="Invalid token payload")

    try:
        user = find_user(conn, int(user_id))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    if user is None:
        print(f"[AUTH] User not found: user_id={user_id}")
        raise HTTPException(status_code=401, detail="User not found")

    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={user.id}, organization_id={user.organization_id}, role={user.role}")
    return user
