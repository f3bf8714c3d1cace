# workboard/config.py
# Environment-aware configuration for the Workboard backend

import os
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT configuration
SECRET_KEY = os.environ.get("SECRET_KEY", "workboard-dev-secret")
ALGORITHM = "HS256"
ACCESS_TOKEN_MINUTES = int(os.environ.get("ACCESS_TOKEN_MINUTES", "60"))

# SQLite database file (relative paths resolve against this package directory)
DATABASE_PATH = os.environ.get("DATABASE_PATH", "workboard.db")

# Invitations
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173").rstrip("/")
INVITATION_EXPIRY_DAYS = int(os.environ.get("INVITATION_EXPIRY_DAYS", "7"))
INVITATION_TOKEN_RETRIES = int(os.environ.get("INVITATION_TOKEN_RETRIES", "3"))

# Push delivery (optional - push is skipped when no webhook is configured)
PUSH_WEBHOOK_URL = os.environ.get("PUSH_WEBHOOK_URL", "").strip()
PUSH_TIMEOUT_SECONDS = float(os.environ.get("PUSH_TIMEOUT_SECONDS", "5"))

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())
    else:
        CORS_ORIGINS.append(FRONTEND_URL)

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: SQLite ({DATABASE_PATH})")
print(f"[CONFIG] Access token: {ACCESS_TOKEN_MINUTES} minutes")
print(f"[CONFIG] Invitation expiry: {INVITATION_EXPIRY_DAYS} days")
print(f"[CONFIG] Push webhook: {'configured' if PUSH_WEBHOOK_URL else 'disabled'}")
