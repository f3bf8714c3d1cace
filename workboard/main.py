# ---------------------------------------------------------
# workboard/main.py
# Workboard - Multi-tenant project management backend
#
# Run: uvicorn workboard.main:app --reload (from repo root)
#
# - FastAPI + SQLite
# - /auth          : register (new org or invitation token), login, me
# - /organizations : org CRUD, members, invitations
# - /invitations   : invitation lookup and decline by token
# - /projects      : projects and project members
# - /boards        : boards and board members
# - /tasks         : tasks, status, moves, comments
# - /workspaces    : workspaces, members, board placement
# - /notifications : in-app inbox and push tokens
# ---------------------------------------------------------

from __future__ import annotations

from typing import Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from workboard.config import CORS_ORIGINS, IS_DEV, IS_PROD
from workboard.db import init_db
from workboard.errors import ForbiddenError, WorkboardError, public_detail, public_kind
from workboard import (
    routes_auth,
    routes_notifications,
    routes_organizations,
    routes_projects,
    routes_tasks,
    routes_workspaces,
)


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
app = FastAPI(title="Workboard Backend", version="0.1")

# CORS configuration from config module
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

init_db()


# ---------------------------------------------------------
# Error mapping
# ---------------------------------------------------------
@app.exception_handler(WorkboardError)
def workboard_error_handler(request: Request, exc: WorkboardError) -> JSONResponse:
    if isinstance(exc, ForbiddenError):
        # Internal kind (cross_tenant vs forbidden) is logged, never returned
        print(f"[AUTHZ] {request.method} {request.url.path} denied: kind={exc.kind}, reason={exc.message}")
    elif IS_DEV:
        print(f"[ERROR] {request.method} {request.url.path}: kind={exc.kind}, detail={exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": public_detail(exc), "kind": public_kind(exc)},
    )


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


app.include_router(routes_auth.router)
app.include_router(routes_organizations.router)
app.include_router(routes_organizations.invitations_router)
app.include_router(routes_projects.router)
app.include_router(routes_projects.boards_router)
app.include_router(routes_tasks.router)
app.include_router(routes_tasks.comments_router)
app.include_router(routes_workspaces.router)
app.include_router(routes_notifications.router)
