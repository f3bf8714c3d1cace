"""
workboard/schemas.py

Pydantic request schemas and response serializers for the HTTP layer.
Role and enum validation happens in the core so every caller gets the same
ValidationError; schemas only bound sizes and trim strings.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from workboard.models import Board, Comment, Invitation, Organization, Project, Task, User, Workspace


def _strip(v):
    if isinstance(v, str):
        return v.strip()
    return v


# ========================================================================
# AUTH
# ========================================================================

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=6, max_length=256)
    organization_name: Optional[str] = Field(None, max_length=200)
    invitation_token: Optional[str] = Field(None, max_length=128)

    @validator("name", "email", "organization_name", "invitation_token", pre=True)
    def trim(cls, v):
        return _strip(v)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1, max_length=256)
    organization_id: Optional[int] = None


# ========================================================================
# ORGANIZATIONS
# ========================================================================

class OrganizationCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)

    @validator("name", pre=True)
    def trim_name(cls, v):
        return _strip(v)


class OrganizationUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)


class MemberUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=120)
    role: Optional[str] = None


class InviteRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    role: Optional[str] = None


# ========================================================================
# PROJECTS / BOARDS
# ========================================================================

class ProjectCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    member_ids: List[int] = Field(default_factory=list)


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)


class MemberAddRequest(BaseModel):
    user_id: int
    role: Optional[str] = None


class MemberRoleRequest(BaseModel):
    role: str


class BoardCreateRequest(BaseModel):
    project_id: int
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    workspace_id: Optional[int] = None


class BoardUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)


# ========================================================================
# TASKS / COMMENTS
# ========================================================================

class TaskCreateRequest(BaseModel):
    board_id: int
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = Field(None, max_length=10000)
    status: str = "todo"
    priority: str = "medium"
    due_date: Optional[str] = None
    attachment: Optional[str] = Field(None, max_length=2048, description="Opaque blob store URL or key")
    assigned_to: List[int] = Field(default_factory=list)
    position: Optional[int] = None


class TaskUpdateRequest(BaseModel):
    """Only fields present in the request body are applied."""
    title: Optional[str] = Field(None, max_length=300)
    description: Optional[str] = Field(None, max_length=10000)
    status: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[str] = None
    attachment: Optional[str] = Field(None, max_length=2048)
    assigned_to: Optional[List[int]] = None
    board_id: Optional[int] = None
    position: Optional[int] = None


class TaskStatusRequest(BaseModel):
    status: str


class TaskMoveRequest(BaseModel):
    board_id: int
    position: Optional[int] = None


class CommentRequest(BaseModel):
    text: str = Field(..., max_length=2000)


# ========================================================================
# WORKSPACES / NOTIFICATIONS
# ========================================================================

class WorkspaceCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)


class WorkspaceUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)


class PushTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=4096)


# ========================================================================
# Response serializers
# ========================================================================

def user_out(user: User, effective_role: Optional[str] = None) -> Dict[str, Any]:
    """Public user view; the credential hash never leaves the backend."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "organization_id": user.organization_id,
        "role": effective_role or user.role,
    }


def organization_out(org: Organization) -> Dict[str, Any]:
    return asdict(org)


def invitation_out(invitation: Invitation, link: Optional[str] = None) -> Dict[str, Any]:
    """Invitation view for admins. The token itself is only exposed through the link."""
    data = {
        "id": invitation.id,
        "organization_id": invitation.organization_id,
        "invited_email": invitation.invited_email,
        "invited_by": invitation.invited_by,
        "member_id": invitation.member_id,
        "status": invitation.status,
        "role": invitation.role,
        "token_expires_at": invitation.token_expires_at,
        "accepted_at": invitation.accepted_at,
    }
    if link is not None:
        data["invitation_link"] = link
    return data


def project_out(project: Project) -> Dict[str, Any]:
    return asdict(project)


def board_out(board: Board) -> Dict[str, Any]:
    return asdict(board)


def task_out(task: Task) -> Dict[str, Any]:
    return asdict(task)


def comment_out(comment: Comment) -> Dict[str, Any]:
    return asdict(comment)


def workspace_out(workspace: Workspace) -> Dict[str, Any]:
    return asdict(workspace)
