from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


# Enums
class Role(str, Enum):
    owner = "owner"
    admin = "admin"
    manager = "manager"
    member = "member"


class ProjectRole(str, Enum):
    admin = "admin"
    member = "member"


class WorkspaceRole(str, Enum):
    admin = "admin"
    member = "member"


class InvitationStatus(str, Enum):
    invited = "invited"
    accepted = "accepted"
    declined = "declined"


class TaskStatus(str, Enum):
    todo = "todo"
    in_progress = "in_progress"
    completed = "completed"


class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


# Records loaded from the store
@dataclass
class User:
    id: int
    name: str
    email: str
    organization_id: Optional[int]
    role: str = Role.member.value
    password_hash: str = ""
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "User":
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            organization_id=row["organization_id"],
            role=row["role"] or Role.member.value,
            password_hash=row["password_hash"],
            created_at=row["created_at"],
        )


@dataclass
class Organization:
    id: int
    name: str
    description: Optional[str]
    owner_id: Optional[int]
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Organization":
        return cls(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            owner_id=row["owner_id"],
            created_at=row["created_at"],
        )


@dataclass
class ProjectMember:
    user_id: int
    role: str = ProjectRole.member.value


@dataclass
class Project:
    id: int
    organization_id: int
    name: str
    description: Optional[str]
    created_by: int
    members: List[ProjectMember] = field(default_factory=list)
    created_at: Optional[str] = None

    @property
    def member_ids(self) -> List[int]:
        return [m.user_id for m in self.members]

    def member_role(self, user_id: int) -> Optional[str]:
        for m in self.members:
            if m.user_id == user_id:
                return m.role
        return None


@dataclass
class Board:
    id: int
    project_id: int
    name: str
    description: Optional[str]
    owner_id: int
    workspace_id: Optional[int] = None
    members: List[int] = field(default_factory=list)
    created_at: Optional[str] = None


@dataclass
class Task:
    id: int
    board_id: int
    title: str
    description: Optional[str]
    status: str
    priority: str
    due_date: Optional[str]
    attachment: Optional[str]
    position: int
    created_by: int
    assigned_to: List[int] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Comment:
    id: int
    task_id: int
    author_id: int
    text: str
    mentions: List[int] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Invitation:
    id: int
    organization_id: int
    invited_email: str
    invited_by: int
    member_id: Optional[int]
    status: str
    role: str
    invitation_token: str
    token_expires_at: str
    accepted_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Invitation":
        return cls(
            id=row["id"],
            organization_id=row["organization_id"],
            invited_email=row["invited_email"],
            invited_by=row["invited_by"],
            member_id=row["member_id"],
            status=row["status"],
            role=row["role"],
            invitation_token=row["invitation_token"],
            token_expires_at=row["token_expires_at"],
            accepted_at=row["accepted_at"],
        )


@dataclass
class WorkspaceMember:
    user_id: int
    role: str = WorkspaceRole.member.value


@dataclass
class Workspace:
    id: int
    organization_id: int
    name: str
    description: Optional[str]
    created_by: int
    members: List[WorkspaceMember] = field(default_factory=list)
    created_at: Optional[str] = None

    def member_role(self, user_id: int) -> Optional[str]:
        for m in self.members:
            if m.user_id == user_id:
                return m.role
        return None
