"""
workboard/authz.py

Authorization engine: a fixed decision matrix for organizations, projects,
boards, tasks, comments and workspaces.

AuthorizationPolicy is stateless and injectable. Call sites load the
resource chain (see hierarchy.py), then ask the policy. can_* methods return
booleans; require_* methods raise ForbiddenError / CrossTenantError.

The tenant check always runs first: a resource whose organization differs
from the actor's is denied as cross-tenant regardless of role.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from workboard.config import IS_DEV
from workboard.errors import CrossTenantError, ForbiddenError
from workboard.hierarchy import Chain
from workboard.models import (
    Board,
    Comment,
    Organization,
    Project,
    ProjectRole,
    Role,
    Task,
    User,
    Workspace,
    WorkspaceRole,
)
from workboard.roles import resolve_effective_role, role_at_least


class Action:
    """Action names used in decisions and logs."""
    ORG_DELETE = "organization:delete"
    ORG_UPDATE = "organization:update"
    ORG_INVITE = "organization:invite"
    ORG_MEMBER_EDIT = "organization:member_edit"
    ORG_MEMBER_REMOVE = "organization:member_remove"
    PROJECT_CREATE = "project:create"
    PROJECT_VIEW = "project:view"
    PROJECT_UPDATE = "project:update"
    PROJECT_MEMBERS = "project:members"
    BOARD_CREATE = "board:create"
    BOARD_UPDATE = "board:update"
    BOARD_MEMBERS = "board:members"
    TASK_CREATE = "task:create"
    TASK_UPDATE = "task:update"
    TASK_MOVE = "task:move"
    TASK_DELETE = "task:delete"
    COMMENT_CREATE = "comment:create"
    COMMENT_EDIT = "comment:edit"
    WORKSPACE_VIEW = "workspace:view"
    WORKSPACE_MANAGE = "workspace:manage"


class AuthorizationPolicy:
    """Single implementation of every membership and role predicate."""

    # ------------------------------------------------------------------
    # Organization-level predicates
    # ------------------------------------------------------------------
    def effective_role(self, user: User, organization: Optional[Organization]) -> Optional[str]:
        return resolve_effective_role(user, organization)

    def is_member(self, user: User, organization: Optional[Organization]) -> bool:
        return organization is not None and user.organization_id == organization.id

    def at_least(self, user: User, organization: Optional[Organization], role: str) -> bool:
        if not self.is_member(user, organization):
            return False
        return role_at_least(self.effective_role(user, organization), role)

    def is_owner(self, user: User, organization: Optional[Organization]) -> bool:
        return self.effective_role(user, organization) == Role.owner.value

    def is_unaffiliated(self, user: User) -> bool:
        return user.organization_id is None

    # ------------------------------------------------------------------
    # Project-level predicates
    # ------------------------------------------------------------------
    def is_project_member(self, user: User, organization: Organization, project: Project) -> bool:
        """
        Listed member, OR creator, OR org admin/owner.

        Org admins and owners act on every project of their organization
        without being on its member list.
        """
        if not self.is_member(user, organization) or project.organization_id != organization.id:
            return False
        return (
            user.id in project.member_ids
            or user.id == project.created_by
            or self.at_least(user, organization, Role.admin.value)
        )

    def is_project_admin(self, user: User, project: Project) -> bool:
        """Creator, or a member listed with the project admin role."""
        return user.id == project.created_by or project.member_role(user.id) == ProjectRole.admin.value

    def visible_projects(self, user: User, organization: Organization,
                         projects: Iterable[Project]) -> List[Project]:
        """
        Projects of the actor's organization that the actor may see.

        The candidate list must be fully loaded (members included); the union
        of the three visibility rules is evaluated per project before anything
        is returned.
        """
        if not self.is_member(user, organization):
            return []
        sees_all = self.at_least(user, organization, Role.admin.value)
        visible = []
        for project in projects:
            if project.organization_id != organization.id:
                continue
            if sees_all or user.id == project.created_by or user.id in project.member_ids:
                visible.append(project)
        return visible

    # ------------------------------------------------------------------
    # Action decisions
    # ------------------------------------------------------------------
    def can_create_organization(self, user: User) -> bool:
        return self.is_unaffiliated(user)

    def can_delete_organization(self, user: User, organization: Organization) -> bool:
        return self.is_owner(user, organization)

    def can_update_organization(self, user: User, organization: Organization) -> bool:
        return self.at_least(user, organization, Role.admin.value)

    def can_invite(self, user: User, organization: Organization) -> bool:
        return self.at_least(user, organization, Role.admin.value)

    def can_edit_org_member(self, user: User, organization: Organization, target: User) -> bool:
        """Name/role edits: admin or above, never on the owner's own row."""
        if not self.is_member(target, organization):
            return False
        if self.is_owner(target, organization):
            return False
        return self.at_least(user, organization, Role.admin.value)

    def can_remove_org_member(self, user: User, organization: Organization) -> bool:
        return self.is_owner(user, organization)

    def can_create_project(self, user: User, organization: Organization) -> bool:
        return self.at_least(user, organization, Role.manager.value)

    def can_update_project(self, user: User, organization: Organization, project: Project) -> bool:
        return self.is_project_admin(user, project) or self.at_least(user, organization, Role.admin.value)

    def can_manage_project_members(self, user: User, organization: Organization, project: Project) -> bool:
        return self.is_project_admin(user, project) or self.at_least(user, organization, Role.manager.value)

    def can_create_board(self, user: User, organization: Organization) -> bool:
        return self.at_least(user, organization, Role.manager.value)

    def can_update_board(self, user: User, organization: Organization, project: Project, board: Board) -> bool:
        return (
            user.id == board.owner_id
            or self.is_project_admin(user, project)
            or self.at_least(user, organization, Role.admin.value)
        )

    def can_manage_board_members(self, user: User, organization: Organization, project: Project,
                                 board: Board) -> bool:
        return (
            user.id == board.owner_id
            or self.is_project_admin(user, project)
            or self.at_least(user, organization, Role.manager.value)
        )

    def can_create_task(self, user: User, organization: Organization) -> bool:
        return self.is_member(user, organization)

    def can_update_task_content(self, user: User, organization: Organization, task: Task) -> bool:
        if self.at_least(user, organization, Role.manager.value):
            return True
        return self.is_member(user, organization) and user.id in task.assigned_to

    def can_move_task(self, user: User, organization: Organization, project: Project) -> bool:
        """Board moves and status changes are workflow operations open to any project member."""
        return self.is_project_member(user, organization, project)

    def can_delete_task(self, user: User, organization: Organization) -> bool:
        return self.at_least(user, organization, Role.manager.value)

    def can_comment(self, user: User, organization: Organization, project: Project) -> bool:
        return self.is_project_member(user, organization, project)

    def can_edit_comment(self, user: User, organization: Organization, comment: Comment) -> bool:
        return comment.author_id == user.id or self.at_least(user, organization, Role.admin.value)

    def can_view_workspace(self, user: User, organization: Organization, workspace: Workspace) -> bool:
        return (
            workspace.member_role(user.id) is not None
            or self.at_least(user, organization, Role.admin.value)
        )

    def can_manage_workspace(self, user: User, organization: Organization, workspace: Workspace) -> bool:
        return (
            workspace.member_role(user.id) == WorkspaceRole.admin.value
            or self.at_least(user, organization, Role.admin.value)
        )

    # ------------------------------------------------------------------
    # Enforcement
    # ------------------------------------------------------------------
    def require_same_tenant(self, user: User, organization: Organization, label: str = "") -> None:
        """Deny as cross-tenant when the resource's organization is not the actor's."""
        if not self.is_member(user, organization):
            print(f"[AUTHZ] Cross-tenant access denied: user_id={user.id}, "
                  f"user_org={user.organization_id}, resource_org={organization.id}"
                  f"{f', resource={label}' if label else ''}")
            raise CrossTenantError(f"Resource {label or ''} belongs to another organization".strip())

    def require_chain(self, user: User, chain: Chain) -> None:
        label = _chain_label(chain)
        self.require_same_tenant(user, chain.organization, label)

    def require(self, allowed: bool, user: User, action: str, reason: str = "") -> None:
        """Raise ForbiddenError when a decision is a deny."""
        if not allowed:
            if IS_DEV:
                print(f"[AUTHZ] Denied: action={action}, user_id={user.id}, role={user.role}"
                      f"{f', reason={reason}' if reason else ''}")
            raise ForbiddenError(reason or f"Not authorized for {action}")
        if IS_DEV:
            print(f"[AUTHZ] Granted: action={action}, user_id={user.id}")

    def require_project_member(self, user: User, chain: Chain, action: str = Action.PROJECT_VIEW) -> None:
        self.require_chain(user, chain)
        self.require(
            self.is_project_member(user, chain.organization, chain.project),
            user,
            action,
            "Not a project member",
        )


def _chain_label(chain: Chain) -> str:
    if chain.task is not None:
        return f"task:{chain.task.id}"
    if chain.board is not None:
        return f"board:{chain.board.id}"
    if chain.project is not None:
        return f"project:{chain.project.id}"
    return f"organization:{chain.organization.id}"


# Default policy instance injected by the HTTP layer
default_policy = AuthorizationPolicy()
