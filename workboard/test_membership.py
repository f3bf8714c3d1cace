"""
workboard/test_membership.py

Membership mutators for projects, boards, workspaces and organizations.

Tests:
1. Creator/owner protection returns Conflict for every caller
2. Duplicate adds are Conflict, never silently merged
3. Targets from another organization are rejected as cross-tenant
4. Removing an org member purges invitations and leaves stale assignees

Run:
    pytest workboard/test_membership.py -v
"""

import pytest

from workboard.accounts import register_user
from workboard.db import transaction
from workboard.errors import ConflictError, CrossTenantError, ForbiddenError, NotFoundError, ValidationError
from workboard.hierarchy import find_user, get_project, get_task
from workboard.invitations import create_or_recycle_invitation, find_invitation
from workboard.membership import (
    add_board_member,
    add_project_member,
    add_workspace_member,
    change_project_member_role,
    change_workspace_member_role,
    remove_board_member,
    remove_project_member,
    remove_workspace_member,
)
from workboard.organizations import remove_member, update_member
from workboard.projects import create_board, create_project
from workboard.tasks import create_task
from workboard.workspaces import create_workspace


@pytest.fixture
def setup(conn, make_org, make_user):
    org, owner = make_org("Acme")
    creator = make_user(org, "Cleo", role="manager")
    manager = make_user(org, "Max", role="manager")
    member = make_user(org, "Mia")
    spare = make_user(org, "Sam")
    other_org, other_owner = make_org("Globex")
    with transaction(conn):
        project = create_project(conn, creator, "Apollo", member_ids=[member.id])
    return {
        "org": org, "owner": owner, "creator": creator, "manager": manager, "member": member,
        "spare": spare, "project": project, "other_owner": other_owner, "other_org": other_org,
    }


@pytest.mark.parametrize("caller", ["owner", "creator", "manager", "member"])
def test_removing_project_creator_is_always_conflict(conn, setup, caller):
    with pytest.raises(ConflictError):
        remove_project_member(conn, setup[caller], setup["project"].id, setup["creator"].id)
    assert setup["creator"].id in get_project(conn, setup["project"].id).member_ids


@pytest.mark.parametrize("caller", ["owner", "creator", "member"])
def test_downgrading_project_creator_is_conflict(conn, setup, caller):
    with pytest.raises(ConflictError):
        change_project_member_role(conn, setup[caller], setup["project"].id, setup["creator"].id, "member")


def test_creator_is_recorded_as_project_admin(setup):
    assert setup["project"].member_role(setup["creator"].id) == "admin"
    assert setup["project"].member_role(setup["member"].id) == "member"


def test_add_remove_and_change_role(conn, setup):
    project_id = setup["project"].id
    with transaction(conn):
        project = add_project_member(conn, setup["manager"], project_id, setup["spare"].id)
    assert setup["spare"].id in project.member_ids

    with transaction(conn):
        project = change_project_member_role(conn, setup["creator"], project_id, setup["spare"].id, "admin")
    assert project.member_role(setup["spare"].id) == "admin"

    with transaction(conn):
        project = remove_project_member(conn, setup["owner"], project_id, setup["spare"].id)
    assert setup["spare"].id not in project.member_ids

    with pytest.raises(NotFoundError):
        remove_project_member(conn, setup["owner"], project_id, setup["spare"].id)


def test_duplicate_add_is_conflict(conn, setup):
    with pytest.raises(ConflictError):
        add_project_member(conn, setup["owner"], setup["project"].id, setup["member"].id)


def test_plain_member_cannot_manage_members(conn, setup):
    with pytest.raises(ForbiddenError):
        add_project_member(conn, setup["member"], setup["project"].id, setup["spare"].id)


def test_project_admin_member_can_manage_members(conn, setup):
    with transaction(conn):
        change_project_member_role(conn, setup["owner"], setup["project"].id, setup["member"].id, "admin")
    with transaction(conn):
        project = add_project_member(conn, setup["member"], setup["project"].id, setup["spare"].id)
    assert setup["spare"].id in project.member_ids


def test_invalid_project_role_rejected(conn, setup):
    with pytest.raises(ValidationError):
        add_project_member(conn, setup["owner"], setup["project"].id, setup["spare"].id, role="owner")


def test_cross_tenant_target_rejected(conn, setup):
    with pytest.raises(CrossTenantError):
        add_project_member(conn, setup["owner"], setup["project"].id, setup["other_owner"].id)
    with pytest.raises(NotFoundError):
        add_project_member(conn, setup["owner"], setup["project"].id, 999999)


def test_cross_tenant_actor_rejected(conn, setup):
    with pytest.raises(CrossTenantError):
        add_project_member(conn, setup["other_owner"], setup["project"].id, setup["spare"].id)


# ---------------------------------------------------------
# Boards
# ---------------------------------------------------------
def test_board_members_must_be_project_members(conn, setup):
    with transaction(conn):
        board = create_board(conn, setup["creator"], setup["project"].id, "Main")
    assert board.members == [setup["creator"].id]

    with pytest.raises(ValidationError):
        add_board_member(conn, setup["creator"], board.id, setup["spare"].id)

    with transaction(conn):
        board = add_board_member(conn, setup["creator"], board.id, setup["member"].id)
    assert setup["member"].id in board.members
    with pytest.raises(ConflictError):
        add_board_member(conn, setup["creator"], board.id, setup["member"].id)

    with pytest.raises(ConflictError):
        remove_board_member(conn, setup["owner"], board.id, setup["creator"].id)
    with pytest.raises(ForbiddenError):
        remove_board_member(conn, setup["member"], board.id, setup["member"].id)

    with transaction(conn):
        board = remove_board_member(conn, setup["manager"], board.id, setup["member"].id)
    assert setup["member"].id not in board.members


# ---------------------------------------------------------
# Workspaces
# ---------------------------------------------------------
def test_workspace_creator_is_protected(conn, setup):
    with transaction(conn):
        workspace = create_workspace(conn, setup["member"], "Design")
    assert workspace.member_role(setup["member"].id) == "admin"

    with transaction(conn):
        workspace = add_workspace_member(conn, setup["member"], workspace.id, setup["spare"].id)
    assert workspace.member_role(setup["spare"].id) == "member"
    with pytest.raises(ConflictError):
        add_workspace_member(conn, setup["member"], workspace.id, setup["spare"].id)

    with pytest.raises(ConflictError):
        remove_workspace_member(conn, setup["owner"], workspace.id, setup["member"].id)
    with pytest.raises(ConflictError):
        change_workspace_member_role(conn, setup["owner"], workspace.id, setup["member"].id, "member")
    with pytest.raises(ForbiddenError):
        remove_workspace_member(conn, setup["spare"], workspace.id, setup["spare"].id)

    with pytest.raises(CrossTenantError):
        add_workspace_member(conn, setup["member"], workspace.id, setup["other_owner"].id)


# ---------------------------------------------------------
# Organization members
# ---------------------------------------------------------
def test_org_member_removal_purges_invitations_and_leaves_stale_assignees(conn, setup):
    org, owner = setup["org"], setup["owner"]
    with transaction(conn):
        invitation = create_or_recycle_invitation(conn, org, "newbie@acme.test", "member", owner)
    with transaction(conn):
        newbie = register_user(conn, "Newbie", "newbie@acme.test", "secret123",
                               invitation_token=invitation.invitation_token)
        add_project_member(conn, setup["creator"], setup["project"].id, newbie.id)
        board = create_board(conn, setup["creator"], setup["project"].id, "Main")
        task = create_task(conn, setup["creator"], board.id, "Ship it", assigned_to=[newbie.id])

    with transaction(conn):
        purged = remove_member(conn, owner, org.id, newbie.id)

    assert purged == 1
    assert find_invitation(conn, org.id, "newbie@acme.test") is None
    assert find_user(conn, newbie.id) is None
    assert newbie.id not in get_project(conn, setup["project"].id).member_ids
    # Assignment is left in place as a stale id
    assert newbie.id in get_task(conn, task.id).assigned_to


def test_only_owner_removes_org_members(conn, setup, make_user):
    admin = make_user(setup["org"], "Ada", role="admin")
    with pytest.raises(ForbiddenError):
        remove_member(conn, admin, setup["org"].id, setup["spare"].id)


def test_owner_row_is_protected(conn, setup):
    with pytest.raises(ConflictError):
        remove_member(conn, setup["owner"], setup["org"].id, setup["owner"].id)
    with pytest.raises(ConflictError):
        update_member(conn, setup["owner"], setup["org"].id, setup["owner"].id, role="member")


def test_member_edits_need_admin(conn, setup, make_user):
    admin = make_user(setup["org"], "Ada", role="admin")
    with pytest.raises(ForbiddenError):
        update_member(conn, setup["manager"], setup["org"].id, setup["spare"].id, role="manager")
    with transaction(conn):
        updated = update_member(conn, admin, setup["org"].id, setup["spare"].id, name="Samuel", role="manager")
    assert updated.name == "Samuel"
    assert updated.role == "manager"
    with pytest.raises(ValidationError):
        update_member(conn, admin, setup["org"].id, setup["spare"].id, role="owner")
