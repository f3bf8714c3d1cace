"""
Multi-tenant security isolation tests.

Tests that verify:
1. Organization A cannot read or mutate Organization B's resources
2. Cross-tenant access returns 403 "Access denied", never 404
3. The response is identical to a same-tenant membership denial
4. Missing resources still return 404

Run: pytest workboard/test_multitenant_security.py -v
"""

import pytest

from workboard.db import transaction
from workboard.projects import create_board, create_project
from workboard.tasks import create_comment, create_task
from workboard.workspaces import create_workspace

ACCESS_DENIED = {"detail": "Access denied", "kind": "forbidden"}


@pytest.fixture
def tenants(conn, make_org, make_user):
    org_a, owner_a = make_org("Acme")
    outsider_a = make_user(org_a, "Walt")
    org_b, owner_b = make_org("Globex")
    with transaction(conn):
        project = create_project(conn, owner_b, "Secret Plan")
        board = create_board(conn, owner_b, project.id, "Phase 1")
        task = create_task(conn, owner_b, board.id, "Classified")
        comment = create_comment(conn, owner_b, task.id, "top secret")
        workspace = create_workspace(conn, owner_b, "War room")
    with transaction(conn):
        own_project = create_project(conn, owner_a, "Acme internal")
    return {
        "owner_a": owner_a, "outsider_a": outsider_a, "org_b": org_b, "owner_b": owner_b,
        "project": project, "board": board, "task": task, "comment": comment,
        "workspace": workspace, "own_project": own_project,
    }


def _requests(t):
    return [
        ("get", f"/organizations/{t['org_b'].id}", None),
        ("patch", f"/organizations/{t['org_b'].id}", {"name": "pwned"}),
        ("delete", f"/organizations/{t['org_b'].id}", None),
        ("get", f"/organizations/{t['org_b'].id}/members", None),
        ("post", f"/organizations/{t['org_b'].id}/invitations", {"email": "spy@acme.test"}),
        ("get", f"/projects/{t['project'].id}", None),
        ("patch", f"/projects/{t['project'].id}", {"name": "pwned"}),
        ("delete", f"/projects/{t['project'].id}", None),
        ("post", f"/projects/{t['project'].id}/members", {"user_id": t["owner_a"].id}),
        ("get", f"/projects/{t['project'].id}/boards", None),
        ("post", "/boards", {"project_id": t["project"].id, "name": "mine now"}),
        ("get", f"/boards/{t['board'].id}", None),
        ("delete", f"/boards/{t['board'].id}", None),
        ("post", "/tasks", {"board_id": t["board"].id, "title": "injected"}),
        ("get", "/tasks", None),
        ("get", f"/tasks/{t['task'].id}", None),
        ("patch", f"/tasks/{t['task'].id}", {"title": "pwned"}),
        ("patch", f"/tasks/{t['task'].id}/status", {"status": "completed"}),
        ("delete", f"/tasks/{t['task'].id}", None),
        ("get", f"/tasks/{t['task'].id}/comments", None),
        ("post", f"/tasks/{t['task'].id}/comments", {"text": "hi"}),
        ("patch", f"/comments/{t['comment'].id}", {"text": "pwned"}),
        ("get", f"/workspaces/{t['workspace'].id}", None),
        ("post", f"/workspaces/{t['workspace'].id}/members", {"user_id": t["owner_a"].id}),
    ]


def test_cross_tenant_requests_are_denied_not_hidden(client, tenants, auth):
    headers = auth(tenants["owner_a"])
    for method, path, body in _requests(tenants):
        kwargs = {"headers": headers}
        if body is not None:
            kwargs["json"] = body
        if path == "/tasks":
            kwargs["params"] = {"board_id": tenants["board"].id}
        response = getattr(client, method)(path, **kwargs)
        assert response.status_code == 403, f"{method.upper()} {path} -> {response.status_code}"
        assert response.json() == ACCESS_DENIED, f"{method.upper()} {path}"
        assert "Classified" not in response.text
        assert "Globex" not in response.text


def test_cross_tenant_denial_matches_membership_denial(client, tenants, auth):
    """A same-org non-member and a foreign owner receive the same response."""
    foreign = client.get(f"/projects/{tenants['project'].id}", headers=auth(tenants["owner_a"]))
    same_org = client.get(f"/projects/{tenants['own_project'].id}", headers=auth(tenants["outsider_a"]))
    assert foreign.status_code == same_org.status_code == 403
    assert foreign.json() == same_org.json() == ACCESS_DENIED


def test_missing_resources_are_404(client, tenants, auth):
    headers = auth(tenants["owner_a"])
    assert client.get("/projects/999999", headers=headers).status_code == 404
    assert client.get("/tasks/999999", headers=headers).status_code == 404
    assert client.get("/boards/999999", headers=headers).status_code == 404


def test_listing_never_leaks_other_tenants(client, tenants, auth):
    response = client.get("/projects", headers=auth(tenants["owner_a"]))
    assert response.status_code == 200
    assert [p["name"] for p in response.json()] == ["Acme internal"]

    workspaces = client.get("/workspaces", headers=auth(tenants["owner_a"]))
    assert workspaces.json() == []


def test_cross_tenant_data_unchanged(client, conn, tenants, auth):
    client.patch(f"/tasks/{tenants['task'].id}", json={"title": "pwned"}, headers=auth(tenants["owner_a"]))
    row = conn.execute("SELECT title FROM tasks WHERE id = ?", (tenants["task"].id,)).fetchone()
    assert row["title"] == "Classified"


def test_moving_own_task_onto_foreign_board_is_denied(client, conn, tenants, auth):
    """A foreign board id must look the same as any other denial, not like a bad project."""
    with transaction(conn):
        own_board = create_board(conn, tenants["owner_a"], tenants["own_project"].id, "Todo")
        own_task = create_task(conn, tenants["owner_a"], own_board.id, "Ship it")
    headers = auth(tenants["owner_a"])

    foreign = client.post(f"/tasks/{own_task.id}/move", json={"board_id": tenants["board"].id}, headers=headers)
    assert foreign.status_code == 403
    assert foreign.json() == ACCESS_DENIED

    patched = client.patch(f"/tasks/{own_task.id}", json={"board_id": tenants["board"].id}, headers=headers)
    assert patched.status_code == 403
    assert patched.json() == ACCESS_DENIED

    missing = client.post(f"/tasks/{own_task.id}/move", json={"board_id": 999999}, headers=headers)
    assert missing.status_code == 404

    row = conn.execute("SELECT board_id FROM tasks WHERE id = ?", (own_task.id,)).fetchone()
    assert row["board_id"] == own_board.id


def test_invalid_token_rejected(client):
    response = client.get("/projects", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
