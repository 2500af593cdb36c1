"""
sitebid/test_api.py

HTTP-level tests: routing, status-code mapping of typed errors, request
validation and the end-to-end bidding flow.

Run:
    pytest sitebid/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from conftest import add_user
from sitebid.auth_context import create_access_token
from sitebid.db import connect_sqlite
from sitebid.dependencies import get_db
from sitebid.main import app


@pytest.fixture
def client(db_path):
    def override_get_db():
        conn = connect_sqlite(db_path)
        try:
            yield conn
        finally:
            conn.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(caller):
    token = create_access_token(caller.user_id, caller.role)
    return {"Authorization": f"Bearer {token}"}


PROJECT_BODY = {
    "title": "Roof replacement",
    "description": "Tear off and replace asphalt shingles on a 2,000 sq ft roof.",
    "location": "Boise, ID",
    "category": "roofing",
    "budget": 14000,
    "status": "open",
}

BID_BODY = {
    "price": 12500,
    "estimated_duration": 5,
    "description": "Architectural shingles, new underlayment and flashing.",
}


def create_project(client, caller, **overrides):
    response = client.post("/api/projects", json={**PROJECT_BODY, **overrides}, headers=auth(caller))
    assert response.status_code == 201, response.text
    return response.json()


def submit_bid(client, caller, project_id):
    response = client.post("/api/bids", json={**BID_BODY, "project_id": project_id}, headers=auth(caller))
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


# ============================================================================
# Identity
# ============================================================================

def test_missing_token_is_401(client):
    response = client.get("/api/projects")
    assert response.status_code == 401
    assert response.json()["error"] == "InvalidAssertion"


def test_garbage_token_is_401(client):
    response = client.get("/api/projects", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_inactive_account_is_403(client, repo):
    ghost = add_user(repo, "homeowner", is_active=False)
    response = client.get("/api/auth/profile", headers=auth(ghost))
    assert response.status_code == 403
    assert response.json()["error"] == "InactiveAccount"


def test_register_login_profile(client):
    body = {
        "email": "  Sam@Example.com ",
        "password": "long-enough-pw",
        "first_name": "Sam",
        "last_name": "Owner",
        "role": "homeowner",
    }
    response = client.post("/api/auth/register", json=body)
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["user"]["email"] == "sam@example.com"
    assert "password_hash" not in data["user"]

    assert client.post("/api/auth/register", json=body).status_code == 409

    response = client.post("/api/auth/login", json={"email": "sam@example.com", "password": "long-enough-pw"})
    assert response.status_code == 200
    token = response.json()["token"]

    response = client.put(
        "/api/auth/profile",
        json={"bio": "First home renovation"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 200
    assert response.json()["bio"] == "First home renovation"

    bad = client.post("/api/auth/login", json={"email": "sam@example.com", "password": "wrong-password"})
    assert bad.status_code == 401


def test_register_validation(client):
    response = client.post("/api/auth/register", json={
        "email": "not-an-email",
        "password": "short",
        "first_name": "A",
        "last_name": "B",
        "role": "admin",
    })
    assert response.status_code == 422


def test_profile_rejects_unknown_fields(client, repo):
    user = add_user(repo, "contractor")
    response = client.put("/api/auth/profile", json={"role": "project_manager"}, headers=auth(user))
    assert response.status_code == 422


# ============================================================================
# Projects
# ============================================================================

def test_contractor_create_project_403(client, repo):
    contractor = add_user(repo, "contractor")
    response = client.post("/api/projects", json=PROJECT_BODY, headers=auth(contractor))
    assert response.status_code == 403
    assert response.json() == {
        "error": "RoleNotPermitted",
        "detail": "Your role is not permitted to perform this action",
    }


def test_project_update_rejects_protected_fields(client, repo):
    owner = add_user(repo, "homeowner")
    project = create_project(client, owner)
    for body in ({"accepted_bid_id": "x"}, {"owner_id": "someone"}, {"title": None}):
        response = client.put(f"/api/projects/{project['id']}", json=body, headers=auth(owner))
        assert response.status_code == 422, body


def test_project_not_found_404(client, repo):
    owner = add_user(repo, "homeowner")
    response = client.get("/api/projects/missing", headers=auth(owner))
    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"


def test_project_visibility_and_listing(client, repo):
    owner = add_user(repo, "homeowner")
    contractor = add_user(repo, "contractor")
    draft = create_project(client, owner, status="draft")

    assert client.get(f"/api/projects/{draft['id']}", headers=auth(contractor)).status_code == 403

    response = client.put(f"/api/projects/{draft['id']}/status", json={"status": "open"}, headers=auth(owner))
    assert response.status_code == 200
    assert client.get(f"/api/projects/{draft['id']}", headers=auth(contractor)).status_code == 200

    listing = client.get("/api/projects", headers=auth(contractor)).json()
    assert listing["total"] == 1
    assert listing["items"][0]["id"] == draft["id"]


def test_invalid_project_transition_409(client, repo):
    owner = add_user(repo, "homeowner")
    project = create_project(client, owner, status="draft")
    response = client.put(f"/api/projects/{project['id']}/status", json={"status": "completed"}, headers=auth(owner))
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidTransition"


def test_delete_project(client, repo):
    owner = add_user(repo, "homeowner")
    project = create_project(client, owner)
    assert client.delete(f"/api/projects/{project['id']}", headers=auth(owner)).status_code == 200
    assert client.get(f"/api/projects/{project['id']}", headers=auth(owner)).status_code == 404


# ============================================================================
# Bids
# ============================================================================

def test_bidding_flow(client, repo):
    owner = add_user(repo, "homeowner")
    first = add_user(repo, "contractor")
    second = add_user(repo, "contractor")
    project = create_project(client, owner)

    bid_a = submit_bid(client, first, project["id"])
    bid_b = submit_bid(client, second, project["id"])

    duplicate = client.post("/api/bids", json={**BID_BODY, "project_id": project["id"]}, headers=auth(first))
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "DuplicateBid"

    # The bidder cannot accept their own bid
    response = client.put(f"/api/bids/{bid_a['id']}/status", json={"status": "accepted"}, headers=auth(first))
    assert response.status_code == 403
    assert response.json()["error"] == "NotOwner"

    response = client.put(f"/api/bids/{bid_a['id']}/status", json={"status": "accepted"}, headers=auth(owner))
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    refreshed = client.get(f"/api/projects/{project['id']}", headers=auth(owner)).json()
    assert refreshed["status"] == "in_progress"
    assert refreshed["accepted_bid_id"] == bid_a["id"]

    loser = client.get(f"/api/bids/{bid_b['id']}", headers=auth(second)).json()
    assert loser["status"] == "rejected"

    # Project is no longer open for new bids
    late = add_user(repo, "contractor")
    response = client.post("/api/bids", json={**BID_BODY, "project_id": project["id"]}, headers=auth(late))
    assert response.status_code == 400
    assert response.json()["error"] == "ResourceNotOpen"


def test_bid_validation(client, repo):
    contractor = add_user(repo, "contractor")
    owner = add_user(repo, "homeowner")
    project = create_project(client, owner)
    body = {**BID_BODY, "project_id": project["id"], "estimated_duration": 0}
    assert client.post("/api/bids", json=body, headers=auth(contractor)).status_code == 422
    body = {**BID_BODY, "project_id": project["id"], "contractor_id": "someone-else"}
    assert client.post("/api/bids", json=body, headers=auth(contractor)).status_code == 422
    # NUMERIC(10, 2): at most two decimals and eight whole digits
    for price in ("18500.555", "123456789.12"):
        body = {**BID_BODY, "project_id": project["id"], "price": price}
        assert client.post("/api/bids", json=body, headers=auth(contractor)).status_code == 422


def test_list_bids_for_owner(client, repo):
    owner = add_user(repo, "homeowner")
    contractor = add_user(repo, "contractor")
    project = create_project(client, owner)
    bid = submit_bid(client, contractor, project["id"])

    listing = client.get("/api/bids", headers=auth(owner)).json()
    assert [b["id"] for b in listing["items"]] == [bid["id"]]


# ============================================================================
# Milestones
# ============================================================================

def test_milestone_flow(client, repo):
    owner = add_user(repo, "homeowner")
    crew = add_user(repo, "contractor")
    project = create_project(client, owner)

    response = client.post("/api/milestones", json={
        "project_id": project["id"],
        "title": "Tear-off",
        "order": 1,
        "assignee_id": crew.user_id,
        "payment_amount": 4000,
    }, headers=auth(owner))
    assert response.status_code == 201, response.text
    milestone = response.json()
    assert milestone["status"] == "pending"
    assert milestone["actual_start_date"] is None

    response = client.put(f"/api/milestones/{milestone['id']}", json={"status": "in_progress"}, headers=auth(crew))
    assert response.status_code == 200
    assert response.json()["actual_start_date"] is not None

    response = client.put(f"/api/milestones/{milestone['id']}", json={"is_paid": True}, headers=auth(crew))
    assert response.status_code == 403
    assert response.json()["error"] == "NotOwner"

    response = client.put(f"/api/milestones/{milestone['id']}/status", json={"status": "completed"}, headers=auth(crew))
    assert response.status_code == 200
    assert response.json()["actual_end_date"] is not None

    again = client.put(f"/api/milestones/{milestone['id']}/status", json={"status": "completed"}, headers=auth(crew))
    assert again.status_code == 409

    listing = client.get(f"/api/milestones/project/{project['id']}", headers=auth(owner)).json()
    assert listing["total"] == 1

    assert client.delete(f"/api/milestones/{milestone['id']}", headers=auth(owner)).status_code == 200


def test_contractors_directory(client, repo):
    owner = add_user(repo, "homeowner")
    contractor = add_user(repo, "contractor", specializations=["roofing"])

    listing = client.get("/api/users/contractors", headers=auth(owner)).json()
    assert [u["id"] for u in listing["items"]] == [contractor.user_id]

    response = client.get(f"/api/users/{contractor.user_id}", headers=auth(owner))
    assert response.status_code == 200
    assert response.json()["specializations"] == ["roofing"]
