"""
sitebid/test_service.py

Service-level tests: duplicate-bid prevention, concurrent acceptance,
role-filtered listings, ownership rules, accounts and milestones.

Run:
    pytest sitebid/test_service.py -v
"""

import threading
from decimal import Decimal

import pytest

from conftest import TEST_PASSWORD, TickingClock, add_user, bid_fields, project_fields
from sitebid.db import connect_sqlite
from sitebid.errors import AuthError, Conflict, NotFound, WorkflowError
from sitebid.models import BidStatus, MilestoneStatus, ProjectStatus
from sitebid.repository import Repository
from sitebid.service import MarketplaceService


# ============================================================================
# Duplicate bids
# ============================================================================

def test_second_live_bid_is_duplicate(service, contractor, open_project):
    service.submit_bid(contractor, open_project.id, bid_fields())

    with pytest.raises(AuthError) as exc_info:
        service.submit_bid(contractor, open_project.id, bid_fields(price="17000.00"))
    assert exc_info.value.tag == "DuplicateBid"


def test_rebid_after_withdrawal(service, contractor, open_project):
    first = service.submit_bid(contractor, open_project.id, bid_fields())
    service.set_bid_status(contractor, first.id, BidStatus.withdrawn)

    second = service.submit_bid(contractor, open_project.id, bid_fields(price="17000.00"))
    assert second.id != first.id
    assert second.status == BidStatus.pending
    assert str(second.price) == "17000.00"


def test_bid_price_keeps_cents(service, contractor, open_project):
    bid = service.submit_bid(contractor, open_project.id, bid_fields(price="18500.55"))
    assert bid.price == Decimal("18500.55")
    assert str(service.get_bid(contractor, bid.id).price) == "18500.55"


def test_rejected_bid_still_blocks_rebid(service, homeowner, contractor, open_project):
    bid = service.submit_bid(contractor, open_project.id, bid_fields())
    service.set_bid_status(homeowner, bid.id, BidStatus.rejected)

    with pytest.raises(AuthError) as exc_info:
        service.submit_bid(contractor, open_project.id, bid_fields())
    assert exc_info.value.tag == "DuplicateBid"


def test_unique_index_reports_duplicate_bid(repo, service, contractor, open_project, monkeypatch):
    service.submit_bid(contractor, open_project.id, bid_fields())

    # Simulate a concurrent submission that passed the pre-check
    monkeypatch.setattr(repo, "has_live_bid", lambda project_id, contractor_id: False)

    with pytest.raises(WorkflowError) as exc_info:
        service.submit_bid(contractor, open_project.id, bid_fields())
    assert exc_info.value.tag == "DuplicateBid"
    assert len(repo.list_bids(project_id=open_project.id)) == 1


def test_bid_on_draft_project_not_open(service, homeowner, contractor):
    draft = service.create_project(homeowner, project_fields(status="draft"))
    with pytest.raises(AuthError) as exc_info:
        service.submit_bid(contractor, draft.id, bid_fields())
    assert exc_info.value.tag == "ResourceNotOpen"


def test_homeowner_cannot_bid(service, homeowner, open_project):
    with pytest.raises(AuthError) as exc_info:
        service.submit_bid(homeowner, open_project.id, bid_fields())
    assert exc_info.value.tag == "RoleNotPermitted"


def test_bid_on_missing_project(service, contractor):
    with pytest.raises(NotFound):
        service.submit_bid(contractor, "does-not-exist", bid_fields())


# ============================================================================
# Concurrent acceptance
# ============================================================================

def test_concurrent_accepts_exactly_one_wins(db_path, service, homeowner, open_project):
    contractors = [add_user(service.repo, "contractor") for _ in range(2)]
    bids = [service.submit_bid(c, open_project.id, bid_fields()) for c in contractors]

    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def accept(bid_id):
        conn = connect_sqlite(db_path)
        try:
            worker = MarketplaceService(Repository(conn), clock=TickingClock())
            barrier.wait()
            try:
                worker.set_bid_status(homeowner, bid_id, BidStatus.accepted)
                result = "accepted"
            except WorkflowError as exc:
                result = exc.tag
        finally:
            conn.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=accept, args=(b.id,)) for b in bids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["ProjectAlreadyCommitted", "accepted"]

    project = service.repo.get_project(open_project.id)
    assert project.status == ProjectStatus.in_progress
    winners = [b for b in service.repo.list_bids(project_id=open_project.id) if b.status == BidStatus.accepted]
    assert len(winners) == 1
    assert project.accepted_bid_id == winners[0].id


def test_manager_can_accept_for_owner(service, manager, contractor, open_project):
    bid = service.submit_bid(contractor, open_project.id, bid_fields())
    accepted = service.set_bid_status(manager, bid.id, BidStatus.accepted)
    assert accepted.status == BidStatus.accepted


def test_other_homeowner_cannot_accept(repo, service, contractor, open_project):
    stranger = add_user(repo, "homeowner")
    bid = service.submit_bid(contractor, open_project.id, bid_fields())
    with pytest.raises(AuthError) as exc_info:
        service.set_bid_status(stranger, bid.id, BidStatus.accepted)
    assert exc_info.value.tag == "NotOwner"


# ============================================================================
# Projects
# ============================================================================

def test_contractor_cannot_create_project(service, contractor):
    with pytest.raises(AuthError) as exc_info:
        service.create_project(contractor, project_fields())
    assert exc_info.value.tag == "RoleNotPermitted"


def test_new_project_cannot_skip_to_in_progress(service, homeowner):
    with pytest.raises(WorkflowError) as exc_info:
        service.create_project(homeowner, project_fields(status="in_progress"))
    assert exc_info.value.tag == "InvalidTransition"
    assert service.list_projects(homeowner) == []


def test_contractor_sees_project_once_open(service, homeowner, contractor):
    draft = service.create_project(homeowner, project_fields(status="draft"))
    with pytest.raises(AuthError) as exc_info:
        service.get_project(contractor, draft.id)
    assert exc_info.value.tag == "NotOwner"

    service.set_project_status(homeowner, draft.id, ProjectStatus.open)
    assert service.get_project(contractor, draft.id).status == ProjectStatus.open


def test_non_owner_update_denied_manager_allowed(repo, service, manager, open_project):
    stranger = add_user(repo, "homeowner")
    with pytest.raises(AuthError) as exc_info:
        service.update_project(stranger, open_project.id, {"title": "Hijacked"})
    assert exc_info.value.tag == "NotOwner"

    updated = service.update_project(manager, open_project.id, {"title": "Kitchen + pantry"})
    assert updated.title == "Kitchen + pantry"


def test_update_project_status_goes_through_workflow(service, homeowner, open_project):
    with pytest.raises(WorkflowError) as exc_info:
        service.update_project(homeowner, open_project.id, {"status": ProjectStatus.completed})
    assert exc_info.value.tag == "InvalidTransition"

    # Same status is a no-op, other fields still apply
    updated = service.update_project(
        homeowner, open_project.id, {"status": ProjectStatus.open, "location": "Salem, OR"}
    )
    assert updated.status == ProjectStatus.open
    assert updated.location == "Salem, OR"


def test_set_project_status_same_status_rejected(service, homeowner, open_project):
    with pytest.raises(WorkflowError):
        service.set_project_status(homeowner, open_project.id, ProjectStatus.open)


def test_list_projects_by_role(repo, service, homeowner, contractor, manager):
    other = add_user(repo, "homeowner")
    mine_draft = service.create_project(homeowner, project_fields(status="draft"))
    mine_open = service.create_project(homeowner, project_fields())
    theirs_open = service.create_project(other, project_fields(category="roofing"))

    own = service.list_projects(homeowner)
    # Newest first
    assert [p.id for p in own] == [mine_open.id, mine_draft.id]

    visible = service.list_projects(contractor)
    assert {p.id for p in visible} == {mine_open.id, theirs_open.id}

    assert len(service.list_projects(manager)) == 3


def test_inactive_owner_hides_project(repo, service, contractor, clock):
    owner = add_user(repo, "homeowner")
    project = service.create_project(owner, project_fields())
    with repo.transaction():
        repo.update_user(owner.user_id, {"is_active": False}, clock())

    with pytest.raises(NotFound):
        service.get_project(contractor, project.id)
    visible = service.list_projects(contractor)
    assert project.id not in {p.id for p in visible}


def test_deleted_project_children_not_found(service, homeowner, contractor, open_project):
    bid = service.submit_bid(contractor, open_project.id, bid_fields())
    service.delete_project(homeowner, open_project.id)

    with pytest.raises(NotFound):
        service.get_project(homeowner, open_project.id)
    with pytest.raises(NotFound):
        service.get_bid(contractor, bid.id)


# ============================================================================
# Bid reads
# ============================================================================

def test_list_bids_by_role(repo, service, homeowner, manager, open_project):
    alice = add_user(repo, "contractor")
    bob = add_user(repo, "contractor")
    a_bid = service.submit_bid(alice, open_project.id, bid_fields())
    b_bid = service.submit_bid(bob, open_project.id, bid_fields())

    assert [b.id for b in service.list_bids(alice)] == [a_bid.id]
    assert {b.id for b in service.list_bids(homeowner)} == {a_bid.id, b_bid.id}
    assert len(service.list_bids(manager)) == 2

    stranger = add_user(repo, "homeowner")
    assert service.list_bids(stranger) == []

    with pytest.raises(AuthError):
        service.get_bid(bob, a_bid.id)


# ============================================================================
# Milestones
# ============================================================================

def test_milestones_listed_in_order(service, homeowner, open_project):
    service.create_milestone(homeowner, open_project.id, {"title": "Finish", "order": 3})
    service.create_milestone(homeowner, open_project.id, {"title": "Start", "order": 1})
    service.create_milestone(homeowner, open_project.id, {"title": "Middle", "order": 2})

    titles = [m.title for m in service.list_project_milestones(homeowner, open_project.id)]
    assert titles == ["Start", "Middle", "Finish"]


def test_assignee_sees_only_assigned_milestones(repo, service, homeowner, open_project):
    crew = add_user(repo, "contractor")
    assigned = service.create_milestone(
        homeowner, open_project.id, {"title": "Framing", "order": 1, "assignee_id": crew.user_id}
    )
    service.create_milestone(homeowner, open_project.id, {"title": "Inspection", "order": 2})

    visible = service.list_project_milestones(crew, open_project.id)
    assert [m.id for m in visible] == [assigned.id]

    # Assignee may move their milestone along
    started = service.set_milestone_status(crew, assigned.id, MilestoneStatus.in_progress)
    assert started.actual_start_date is not None


def test_assignee_cannot_touch_payment_or_assignment(repo, service, homeowner, open_project):
    crew = add_user(repo, "contractor")
    other_crew = add_user(repo, "contractor")
    milestone = service.create_milestone(homeowner, open_project.id, {
        "title": "Roofing",
        "order": 1,
        "assignee_id": crew.user_id,
        "payment_amount": "4000.00",
    })

    for change in ({"is_paid": True}, {"payment_amount": "99999.00"}, {"assignee_id": other_crew.user_id}):
        with pytest.raises(AuthError) as exc_info:
            service.update_milestone(crew, milestone.id, {"notes": "all done", **change})
        assert exc_info.value.tag == "NotOwner"

    unchanged = service.get_milestone(homeowner, milestone.id)
    assert unchanged.is_paid is False
    assert unchanged.payment_amount == Decimal("4000.00")
    assert unchanged.assignee_id == crew.user_id
    assert unchanged.notes is None

    # Assignee keeps ordinary edits; owner keeps payment
    assert service.update_milestone(crew, milestone.id, {"notes": "tarps up"}).notes == "tarps up"
    assert service.update_milestone(homeowner, milestone.id, {"is_paid": True}).is_paid is True


def test_stranger_cannot_list_milestones(repo, service, homeowner):
    project = service.create_project(homeowner, project_fields(status="draft"))
    service.create_milestone(homeowner, project.id, {"title": "Plan", "order": 1})
    stranger = add_user(repo, "homeowner")

    with pytest.raises(AuthError) as exc_info:
        service.list_project_milestones(stranger, project.id)
    assert exc_info.value.tag == "NotOwner"


def test_contractor_cannot_create_milestone(service, contractor, open_project):
    with pytest.raises(AuthError):
        service.create_milestone(contractor, open_project.id, {"title": "Sneaky", "order": 1})


def test_milestone_unknown_assignee(service, homeowner, open_project):
    with pytest.raises(NotFound):
        service.create_milestone(
            homeowner, open_project.id, {"title": "Tile", "order": 1, "assignee_id": "nobody"}
        )


def test_update_milestone_order_and_delete(service, homeowner, open_project):
    milestone = service.create_milestone(homeowner, open_project.id, {"title": "Paint", "order": 1})
    moved = service.update_milestone(homeowner, milestone.id, {"order": 4, "is_paid": True})
    assert moved.order == 4
    assert moved.is_paid is True

    service.delete_milestone(homeowner, milestone.id)
    with pytest.raises(NotFound):
        service.get_milestone(homeowner, milestone.id)


# ============================================================================
# Accounts
# ============================================================================

def register_fields(**overrides):
    fields = {
        "email": "pat@example.com",
        "password": TEST_PASSWORD,
        "first_name": "Pat",
        "last_name": "Builder",
        "role": "contractor",
        "phone": None,
        "address": None,
    }
    fields.update(overrides)
    return fields


def test_register_and_login(service):
    token, user = service.register(register_fields())
    assert token
    assert user.role.value == "contractor"

    ctx = service.authenticate(token)
    assert ctx.user_id == user.id

    login_token, same = service.login("pat@example.com", TEST_PASSWORD)
    assert same.id == user.id
    assert service.authenticate(login_token).user_id == user.id


def test_register_duplicate_email(service):
    service.register(register_fields())
    with pytest.raises(Conflict):
        service.register(register_fields(first_name="Other"))


def test_login_wrong_password(service):
    service.register(register_fields())
    with pytest.raises(AuthError) as exc_info:
        service.login("pat@example.com", "not-the-password")
    assert exc_info.value.tag == "InvalidAssertion"


def test_login_inactive_account(repo, service, clock):
    _, user = service.register(register_fields())
    with repo.transaction():
        repo.update_user(user.id, {"is_active": False}, clock())
    with pytest.raises(AuthError) as exc_info:
        service.login("pat@example.com", TEST_PASSWORD)
    assert exc_info.value.tag == "InactiveAccount"


def test_profile_update_and_contractor_directory(repo, service, contractor):
    updated = service.update_profile(
        contractor, {"bio": "Licensed GC", "years_experience": 12, "specializations": ["roofing"]}
    )
    assert updated.specializations == ["roofing"]
    assert updated.years_experience == 12

    add_user(repo, "contractor", is_active=False)
    directory = service.list_contractors()
    assert [u.id for u in directory] == [contractor.user_id]


def test_inactive_user_profile_not_found(repo, service):
    ghost = add_user(repo, "contractor", is_active=False)
    with pytest.raises(NotFound):
        service.get_user(ghost.user_id)
