import pytest

import workflow
from conftest import API
from models import Review, Service


def _review(client, user, contract_id, rating=5, comment=None):
    payload = {"contract_id": contract_id, "rating": rating}
    if comment is not None:
        payload["comment"] = comment
    return client.post(f"{API}/reviews", json=payload, headers=user["headers"])


def _add_service(client, freelancer, title):
    response = client.post(
        f"{API}/services",
        json={
            "title": title,
            "description": "Fixed menu service",
            "category": "web",
            "pricing_type": "fixed",
            "price": 100,
            "delivery_days": 2,
        },
        headers=freelancer["headers"],
    )
    return response.json()["data"]


@pytest.fixture
def completed_contract(client, owner, accepted_contract):
    for milestone in accepted_contract["milestones"]:
        response = client.put(f"{API}/milestones/{milestone['id']}/approve", headers=owner["headers"])
        assert response.status_code == 200
    return accepted_contract["contract"]


def test_review_requires_completed_contract(client, owner, accepted_contract):
    response = _review(client, owner, accepted_contract["contract"]["id"])
    assert response.status_code == 400
    assert response.json()["error"] == "CONTRACT_NOT_COMPLETED"


def test_review_missing_contract(client, owner):
    response = _review(client, owner, 999)
    assert response.status_code == 404
    assert response.json()["error"] == "CONTRACT_NOT_FOUND"


def test_review_by_outsider_is_forbidden(client, freelancer_b, completed_contract):
    response = _review(client, freelancer_b, completed_contract["id"])
    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"


@pytest.mark.parametrize("rating", [0, 6])
def test_review_rating_out_of_range(client, owner, completed_contract, rating):
    response = _review(client, owner, completed_contract["id"], rating=rating)
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_REQUEST"


def test_client_review_targets_freelancer(client, owner, freelancer_a, completed_contract):
    response = _review(client, owner, completed_contract["id"], rating=4, comment="Solid work")
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["reviewer_id"] == owner["id"]
    assert data["reviewee_id"] == freelancer_a["id"]
    assert data["rating"] == 4
    assert data["comment"] == "Solid work"


def test_freelancer_review_targets_client(client, db, owner, freelancer_a, completed_contract):
    service = _add_service(client, freelancer_a, "Logo")

    response = _review(client, freelancer_a, completed_contract["id"], rating=2)
    assert response.status_code == 201
    assert response.json()["data"]["reviewee_id"] == owner["id"]

    untouched = db.get(Service, service["id"])
    assert untouched.rating == 0
    assert untouched.total_reviews == 0


def test_review_twice(client, db, owner, completed_contract):
    assert _review(client, owner, completed_contract["id"]).status_code == 201

    response = _review(client, owner, completed_contract["id"], rating=1)
    assert response.status_code == 400
    assert response.json() == {"success": False, "data": None, "error": "ALREADY_REVIEWED"}
    assert db.query(Review).count() == 1


def test_both_participants_can_review(client, db, owner, freelancer_a, completed_contract):
    assert _review(client, owner, completed_contract["id"]).status_code == 201
    assert _review(client, freelancer_a, completed_contract["id"]).status_code == 201
    assert db.query(Review).count() == 2


def test_client_review_updates_each_service_rolling_average(
    client, db, owner, freelancer_a, freelancer_b, completed_contract
):
    seasoned = _add_service(client, freelancer_a, "Seasoned")
    fresh = _add_service(client, freelancer_a, "Fresh")
    other = _add_service(client, freelancer_b, "Someone else's")

    row = db.get(Service, seasoned["id"])
    row.rating = 4.0
    row.total_reviews = 3
    db.commit()

    response = _review(client, owner, completed_contract["id"], rating=5)
    assert response.status_code == 201

    db.expire_all()
    seasoned_row = db.get(Service, seasoned["id"])
    assert seasoned_row.rating == pytest.approx(4.25)
    assert seasoned_row.total_reviews == 4

    fresh_row = db.get(Service, fresh["id"])
    assert fresh_row.rating == pytest.approx(5.0)
    assert fresh_row.total_reviews == 1

    other_row = db.get(Service, other["id"])
    assert other_row.rating == 0
    assert other_row.total_reviews == 0


def test_concurrent_duplicate_review_is_already_reviewed(
    client, db, monkeypatch, owner, completed_contract
):
    assert _review(client, owner, completed_contract["id"]).status_code == 201

    # Second request passes the duplicate pre-check and hits the unique key
    monkeypatch.setattr(workflow, "get_review", lambda session, contract_id, reviewer_id: None)

    response = _review(client, owner, completed_contract["id"], rating=2)
    assert response.status_code == 400
    assert response.json()["error"] == "ALREADY_REVIEWED"
    assert db.query(Review).count() == 1


def test_review_constraint_fault_is_internal_error(
    client, db, monkeypatch, owner, freelancer_a, completed_contract
):
    service = _add_service(client, freelancer_a, "Logo")
    monkeypatch.setattr(workflow, "apply_review", lambda rating, total, score: (None, None))

    response = _review(client, owner, completed_contract["id"], rating=5)
    assert response.status_code == 500
    assert response.json()["error"] == "INTERNAL_SERVER_ERROR"

    db.expire_all()
    assert db.query(Review).count() == 0
    assert db.get(Service, service["id"]).total_reviews == 0
