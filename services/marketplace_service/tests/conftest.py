import os

# Must be set before the service modules create the engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EVENTS_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from database import engine, SessionLocal
from models import Base
from main import app

API = "/api/v1"


def future(days: int = 30) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(client):
    """Sign up and log in a user; returns its id and bearer headers."""

    def _make_user(email, role="client", name=None):
        password = "secret123"
        response = client.post(
            f"{API}/auth/signup",
            json={"email": email, "password": password, "name": name or email.split("@")[0], "role": role},
        )
        assert response.status_code == 201, response.json()
        login = client.post(f"{API}/auth/login", json={"email": email, "password": password})
        data = login.json()["data"]
        return {
            "id": data["user"]["id"],
            "headers": {"Authorization": f"Bearer {data['token']}"},
        }

    return _make_user


@pytest.fixture
def owner(make_user):
    return make_user("owner@example.com", "client")


@pytest.fixture
def freelancer_a(make_user):
    return make_user("alice@example.com", "freelancer")


@pytest.fixture
def freelancer_b(make_user):
    return make_user("bob@example.com", "freelancer")


@pytest.fixture
def project(client, owner):
    response = client.post(
        f"{API}/projects",
        json={
            "title": "Marketing site",
            "description": "Five page site with a blog",
            "category": "web",
            "budget_min": 500,
            "budget_max": 1500,
            "deadline": future(),
            "required_skills": ["python", "fastapi"],
        },
        headers=owner["headers"],
    )
    assert response.status_code == 201, response.json()
    return response.json()["data"]


@pytest.fixture
def propose(client):
    def _propose(project_id, freelancer, price=1000.0):
        response = client.post(
            f"{API}/projects/{project_id}/proposals",
            json={"cover_letter": "I can build this", "proposed_price": price, "estimated_duration": 14},
            headers=freelancer["headers"],
        )
        assert response.status_code == 201, response.json()
        return response.json()["data"]

    return _propose


def milestone_specs(count: int):
    return [
        {"title": f"Phase {i + 1}", "amount": 100.0 * (i + 1), "due_date": future(10 * (i + 1))}
        for i in range(count)
    ]


@pytest.fixture
def accepted_contract(client, owner, freelancer_a, project, propose):
    """A contract with two pending milestones between owner and freelancer_a."""
    proposal = propose(project["id"], freelancer_a)
    response = client.put(
        f"{API}/proposals/{proposal['id']}/accept",
        json={"milestones": milestone_specs(2)},
        headers=owner["headers"],
    )
    assert response.status_code == 200, response.json()
    return response.json()["data"]
