from conftest import API


def test_signup(client):
    response = client.post(
        f"{API}/auth/signup",
        json={
            "email": "test@example.com",
            "password": "testpass123",
            "name": "Test User",
            "role": "freelancer",
            "skills": ["python"],
            "hourly_rate": 40,
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["error"] is None
    assert body["data"]["email"] == "test@example.com"
    assert body["data"]["role"] == "freelancer"
    assert body["data"]["skills"] == ["python"]
    assert "password" not in body["data"]
    assert "password_hash" not in body["data"]


def test_signup_defaults_to_client(client):
    response = client.post(
        f"{API}/auth/signup",
        json={"email": "c@example.com", "password": "pw", "name": "C"},
    )
    assert response.status_code == 201
    assert response.json()["data"]["role"] == "client"


def test_signup_duplicate_email(client):
    payload = {"email": "dup@example.com", "password": "pw", "name": "Dup"}
    assert client.post(f"{API}/auth/signup", json=payload).status_code == 201

    response = client.post(f"{API}/auth/signup", json=payload)
    assert response.status_code == 400
    assert response.json() == {"success": False, "data": None, "error": "EMAIL_ALREADY_EXISTS"}


def test_signup_invalid_body(client):
    response = client.post(f"{API}/auth/signup", json={"email": "not-an-email", "password": "pw"})
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_REQUEST"


def test_login(client):
    client.post(
        f"{API}/auth/signup",
        json={"email": "testlogin@example.com", "password": "testpass123", "name": "Test User"},
    )

    response = client.post(
        f"{API}/auth/login",
        json={"email": "testlogin@example.com", "password": "testpass123"},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token"]
    assert data["user"]["email"] == "testlogin@example.com"


def test_login_wrong_password(client):
    client.post(
        f"{API}/auth/signup",
        json={"email": "wrong@example.com", "password": "right", "name": "W"},
    )
    response = client.post(f"{API}/auth/login", json={"email": "wrong@example.com", "password": "nope"})
    assert response.status_code == 401
    assert response.json()["error"] == "INVALID_CREDENTIALS"


def test_login_unknown_email(client):
    response = client.post(f"{API}/auth/login", json={"email": "ghost@example.com", "password": "pw"})
    assert response.status_code == 401
    assert response.json()["error"] == "INVALID_CREDENTIALS"


def test_me(client, make_user):
    user = make_user("me@example.com", "freelancer")
    response = client.get(f"{API}/auth/me", headers=user["headers"])
    assert response.status_code == 200
    assert response.json()["data"]["id"] == user["id"]
    assert response.json()["data"]["role"] == "freelancer"


def test_me_requires_token(client):
    response = client.get(f"{API}/auth/me")
    assert response.status_code == 401
    assert response.json()["error"] == "UNAUTHORIZED"


def test_me_rejects_garbage_token(client):
    response = client.get(f"{API}/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error"] == "UNAUTHORIZED"


def test_unknown_route_uses_envelope(client):
    response = client.get("/api/v1/nowhere")
    assert response.status_code == 404
    assert response.json() == {"success": False, "data": None, "error": "NOT_FOUND"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
