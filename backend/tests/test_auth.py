from app.core.security import get_password_hash, verify_password
from app.services.rate_limit import SlidingWindowLimiter


def register(client, email="head@example.com", **overrides):
    payload = {
        "name": "Center Head",
        "email": email,
        "password": "password123",
        "role": "center_head",
        "branch_id": "branch-1",
    }
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def test_register_login_me(client):
    register_response = register(client, email="Head@Example.com")
    assert register_response.status_code == 201
    data = register_response.json()
    assert data["email"] == "head@example.com"
    assert data["role"] == "center_head"
    assert data["is_active"] is True

    login_response = client.post("/api/auth/login", json={"email": "head@example.com", "password": "password123"})
    assert login_response.status_code == 200
    login_data = login_response.json()
    assert login_data["token_type"] == "bearer"
    assert login_data["user"]["branch_id"] == "branch-1"

    token = login_data["access_token"]
    me_response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me_response.status_code == 200
    assert me_response.json()["email"] == "head@example.com"


def test_duplicate_email_conflicts(client):
    assert register(client).status_code == 201

    duplicate = register(client)

    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Email already registered"


def test_wrong_password_and_bad_token(client):
    register(client)

    response = client.post("/api/auth/login", json={"email": "head@example.com", "password": "wrong-password"})
    assert response.status_code == 401

    me_response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert me_response.status_code == 401


def test_unknown_role_is_rejected(client):
    response = register(client, role="student")

    assert response.status_code == 422


def test_register_is_rate_limited(client):
    statuses = [register(client).status_code for _ in range(8)]
    assert statuses[0] == 201
    assert set(statuses[1:]) == {409}

    limited = register(client)

    assert limited.status_code == 429
    body = limited.json()
    assert body["code"] == "RATE_LIMITED"
    assert int(limited.headers["Retry-After"]) >= 1
    assert body["details"]["retry_after"] >= 1


def test_sliding_window_expires_old_hits():
    now = [0.0]
    limiter = SlidingWindowLimiter(clock=lambda: now[0])

    assert limiter.hit("k", limit=2, window_seconds=10) is None
    assert limiter.hit("k", limit=2, window_seconds=10) is None
    assert limiter.hit("k", limit=2, window_seconds=10) == 10
    assert limiter.hit("other", limit=2, window_seconds=10) is None

    now[0] = 10.5
    assert limiter.hit("k", limit=2, window_seconds=10) is None


def test_malformed_password_hash_is_rejected():
    assert verify_password("password123", get_password_hash("password123")) is True
    assert verify_password("password123", "pbkdf2_sha256$abc$c2FsdA$ZGlnZXN0") is False
    assert verify_password("password123", "pbkdf2_sha256$1000$!!$ZGlnZXN0") is False
    assert verify_password("password123", "bcrypt$1000$c2FsdA$ZGlnZXN0") is False
    assert verify_password("password123", "not-a-hash") is False
