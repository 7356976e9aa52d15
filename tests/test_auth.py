from datetime import datetime, timedelta

from conftest import build_client, create_user, make_settings
from rate_limit import RateLimiter, SlidingWindowRateLimiter
from security import TokenService, hash_password, verify_password


def test_password_hash_roundtrip():
    stored = hash_password("secret123")
    assert verify_password("secret123", stored)
    assert not verify_password("secret124", stored)
    assert not verify_password("secret123", "garbage")


def test_login(client, db):
    create_user(db)
    r = client.post("/api/auth/login", json={"email": "buyer@example.com", "password": "secret123"})
    assert r.status_code == 200
    data = r.json()
    assert data["user"]["email"] == "buyer@example.com"
    assert "password_hash" not in data["user"]
    assert data["accessToken"] and data["refreshToken"]
    assert db["refresh_token"].count_documents({"token": data["refreshToken"]}) == 1


def test_login_invalid_credentials(client, db):
    create_user(db)
    r = client.post("/api/auth/login", json={"email": "buyer@example.com", "password": "wrong"})
    assert r.status_code == 401
    assert r.json() == {"error": "Invalid email or password"}

    r = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "secret123"})
    assert r.status_code == 401


def test_login_rate_limited(settings, db):
    create_user(db)
    limiter = RateLimiter(SlidingWindowRateLimiter(max_requests=2, window_seconds=60))
    with build_client(settings, db, limiter=limiter) as c:
        for _ in range(2):
            c.post("/api/auth/login", json={"email": "buyer@example.com", "password": "wrong"})
        r = c.post("/api/auth/login", json={"email": "buyer@example.com", "password": "secret123"})
    assert r.status_code == 429


def test_refresh_token_is_single_use(client, db):
    create_user(db)
    login = client.post("/api/auth/login", json={"email": "buyer@example.com", "password": "secret123"}).json()
    client.cookies.clear()

    first = client.post("/api/auth/refresh", json={"refreshToken": login["refreshToken"]})
    assert first.status_code == 200
    rotated = first.json()["refreshToken"]
    assert rotated != login["refreshToken"]
    client.cookies.clear()

    second = client.post("/api/auth/refresh", json={"refreshToken": login["refreshToken"]})
    assert second.status_code == 401
    assert second.json() == {"error": "Invalid refresh token"}

    third = client.post("/api/auth/refresh", json={"refreshToken": rotated})
    assert third.status_code == 200


def test_refresh_from_cookie(client, db):
    create_user(db)
    client.post("/api/auth/login", json={"email": "buyer@example.com", "password": "secret123"})
    r = client.post("/api/auth/refresh")
    assert r.status_code == 200


def test_refresh_requires_token(client):
    r = client.post("/api/auth/refresh", json={})
    assert r.status_code == 400


def test_expired_refresh_token_rejected_without_mutation(client, db):
    user_id = create_user(db)
    expired_tokens = TokenService(make_settings(refresh_token_days=-1))
    _, refresh_token = expired_tokens.issue(user_id)
    db["refresh_token"].insert_one(
        {"token": refresh_token, "user_id": user_id, "expires_at": datetime.utcnow() - timedelta(days=1)}
    )

    r = client.post("/api/auth/refresh", json={"refreshToken": refresh_token})
    assert r.status_code == 401
    assert db["refresh_token"].count_documents({"token": refresh_token}) == 1


def test_refresh_record_expired_in_store(client, db):
    user_id = create_user(db)
    _, refresh_token = client.app.state.tokens.issue(user_id)
    db["refresh_token"].insert_one(
        {"token": refresh_token, "user_id": user_id, "expires_at": datetime.utcnow() - timedelta(minutes=1)}
    )

    r = client.post("/api/auth/refresh", json={"refreshToken": refresh_token})
    assert r.status_code == 401
    assert db["refresh_token"].count_documents({"token": refresh_token}) == 1


def test_access_token_cannot_be_used_as_refresh(client, db):
    user_id = create_user(db)
    access_token, _ = client.app.state.tokens.issue(user_id)
    r = client.post("/api/auth/refresh", json={"refreshToken": access_token})
    assert r.status_code == 401


def test_logout_revokes_refresh_token(client, db):
    create_user(db)
    login = client.post("/api/auth/login", json={"email": "buyer@example.com", "password": "secret123"}).json()

    r = client.post("/api/auth/logout", json={"refreshToken": login["refreshToken"]})
    assert r.status_code == 200
    assert r.json() == {"message": "Logged out successfully"}
    assert db["refresh_token"].count_documents({}) == 0

    client.cookies.clear()
    r = client.post("/api/auth/refresh", json={"refreshToken": login["refreshToken"]})
    assert r.status_code == 401


def test_signup_then_profile(client, db):
    r = client.post(
        "/api/auth/signup",
        json={"name": "Sari", "email": "Sari@Example.com", "password": "secret123"},
    )
    assert r.status_code == 201
    token = r.json()["accessToken"]
    assert r.json()["user"]["role"] == "USER"

    client.cookies.clear()
    r = client.get("/api/profile", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["user"]["email"] == "sari@example.com"


def test_signup_duplicate_email(client, db):
    create_user(db, email="sari@example.com")
    r = client.post("/api/auth/signup", json={"name": "Sari", "email": "sari@example.com", "password": "secret123"})
    assert r.status_code == 400
    assert r.json() == {"error": "Email already in use"}


def test_profile_requires_token(client):
    assert client.get("/api/profile").status_code == 401
    r = client.get("/api/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
