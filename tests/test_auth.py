from datetime import timedelta

import jwt

from auth import COOKIE_NAME, JWT_ALGORITHM
from config import Config
from database import utcnow


def test_first_login_bootstraps_admin(client, db):
    assert db.users.count_documents({}) == 0

    r = client.post("/api/auth", json={"username": Config.ADMIN_USERNAME, "password": Config.ADMIN_PASSWORD})

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["message"] == "Login successful"
    assert body["user"]["role"] == "admin"
    assert "password" not in body["user"]
    assert COOKIE_NAME in r.cookies
    assert db.users.find_one({"role": "admin"})["last_login"] is not None


def test_token_claims(client):
    r = client.post("/api/auth", json={"username": Config.ADMIN_USERNAME, "password": Config.ADMIN_PASSWORD})
    claims = jwt.decode(r.json()["token"], Config.JWT_SECRET, algorithms=[JWT_ALGORITHM])
    assert claims["username"] == Config.ADMIN_USERNAME
    assert claims["role"] == "admin"
    assert claims["userId"] == r.json()["user"]["id"]


def test_login_by_email(client):
    r = client.post("/api/auth", json={"username": Config.ADMIN_EMAIL.upper(), "password": Config.ADMIN_PASSWORD})
    assert r.status_code == 200


def test_wrong_password(client):
    r = client.post("/api/auth", json={"username": Config.ADMIN_USERNAME, "password": "wrong"})
    assert r.status_code == 401
    assert r.json() == {"error": "Invalid credentials"}


def test_session_cookie_and_logout(client):
    client.post("/api/auth", json={"username": Config.ADMIN_USERNAME, "password": Config.ADMIN_PASSWORD})

    r = client.get("/api/auth")
    assert r.status_code == 200
    assert r.json()["user"]["username"] == Config.ADMIN_USERNAME

    client.delete("/api/auth")
    assert client.get("/api/auth").status_code == 401


def test_bearer_token(client, admin_headers):
    r = client.get("/api/auth", headers=admin_headers)
    assert r.status_code == 200


def test_invalid_and_expired_tokens(client, admin_headers, db):
    assert client.get("/api/auth", headers={"Authorization": "Bearer garbage"}).status_code == 401

    admin = db.users.find_one({"role": "admin"})
    expired = jwt.encode(
        {"userId": str(admin["_id"]), "username": "admin", "role": "admin", "exp": utcnow() - timedelta(minutes=1)},
        Config.JWT_SECRET, algorithm=JWT_ALGORITHM,
    )
    assert client.get("/api/auth", headers={"Authorization": f"Bearer {expired}"}).status_code == 401


def test_inactive_user_is_rejected(client, admin_headers, user_headers, db):
    db.users.update_one({"username": "customer"}, {"$set": {"active": False}})
    assert client.get("/api/auth", headers=user_headers).status_code == 401


def test_admin_endpoints_reject_users(client, user_headers):
    r = client.get("/api/admin/users", headers=user_headers)
    assert r.status_code == 403
    assert r.json() == {"error": "Admin access required"}


def test_list_users_hides_passwords(client, admin_headers, user_headers):
    r = client.get("/api/admin/users", headers=admin_headers)

    assert r.status_code == 200
    users = r.json()["users"]
    assert [u["username"] for u in users] == ["customer", Config.ADMIN_USERNAME]
    assert all("password" not in u for u in users)


def test_duplicate_user(client, admin_headers, user_headers):
    r = client.post("/api/admin/users", headers=admin_headers, json={
        "username": "someone", "email": "customer@example.com", "password": "secret123",
    })
    assert r.status_code == 400
    assert r.json() == {"error": "User with this username or email already exists"}


def test_short_password(client, admin_headers):
    r = client.post("/api/admin/users", headers=admin_headers, json={
        "username": "shorty", "email": "shorty@example.com", "password": "123",
    })
    assert r.status_code == 400


def test_admin_cannot_delete_self(client, admin_headers, db):
    admin = db.users.find_one({"role": "admin"})
    r = client.delete(f"/api/admin/users/{admin['_id']}", headers=admin_headers)
    assert r.status_code == 400
    assert r.json() == {"error": "Cannot delete your own account"}


def test_delete_user(client, admin_headers, user_headers, db):
    user = db.users.find_one({"username": "customer"})

    assert client.delete(f"/api/admin/users/{user['_id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/admin/users/{user['_id']}", headers=admin_headers).status_code == 404
    assert client.get("/api/auth", headers=user_headers).status_code == 401


def test_unknown_route_uses_error_shape(client):
    r = client.get("/api/nothing-here")
    assert r.status_code == 404
    assert r.json() == {"error": "Not Found"}


def test_health(client):
    assert client.get("/").json() == {"message": "Seratus Studio API running"}
    assert client.get("/test").json()["database"] == "✅ Connected"
