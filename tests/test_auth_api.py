from bson import ObjectId
from fastapi.testclient import TestClient

import main
from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, bearer
from security import issue_admin_token, issue_user_token


def test_signup_login_and_me_with_cookie(client):
    res = client.post("/auth/signup", json={"name": "Member", "email": "Member@Example.com", "password": "password123"})
    assert res.status_code == 201, res.text
    assert res.json() == {"success": True, "message": "User registered successfully"}

    res = client.post("/auth/login", json={"email": "member@example.com", "password": "password123"})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["success"] is True
    assert body["user"]["email"] == "member@example.com"
    assert "userToken" in client.cookies

    res = client.get("/auth/me")
    assert res.status_code == 200, res.text
    user = res.json()["user"]
    assert user["role"] == "user"
    assert user["email"] == "member@example.com"
    assert "password_hash" not in user


def test_duplicate_signup_rejected(client, make_user):
    make_user(email="dup@example.com")
    res = client.post("/auth/signup", json={"name": "Other", "email": "dup@example.com", "password": "password123"})
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_signup_validation_errors_use_envelope(client):
    res = client.post("/auth/signup", json={"email": "x@example.com"})
    assert res.status_code == 400
    assert res.json()["success"] is False

    res = client.post("/auth/signup", json={"name": "Short", "email": "x@example.com", "password": "123"})
    assert res.status_code == 400


def test_wrong_password_rejected(client, make_user):
    make_user(email="pw@example.com")
    res = client.post("/auth/login", json={"email": "pw@example.com", "password": "nope-nope"})
    assert res.status_code == 400
    assert "userToken" not in client.cookies


def test_user_verify_and_logout(client, make_user):
    make_user(email="v@example.com")
    client.post("/auth/login", json={"email": "v@example.com", "password": "password123"})
    res = client.get("/auth/verify")
    assert res.status_code == 200
    assert res.json()["isUser"] is True

    res = client.post("/auth/logout")
    assert res.status_code == 200
    assert "userToken" not in client.cookies
    res = client.get("/auth/verify")
    assert res.status_code == 401
    assert res.json() == {"success": False, "message": "Not authenticated", "isUser": False}


def test_me_requires_token(client):
    res = client.get("/auth/me")
    assert res.status_code == 401
    assert res.json()["success"] is False


def test_get_user_returns_stored_profile(client, make_user):
    token, uid = make_user(email="profile@example.com", name="Profile Owner")
    res = client.get("/auth/user", headers=bearer(token))
    assert res.status_code == 200
    assert res.json()["user"]["id"] == uid
    assert res.json()["user"]["name"] == "Profile Owner"


def test_admin_login_verify_logout(client, db):
    main.seed_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    res = client.post("/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert res.status_code == 200
    assert res.json()["isAdmin"] is True
    assert "adminToken" in client.cookies

    res = client.get("/admin/verify")
    assert res.status_code == 200
    assert res.json()["isAdmin"] is True

    res = client.get("/auth/me")
    assert res.json()["user"]["role"] == "admin"

    client.post("/admin/logout")
    assert client.get("/admin/verify").status_code == 401


def test_admin_login_bad_password(client, db):
    main.seed_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    res = client.post("/admin/login", json={"email": ADMIN_EMAIL, "password": "wrong-pass"})
    assert res.status_code == 401


def test_admin_verify_refuses_user_token(client, make_user):
    token, _ = make_user()
    res = client.get("/admin/verify", headers=bearer(token))
    assert res.status_code == 401
    assert res.json()["isAdmin"] is False


def test_seed_admin_is_idempotent(db):
    assert main.seed_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD)["email"] == ADMIN_EMAIL
    assert main.seed_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD) is None
    assert main.seed_admin(db, "", "") is None
    assert db["admin"].count_documents({}) == 1


# Principal resolution

def test_bearer_overrides_cookies(client, make_user, admin_token):
    user_token, user_id = make_user()
    headers = {**bearer(user_token), "Cookie": f"adminToken={admin_token}"}
    res = client.get("/auth/me", headers=headers)
    assert res.json()["user"]["id"] == user_id
    assert res.json()["user"]["role"] == "user"


def test_placeholder_bearer_does_not_fall_back_to_cookie(client, make_user):
    user_token, _ = make_user()
    res = client.get("/auth/me", headers={**bearer("null"), "Cookie": f"userToken={user_token}"})
    assert res.status_code == 401
    assert res.json()["success"] is False

    res = client.get("/auth/me", headers={"Cookie": f"userToken={user_token}"})
    assert res.status_code == 200


def test_admin_cookie_preferred_over_user_cookie(client, make_user, admin_token):
    user_token, _ = make_user()
    res = client.get("/auth/me", headers={"Cookie": f"userToken={user_token}; adminToken={admin_token}"})
    assert res.json()["user"]["role"] == "admin"


def test_role_comes_from_store_not_token_flag(client, db):
    shared_id = ObjectId()
    db["user"].insert_one({"_id": shared_id, "name": "Both", "email": "both@example.com"})
    db["admin"].insert_one({"_id": shared_id, "email": "both@example.com"})
    res = client.get("/auth/me", headers=bearer(issue_admin_token(str(shared_id))))
    assert res.status_code == 200
    assert res.json()["user"]["role"] == "user"


def test_admin_store_resolves_with_user_flag(client, db):
    admin_id = db["admin"].insert_one({"email": "solo@example.com"}).inserted_id
    res = client.get("/auth/me", headers=bearer(issue_user_token(str(admin_id))))
    assert res.json()["user"]["role"] == "admin"


def test_valid_token_for_unknown_identity(client, db):
    res = client.get("/auth/me", headers=bearer(issue_user_token(str(ObjectId()))))
    assert res.status_code == 401
    assert res.json()["message"] == "Not authorized. User/Admin not found."

    res = client.get("/auth/me", headers=bearer(issue_user_token("not-an-object-id")))
    assert res.status_code == 401


def test_health_endpoints(db):
    client = TestClient(main.app)
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/").json()["success"] is True
    assert client.get("/health/db").json()["database"] == "ok"


def test_unknown_route_uses_envelope(client):
    res = client.get("/nowhere")
    assert res.status_code == 404
    assert res.json()["success"] is False
