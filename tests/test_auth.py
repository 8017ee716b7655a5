from pickpool import db
from pickpool.models import User

SIGNUP = {
    "username": "newfan",
    "name": "New Fan",
    "email": "fan@example.com",
    "password": "secret123",
    "confirm_password": "secret123",
}


def test_signup_creates_user_and_signs_in(app, client):
    response = client.post("/api/auth/signup", json=SIGNUP)

    assert response.status_code == 201
    body = response.get_json()
    assert body["success"] is True
    assert body["data"]["username"] == "newfan"
    assert "password_hash" not in body["data"]

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.get_json()["data"]["name"] == "New Fan"

    with app.app_context():
        user = User.query.filter_by(username="newfan").one()
        assert user.password_hash != "secret123"
        assert user.check_password("secret123")


def test_signup_rejects_duplicate_username(app, client, factory):
    with app.app_context():
        factory.user("newfan")

    response = client.post("/api/auth/signup", json=SIGNUP)

    assert response.status_code == 400
    assert response.get_json()["error"] == "Username already exists"


def test_signup_rejects_mismatched_passwords(client):
    response = client.post(
        "/api/auth/signup", json=dict(SIGNUP, confirm_password="different")
    )

    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "Passwords do not match"
    assert "confirm_password" in body["errors"]


def test_signup_rejects_short_password(client):
    response = client.post(
        "/api/auth/signup",
        json=dict(SIGNUP, password="abc", confirm_password="abc"),
    )
    assert response.status_code == 400


def test_signup_requires_name(client):
    response = client.post("/api/auth/signup", json=dict(SIGNUP, name=None))

    assert response.status_code == 400
    assert response.get_json()["error"] == "Name is required"


def test_signin_with_bad_password(app, client, factory):
    with app.app_context():
        factory.user("alice")

    response = client.post(
        "/api/auth/signin", json={"username": "alice", "password": "wrong-password"}
    )

    assert response.status_code == 401
    assert response.get_json() == {"success": False, "error": "Invalid credentials"}


def test_signin_unknown_user(client):
    response = client.post(
        "/api/auth/signin", json={"username": "ghost", "password": "whatever"}
    )
    assert response.status_code == 401


def test_signin_deactivated_account(app, client, factory):
    with app.app_context():
        user = factory.user("alice")
        user.is_active = False
        db.session.commit()

    response = client.post(
        "/api/auth/signin", json={"username": "alice", "password": "password123"}
    )
    assert response.status_code == 403


def test_me_requires_login(client):
    response = client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.get_json()["success"] is False


def test_signin_then_signout(app, client, factory):
    with app.app_context():
        factory.user("alice")

    factory.login(client, "alice")
    me = client.get("/api/auth/me")
    assert me.get_json()["data"]["username"] == "alice"
    assert me.headers["Cache-Control"].startswith("no-store")

    assert client.post("/api/auth/signout").status_code == 200
    assert client.get("/api/auth/me").status_code == 401


def test_csrf_token_endpoint(client):
    response = client.get("/api/auth/csrf-token")

    assert response.status_code == 200
    assert response.get_json()["data"]["csrf_token"]
