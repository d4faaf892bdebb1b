import pytest
from flask import Blueprint

from obe_app import create_app, db
from obe_app.models import User


def test_login_and_profile(client, world):
    resp = client.post("/auth/login", json={"email": "F1@test.edu ", "password": "secret"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert body["data"]["role"] == "FACULTY"
    assert body["data"]["faculty_id"] == world.f1

    resp = client.get("/auth/profile")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["email"] == "f1@test.edu"


def test_login_rejects_bad_credentials(client, world):
    resp = client.post("/auth/login", json={"email": "f1@test.edu", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.get_json()["success"] is False

    resp = client.post("/auth/login", json={"email": "f1@test.edu"})
    assert resp.status_code == 400

    resp = client.post("/auth/login", json=["f1@test.edu", "secret"])
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "ValidationFailed"

    resp = client.post("/auth/login", json={"email": "f1@test.edu", "password": 12345})
    assert resp.status_code == 400


def test_inactive_user_cannot_login(app, client, world):
    with app.app_context():
        user = db.session.query(User).filter_by(email="f2@test.edu").one()
        user.is_active = False
        db.session.commit()
    resp = client.post("/auth/login", json={"email": "f2@test.edu", "password": "secret"})
    assert resp.status_code == 401


def test_logout(world, login):
    c = login("hod@test.edu")
    assert c.post("/auth/logout").status_code == 200
    resp = c.get("/auth/profile")
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "Unauthenticated"


def test_login_rate_limited(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'limit.db'}",
        "RATELIMIT_ENABLED": True,
        "LOGIN_RATE_LIMIT": "2 per minute",
    })
    with app.app_context():
        db.create_all()
    c = app.test_client()
    for _ in range(2):
        assert c.post("/auth/login", json={"email": "x@test.edu", "password": "nope"}).status_code == 401
    resp = c.post("/auth/login", json={"email": "x@test.edu", "password": "nope"})
    assert resp.status_code == 429
    assert resp.get_json()["error"]["code"] == "rate_limited"


@pytest.fixture()
def failing_app(tmp_path):
    def _make(expose):
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'boom.db'}",
            "RATELIMIT_ENABLED": False,
            "EXPOSE_ERROR_DETAILS": expose,
        })
        bp = Blueprint("boom", __name__)

        @bp.route("/boom")
        def boom():
            raise RuntimeError("database password is hunter2")

        app.register_blueprint(bp)
        return app
    return _make


def test_unexpected_errors_are_generic(failing_app):
    resp = failing_app(False).test_client().get("/boom")
    assert resp.status_code == 500
    body = resp.get_json()
    assert body["error"]["code"] == "Unexpected"
    assert "hunter2" not in resp.get_data(as_text=True)

    resp = failing_app(True).test_client().get("/boom")
    assert "hunter2" in resp.get_json()["error"]["details"]["exception"]


def test_unknown_route_is_json_404(client):
    resp = client.get("/nope")
    assert resp.status_code == 404
    assert resp.get_json()["success"] is False
