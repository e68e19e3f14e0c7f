# tests/test_auth.py
from __future__ import annotations
import re


def test_login_and_me(client, admin):
    r = client.post("/api/auth/login", json={"email": "Cliente@Test.com ", "password": "secret123"})
    assert r.status_code == 200
    assert r.get_json()["email"] == "cliente@test.com"

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    data = me.get_json()
    assert data["id"] == admin.id
    assert data["role"] == "user"
    # sem plano: acesso sem expiração
    assert data["hasAccess"] is True


def test_login_invalid_credentials(client, admin):
    r = client.post("/api/auth/login", json={"email": "cliente@test.com", "password": "errada"})
    assert r.status_code == 401
    assert client.post("/api/auth/login", json={"email": "ninguem@test.com", "password": "x"}).status_code == 401


def test_login_requires_fields(client, db_session):
    assert client.post("/api/auth/login", json={}).status_code == 400


def test_login_inactive_account(client, db_session, admin):
    admin.is_active = False
    db_session.commit()
    assert client.post("/api/auth/login", json={"email": "cliente@test.com", "password": "secret123"}).status_code == 401


def test_logout_clears_session(logged_client):
    assert logged_client.get("/api/auth/me").status_code == 200
    assert logged_client.post("/api/auth/logout").get_json() == {"ok": True}
    assert logged_client.get("/api/auth/me").status_code == 401


def test_me_requires_login(client, db_session):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert "error" in r.get_json()


# =====================================================================================
# Redefinição de senha
# =====================================================================================
def _token(email_body):
    return re.search(r"token=([\w\-\.]+)", email_body["text"]).group(1)


def test_forgot_and_reset_password(client, admin, sent_emails):
    r = client.post("/api/auth/forgot-password", json={"email": " Cliente@test.com"})
    assert r.status_code == 200
    assert len(sent_emails) == 1
    assert sent_emails[0]["to"] == ["cliente@test.com"]
    assert "https://app.example.test/redefinir-senha?token=" in sent_emails[0]["text"]

    token = _token(sent_emails[0])
    r = client.post("/api/auth/reset-password", json={"token": token, "password": "nova-senha-1"})
    assert r.status_code == 200
    assert r.get_json()["email"] == "cliente@test.com"

    assert client.post("/api/auth/login", json={"email": "cliente@test.com", "password": "nova-senha-1"}).status_code == 200
    assert client.post("/api/auth/login", json={"email": "cliente@test.com", "password": "secret123"}).status_code == 401

    # link vale uma vez só
    again = client.post("/api/auth/reset-password", json={"token": token, "password": "outra-senha-2"})
    assert again.status_code == 400


def test_forgot_password_unknown_email_same_answer(client, admin, sent_emails):
    known = client.post("/api/auth/forgot-password", json={"email": "cliente@test.com"}).get_json()
    unknown = client.post("/api/auth/forgot-password", json={"email": "ninguem@test.com"})
    assert unknown.status_code == 200
    assert unknown.get_json() == known
    assert len(sent_emails) == 1


def test_forgot_password_delivery_failure_still_200(client, admin, app, monkeypatch):
    import requests

    def _down(*a, **k):
        raise requests.ConnectionError("resend fora")

    app.config["RESEND_API_KEY"] = "re_test"
    monkeypatch.setattr(requests, "post", _down)
    assert client.post("/api/auth/forgot-password", json={"email": "cliente@test.com"}).status_code == 200


def test_reset_password_validation(client, admin, sent_emails):
    client.post("/api/auth/forgot-password", json={"email": "cliente@test.com"})
    token = _token(sent_emails[0])

    short = client.post("/api/auth/reset-password", json={"token": token, "password": "123"})
    assert short.status_code == 400
    assert "password" in short.get_json()["fields"]

    bad = client.post("/api/auth/reset-password", json={"token": token + "x", "password": "nova-senha-1"})
    assert bad.status_code == 400


def test_reset_password_expired_link(client, admin, app, sent_emails):
    client.post("/api/auth/forgot-password", json={"email": "cliente@test.com"})
    app.config["PASSWORD_RESET_MAX_AGE"] = -1
    r = client.post("/api/auth/reset-password", json={"token": _token(sent_emails[0]), "password": "nova-senha-1"})
    assert r.status_code == 400
    assert "expirado" in r.get_json()["error"]
