from jose import jwt

from exocall.core.config import settings


def test_login_success(client):
    response = client.post("/api/auth/login", json={"username": "admin", "password": "adminpassword"})
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    claims = jwt.decode(data["access_token"], settings.secret_key, algorithms=["HS256"])
    assert claims["sub"] == "admin"
    assert claims["role"] == "ADMIN"


def test_login_failure(client):
    response = client.post("/api/auth/login", json={"username": "admin", "password": "wrong"})
    assert response.status_code == 401


def test_me_requires_token(client):
    assert client.get("/api/users/me").status_code == 401


def test_me_returns_current_user(client, agent_headers):
    response = client.get("/api/users/me", headers=agent_headers)
    assert response.status_code == 200
    assert response.json()["username"] == "agent"
    assert response.json()["role"] == "AGENT"


def test_bad_token_rejected(client):
    response = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
