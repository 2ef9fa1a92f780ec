"""Tests for Auth API endpoints."""


def _register(client, email="isolated@user.com", role="USER", **extra):
    return client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": "password", "role": role, **extra}
    )


def test_register_user(client):
    """Test registering a new account."""
    response = _register(client)

    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "User registered successfully."
    assert data["email"] == "isolated@user.com"
    assert data["role"] == "USER"
    assert "password" not in data
    assert "password_hash" not in data


def test_register_villager_with_farm_name(client):
    """Test registering a seller account."""
    response = _register(client, "farm@villager.com", role="VILLAGER", farm_name="Sunny Farm")

    assert response.status_code == 201
    assert response.json()["farm_name"] == "Sunny Farm"


def test_register_duplicate_email(client):
    """Test registering the same email twice fails."""
    _register(client)
    response = _register(client, "ISOLATED@user.com")

    assert response.status_code == 409
    assert "Email might already be in use." in response.json()["detail"]


def test_register_invalid_role(client):
    """Test unknown roles are rejected."""
    response = _register(client, role="ADMIN")

    assert response.status_code == 422


def test_login_returns_access_token_and_refresh_cookie(client):
    """Test successful login."""
    _register(client)

    response = client.post(
        "/api/v1/auth/login",
        json={"email": "isolated@user.com", "password": "password"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["access_token"]
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "isolated@user.com"

    set_cookie = response.headers["set-cookie"]
    assert set_cookie.startswith("refreshToken=")
    assert "HttpOnly" in set_cookie


def test_login_unknown_email(client):
    """Test login with an email that was never registered."""
    response = client.post(
        "/api/v1/auth/login",
        json={"email": "nonexistent@user.com", "password": "password"}
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials."


def test_login_wrong_password(client):
    """Test login with a wrong password."""
    _register(client)

    response = client.post(
        "/api/v1/auth/login",
        json={"email": "isolated@user.com", "password": "wrongpassword"}
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials."


def test_login_failures_are_indistinguishable(client):
    """Test unknown email and wrong password give the same answer."""
    _register(client)

    unknown = client.post(
        "/api/v1/auth/login",
        json={"email": "nobody@user.com", "password": "password"}
    )
    wrong = client.post(
        "/api/v1/auth/login",
        json={"email": "isolated@user.com", "password": "wrongpassword"}
    )

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()


def test_me_requires_token(client):
    """Test the current-account endpoint without a token."""
    response = client.get("/api/v1/auth/me")

    assert response.status_code == 401


def test_me_rejects_garbage_token(client):
    """Test a token that was not issued by the service."""
    response = client.get(
        "/api/v1/auth/me",
        headers={"Authorization": "Bearer not-a-token"}
    )

    assert response.status_code == 401


def test_me_returns_current_account(client, villager):
    """Test the current-account endpoint."""
    response = client.get("/api/v1/auth/me", headers=villager["headers"])

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == villager["id"]
    assert data["role"] == "VILLAGER"


def test_refresh_rotates_token(client):
    """Test a refresh token can be used exactly once."""
    _register(client)
    login = client.post(
        "/api/v1/auth/login",
        json={"email": "isolated@user.com", "password": "password"}
    )
    old_refresh_token = login.cookies["refreshToken"]

    response = client.post("/api/v1/auth/refresh")

    assert response.status_code == 200
    assert response.json()["access_token"]
    assert response.cookies["refreshToken"] != old_refresh_token

    # Replaying the old token fails
    client.cookies.clear()
    client.cookies.set("refreshToken", old_refresh_token)
    replay = client.post("/api/v1/auth/refresh")
    assert replay.status_code == 401


def test_refresh_without_cookie(client):
    """Test refresh needs the cookie."""
    response = client.post("/api/v1/auth/refresh")

    assert response.status_code == 401


def test_logout_revokes_refresh_token(client):
    """Test logout makes the refresh token unusable."""
    _register(client)
    login = client.post(
        "/api/v1/auth/login",
        json={"email": "isolated@user.com", "password": "password"}
    )
    refresh_token = login.cookies["refreshToken"]

    response = client.post("/api/v1/auth/logout")
    assert response.status_code == 200

    client.cookies.clear()
    client.cookies.set("refreshToken", refresh_token)
    replay = client.post("/api/v1/auth/refresh")
    assert replay.status_code == 401
