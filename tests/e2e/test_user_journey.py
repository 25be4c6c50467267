"""
End-to-End tests for complete authentication workflows.

This module drives the HTTP API the way a client would:
1. Registration, login and refresh token rotation
2. Authenticator enrollment, second-factor login and lockout by guessing
3. Role revocation taking effect for a live session
"""

from httpx import AsyncClient

PASSWORD = "Str0ng!Pass"


async def test_register_login_and_rotate(client: AsyncClient, default_role):
    """
    Test: Register, log in, rotate the refresh token, reject the old one.
    """
    # Step 1: Register
    register_response = await client.post(
        "/api/auth/register",
        json={"username": "alice", "email": "alice@example.com", "password": PASSWORD},
    )
    assert register_response.status_code == 201
    user_id = register_response.json()["id"]
    print(f"✓ Step 1: User registered (ID: {user_id})")

    # Step 2: Login returns both tokens
    login_response = await client.post("/api/auth/login", json={"identifier": "alice", "password": PASSWORD})
    assert login_response.status_code == 200
    tokens = login_response.json()
    assert tokens["status"] == "success"
    assert tokens["access_token"]
    assert tokens["refresh_token"]
    print("✓ Step 2: Login returned access and refresh tokens")

    # Step 3: Access token identifies the user
    me_response = await client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"}
    )
    assert me_response.status_code == 200
    assert me_response.json()["user_id"] == user_id

    # Step 4: Refresh rotates to a new pair
    refresh_response = await client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refresh_response.status_code == 200
    rotated = refresh_response.json()
    assert rotated["refresh_token"] != tokens["refresh_token"]
    assert rotated["access_token"] != tokens["access_token"]
    print("✓ Step 4: Refresh token rotated")

    # Step 5: The old refresh token is rejected
    reuse_response = await client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert reuse_response.status_code == 401
    assert reuse_response.json()["error"]["code"] == "TOKEN_REVOKED"

    # Step 6: Reuse ended the rotated session as well
    after_reuse = await client.post("/api/auth/refresh", json={"refresh_token": rotated["refresh_token"]})
    assert after_reuse.status_code == 401
    print("✓ Step 6: Reused token revoked the whole chain")


async def test_two_factor_login_and_lockout(client: AsyncClient, container, alice, notifier):
    """
    Test: Enroll an authenticator, log in with it, then lock the account by guessing.
    """
    # Step 1: Enroll
    login_response = await client.post("/api/auth/login", json={"identifier": "alice", "password": PASSWORD})
    headers = {"Authorization": f"Bearer {login_response.json()['access_token']}"}
    setup = (await client.post("/api/auth/2fa/setup", headers=headers)).json()
    confirm_response = await client.post(
        "/api/auth/2fa/confirm",
        json={"code": container.totp_service.compute_code(setup["secret"])},
        headers=headers,
    )
    assert confirm_response.status_code == 200
    print("✓ Step 1: Authenticator enrolled")

    # Step 2: Password alone yields a challenge
    challenge_response = await client.post(
        "/api/auth/login", json={"identifier": "alice", "password": PASSWORD}
    )
    assert challenge_response.status_code == 200
    challenge = challenge_response.json()
    assert challenge["status"] == "two_factor_required"
    assert challenge["two_factor_method"] == "app"
    assert challenge["access_token"] is None

    # Step 3: The current code completes the login
    verify_response = await client.post(
        "/api/auth/2fa/verify",
        json={
            "challenge_token": challenge["challenge_token"],
            "code": container.totp_service.compute_code(setup["secret"]),
        },
    )
    assert verify_response.status_code == 200
    assert verify_response.json()["access_token"]
    assert verify_response.json()["refresh_token"]
    print("✓ Step 3: Second factor accepted, tokens issued")

    # Step 4: Five wrong codes lock the account
    challenge = (
        await client.post("/api/auth/login", json={"identifier": "alice", "password": PASSWORD})
    ).json()
    codes = []
    for _ in range(container.settings.lockout_max_failed_attempts):
        response = await client.post(
            "/api/auth/2fa/verify",
            json={"challenge_token": challenge["challenge_token"], "code": "000000"},
        )
        assert response.status_code == 401
        codes.append(response.json()["error"]["code"])

    assert codes[:-1] == ["TWO_FACTOR_INVALID_CODE"] * 4
    assert codes[-1] == "ACCOUNT_LOCKED"
    assert "Your account has been locked" in notifier.subjects
    print("✓ Step 4: Account locked after repeated wrong codes")

    # Step 5: Even the right password is refused while locked
    locked_response = await client.post(
        "/api/auth/login", json={"identifier": "alice", "password": PASSWORD}
    )
    assert locked_response.status_code == 401
    assert locked_response.json()["error"]["code"] == "ACCOUNT_LOCKED"


async def test_role_revocation_is_immediate(client: AsyncClient, container, admin_user, alice):
    """
    Test: Revoking a role removes its permission without restarting anything.
    """
    admin_login = await client.post("/api/auth/login", json={"identifier": "admin", "password": PASSWORD})
    admin_headers = {"Authorization": f"Bearer {admin_login.json()['access_token']}"}

    # Step 1: Create "Editor" with content:write
    role = (await client.post("/api/admin/roles", json={"name": "Editor"}, headers=admin_headers)).json()
    permission = (
        await client.post("/api/admin/permissions", json={"name": "content:write"}, headers=admin_headers)
    ).json()
    grant_response = await client.post(
        f"/api/admin/roles/{role['id']}/permissions",
        json={"permission_ids": [permission["id"]]},
        headers=admin_headers,
    )
    assert grant_response.status_code == 200

    # Step 2: Assign it to alice
    assign_response = await client.put(
        f"/api/admin/users/{alice.id}/roles/{role['id']}", headers=admin_headers
    )
    assert assign_response.status_code == 200
    assert await container.rbac_service.has_permission(alice.id, "content:write") is True
    print("✓ Step 2: alice holds content:write through Editor")

    # Step 3: Revoke the role
    revoke_response = await client.delete(
        f"/api/admin/users/{alice.id}/roles/{role['id']}", headers=admin_headers
    )
    assert revoke_response.status_code == 200
    assert revoke_response.json() == {"changed": 1}

    # Step 4: The permission is gone right away
    assert await container.rbac_service.has_permission(alice.id, "content:write") is False
    print("✓ Step 4: content:write revoked immediately")
