"""Tests for the profile endpoints."""

import pytest


class TestProfile:
    @pytest.mark.asyncio
    async def test_get_me(self, client, bob, headers_for):
        resp = await client.get("/api/v1/users/me", headers=headers_for(bob))
        assert resp.status_code == 200
        data = resp.json()
        assert data["wallet_address"] == bob.wallet_address
        assert data["is_profile_complete"] is False

    @pytest.mark.asyncio
    async def test_update_profile(self, client, bob, headers_for):
        resp = await client.patch(
            "/api/v1/users/me",
            headers=headers_for(bob),
            json={
                "username": "bobby",
                "email": "Bob@Example.com",
                "native_language": "en",
                "learning_languages": ["JA", "es", "ja"],
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["username"] == "bobby"
        assert data["email"] == "bob@example.com"
        assert data["learning_languages"] == ["ja", "es"]
        assert data["is_profile_complete"] is True

    @pytest.mark.asyncio
    async def test_username_taken(self, client, alice, bob, headers_for):
        await client.patch("/api/v1/users/me", headers=headers_for(alice), json={"username": "Taken"})
        resp = await client.patch("/api/v1/users/me", headers=headers_for(bob), json={"username": "taken"})
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_invalid_email(self, client, bob, headers_for):
        resp = await client.patch("/api/v1/users/me", headers=headers_for(bob), json={"email": "not-an-email"})
        assert resp.status_code == 422
