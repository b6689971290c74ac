"""Tests for wallet signature verification, JWTs and the sign-in flow."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from shinobi.auth.ethereum import build_sign_in_message, recover_signer, verify_wallet_signature
from shinobi.auth.jwt import create_access_token, decode_access_token
from shinobi.config import get_settings
from shinobi.errors import Unauthorized


def sign(account, message: str) -> str:
    return "0x" + account.sign_message(encode_defunct(text=message)).signature.hex().removeprefix("0x")


class TestWalletSignature:
    def test_valid_signature(self):
        account = Account.create()
        message = build_sign_in_message(account.address, "abc123")
        assert verify_wallet_signature(account.address, message, sign(account, message)) is True

    def test_address_case_is_ignored(self):
        account = Account.create()
        message = build_sign_in_message(account.address.lower(), "abc123")
        assert verify_wallet_signature(account.address.lower(), message, sign(account, message)) is True

    def test_wrong_signer(self):
        signer, claimed = Account.create(), Account.create()
        message = build_sign_in_message(claimed.address, "abc123")
        assert verify_wallet_signature(claimed.address, message, sign(signer, message)) is False

    def test_tampered_message(self):
        account = Account.create()
        signature = sign(account, build_sign_in_message(account.address, "abc123"))
        other = build_sign_in_message(account.address, "zzz999")
        assert verify_wallet_signature(account.address, other, signature) is False

    def test_malformed_signature(self):
        with pytest.raises(ValueError, match="Malformed"):
            recover_signer("hello", "0x1234")
        assert verify_wallet_signature("0x" + "1" * 40, "hello", "0x1234") is False

    def test_message_contains_nonce_and_address(self):
        message = build_sign_in_message("0xabc", "n0nce")
        assert "Wallet address: 0xabc" in message
        assert message.endswith("Nonce: n0nce")


class TestJwt:
    def test_round_trip(self):
        claims = decode_access_token(create_access_token(42, "0x" + "AB" * 20))
        assert claims.user_id == 42
        assert claims.wallet_address == "0x" + "ab" * 20

    def test_expired(self):
        issued = datetime.now(timezone.utc) - timedelta(days=30)
        with pytest.raises(Unauthorized, match="expired"):
            decode_access_token(create_access_token(42, "0xabc", now=issued))

    def test_wrong_kind_rejected(self):
        settings = get_settings()
        token = jwt.encode(
            {"sub": "42", "typ": "refresh", "iss": settings.jwt_issuer, "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(Unauthorized, match="access token"):
            decode_access_token(token)

    def test_foreign_secret_rejected(self):
        token = jwt.encode({"sub": "42", "typ": "access"}, "another-secret-of-sufficient-length!!", algorithm="HS256")
        with pytest.raises(Unauthorized):
            decode_access_token(token)

    def test_garbage_rejected(self):
        with pytest.raises(Unauthorized):
            decode_access_token("not-a-token")


class TestSignInFlow:
    @pytest.mark.asyncio
    async def test_nonce_then_verify(self, client, fake_redis):
        account = Account.create()
        resp = await client.post("/api/v1/auth/nonce", json={"wallet_address": account.address})
        assert resp.status_code == 200
        body = resp.json()
        assert body["nonce"] in body["message"]

        resp = await client.post(
            "/api/v1/auth/verify",
            json={"wallet_address": account.address, "signature": sign(account, body["message"])},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["is_new_user"] is True
        assert data["user"]["wallet_address"] == account.address.lower()
        assert data["user"]["login_count"] == 1
        assert decode_access_token(data["access_token"]).wallet_address == account.address.lower()

        # Nonce is single-use
        resp = await client.post(
            "/api/v1/auth/verify",
            json={"wallet_address": account.address, "signature": sign(account, body["message"])},
        )
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_bad_signature(self, client):
        account, impostor = Account.create(), Account.create()
        body = (await client.post("/api/v1/auth/nonce", json={"wallet_address": account.address})).json()

        resp = await client.post(
            "/api/v1/auth/verify",
            json={"wallet_address": account.address, "signature": sign(impostor, body["message"])},
        )
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid signature"

    @pytest.mark.asyncio
    async def test_nonce_without_redis(self, client):
        from shinobi.redis_client import get_redis

        client._transport.app.dependency_overrides.pop(get_redis)
        resp = await client.post("/api/v1/auth/nonce", json={"wallet_address": "0x" + "4" * 40})
        assert resp.status_code == 503

    @pytest.mark.asyncio
    async def test_protected_route_needs_token(self, client):
        resp = await client.get("/api/v1/users/me")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_banned_user(self, client, db_session, bob, headers_for):
        bob.is_banned = True
        await db_session.commit()
        resp = await client.get("/api/v1/users/me", headers=headers_for(bob))
        assert resp.status_code == 403
