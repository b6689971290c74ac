"""Tests for challenge creation, contract linkage and listing."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from fakes import tx_hash_for
from shinobi.challenges.lifecycle_service import (
    TX_CONTRACT_REGISTRATION,
    create_challenge,
    get_challenge_detail,
    list_challenges,
    list_user_challenges,
    update_contract,
)
from shinobi.challenges.schemas import CreateChallengeRequest
from shinobi.challenges.state_machine import ACTIVE, WITHDRAWN
from shinobi.db.models import Transaction
from shinobi.errors import Forbidden, InvalidState, NotFound, ValidationFailed

CONTRACT = "0x" + "C" * 40


def request(**overrides):
    data = {
        "title": "Spanish sprint",
        "language_code": "es",
        "proficiency_level": "BEGINNER",
        "duration_days": 30,
        "daily_requirement": 15,
        "stake_amount": Decimal("50"),
    }
    data.update(overrides)
    return CreateChallengeRequest(**data)


class TestCreateChallenge:
    @pytest.mark.asyncio
    async def test_public_challenge(self, db_session, alice):
        challenge = await create_challenge(db_session, alice, request())
        await db_session.commit()

        assert challenge.id is not None
        assert challenge.invite_code is None
        assert challenge.is_active is True
        assert challenge.yield_percentage == Decimal("5")

    @pytest.mark.asyncio
    async def test_capacity_limited_challenge_gets_invite_code(self, db_session, alice):
        challenge = await create_challenge(db_session, alice, request(max_participants=5))
        assert challenge.invite_code is not None
        assert len(challenge.invite_code) == 8

    @pytest.mark.asyncio
    async def test_supplied_invite_code_is_normalised(self, db_session, alice):
        challenge = await create_challenge(db_session, alice, request(invite_code="mycode1"))
        assert challenge.invite_code == "MYCODE1"

    @pytest.mark.asyncio
    async def test_duplicate_invite_code(self, db_session, alice):
        await create_challenge(db_session, alice, request(invite_code="SAME1234"))
        await db_session.commit()
        with pytest.raises(InvalidState):
            await create_challenge(db_session, alice, request(invite_code="same1234"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("duration_days", 0),
            ("duration_days", 366),
            ("daily_requirement", 4),
            ("daily_requirement", 121),
            ("stake_amount", Decimal("9.99")),
            ("stake_amount", Decimal("1000.01")),
            ("yield_percentage", Decimal("20.5")),
        ],
    )
    async def test_terms_out_of_range(self, db_session, alice, field, value):
        with pytest.raises(ValidationFailed, match=field):
            await create_challenge(db_session, alice, request(**{field: value}))

    @pytest.mark.asyncio
    async def test_deployment_hash_recorded(self, db_session, alice):
        tx = tx_hash_for(42)
        await create_challenge(db_session, alice, request(transaction_hash=tx, contract_address=CONTRACT))
        await db_session.commit()

        rows = (await db_session.execute(select(Transaction))).scalars().all()
        assert len(rows) == 1
        assert rows[0].transaction_type == TX_CONTRACT_REGISTRATION
        assert rows[0].currency == "MATIC"
        assert rows[0].tx_hash == tx


class TestUpdateContract:
    @pytest.mark.asyncio
    async def test_creator_links_once(self, db_session, alice):
        challenge = await create_challenge(db_session, alice, request())
        await db_session.commit()

        linked = await update_contract(db_session, alice, challenge.id, tx_hash_for(1), CONTRACT)
        assert linked.contract_address == CONTRACT.lower()

        with pytest.raises(InvalidState):
            await update_contract(db_session, alice, challenge.id, tx_hash_for(2), CONTRACT)

    @pytest.mark.asyncio
    async def test_only_creator(self, db_session, alice, bob):
        challenge = await create_challenge(db_session, alice, request())
        with pytest.raises(Forbidden):
            await update_contract(db_session, bob, challenge.id, tx_hash_for(1), CONTRACT)

    @pytest.mark.asyncio
    async def test_unknown_challenge(self, db_session, alice):
        with pytest.raises(NotFound):
            await update_contract(db_session, alice, 404, tx_hash_for(1), CONTRACT)


class TestListing:
    @pytest.mark.asyncio
    async def test_filters_and_counts(self, db_session, alice, bob, make_challenge, join):
        ja = await make_challenge(language_code="ja", max_participants=2)
        await make_challenge(language_code="es")
        await make_challenge(language_code="ja", is_active=False)
        await join(bob, ja)

        listings = await list_challenges(db_session, language_code="ja", user_id=bob.id)
        assert [item.challenge.id for item in listings] == [ja.id]
        assert listings[0].participant_count == 1
        assert listings[0].is_participating is True
        assert listings[0].is_at_capacity is False
        assert listings[0].potential_reward == Decimal("105")

        anonymous = await list_challenges(db_session)
        assert len(anonymous) == 2
        assert not any(item.is_participating for item in anonymous)

    @pytest.mark.asyncio
    async def test_capacity_flag(self, db_session, alice, bob, make_challenge, join):
        challenge = await make_challenge(max_participants=1)
        await join(bob, challenge)
        detail = await get_challenge_detail(db_session, challenge.id)
        assert detail.is_at_capacity is True

    @pytest.mark.asyncio
    async def test_detail_not_found(self, db_session):
        with pytest.raises(NotFound):
            await get_challenge_detail(db_session, 12345)

    @pytest.mark.asyncio
    async def test_user_challenges_by_status(self, db_session, bob, make_challenge, join):
        from shinobi.challenges.lifecycle_service import exit_challenge

        kept = await make_challenge()
        left = await make_challenge()
        await join(bob, kept)
        await join(bob, left)
        await exit_challenge(db_session, bob, left.id)
        await db_session.commit()

        active = await list_user_challenges(db_session, bob.id, ACTIVE)
        withdrawn = await list_user_challenges(db_session, bob.id, WITHDRAWN)
        assert [uc.challenge_id for uc in active] == [kept.id]
        assert [uc.challenge_id for uc in withdrawn] == [left.id]
