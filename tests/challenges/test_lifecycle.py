"""Integration tests for the challenge lifecycle: join, progress, exit, complete."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from fakes import CAROL, payout_receipt, tx_hash_for
from shinobi.auth.service import get_or_create_user
from shinobi.challenges.achievements import seed_achievements
from shinobi.challenges import lifecycle_service
from shinobi.challenges.lifecycle_service import (
    TX_COMPLETED,
    TX_FAILED,
    TX_REWARD,
    TX_STAKE,
    complete_challenge,
    exit_challenge,
    get_daily_exercise,
    get_daily_progress,
    join_challenge,
    record_progress,
)
from shinobi.challenges.state_machine import ACTIVE, COMPLETED, WITHDRAWN
from shinobi.db.models import DailyProgress, Notification, Transaction, UserAchievement, UserChallenge
from shinobi.errors import (
    Forbidden,
    InsufficientFunds,
    InvalidState,
    LedgerSubmissionFailed,
    NotFound,
    ValidationFailed,
    VerificationFailed,
)

START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
DAY0 = START.date()


async def practice(db, user, participation, days, minutes=20):
    for n in range(days):
        await record_progress(db, user, participation.id, minutes, today=DAY0 + timedelta(days=n))
    await db.commit()


async def notification_types(db, user_id):
    rows = await db.execute(select(Notification.type).where(Notification.user_id == user_id))
    return [r for (r,) in rows.all()]


class TestJoin:
    @pytest.mark.asyncio
    async def test_join_creates_active_participation(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge()
        uc = await join(bob, challenge, now=START)

        assert uc.status == ACTIVE
        assert uc.staked_amount == Decimal("100")
        assert uc.current_streak == 0
        assert uc.progress_percentage == 0
        stored = await db_session.get(UserChallenge, uc.id)
        assert stored.end_date.replace(tzinfo=None) == (START + timedelta(days=10)).replace(tzinfo=None)

        txs = (await db_session.execute(select(Transaction).where(Transaction.user_id == bob.id))).scalars().all()
        assert [t.transaction_type for t in txs] == [TX_STAKE]
        assert txs[0].tx_hash == uc.stake_tx_hash
        assert "CHALLENGE_JOINED" in await notification_types(db_session, bob.id)

    @pytest.mark.asyncio
    async def test_duplicate_join_rejected(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge()
        await join(bob, challenge)
        with pytest.raises(InvalidState, match="already participating"):
            await join(bob, challenge)

        count = (
            await db_session.execute(select(UserChallenge).where(UserChallenge.user_id == bob.id))
        ).scalars().all()
        assert len(count) == 1

    @pytest.mark.asyncio
    async def test_concurrent_join_loses_on_unique_constraint(self, db_session, bob, make_challenge, ledger):
        challenge = await make_challenge()
        tx_hash = tx_hash_for(0xBEEF)
        ledger.add_stake(tx_hash, bob.wallet_address, 100_000_000)

        async def stake_verified_while_other_request_joins(*args, **kwargs):
            db_session.add(
                UserChallenge(
                    user_id=bob.id,
                    challenge_id=challenge.id,
                    start_date=START,
                    end_date=START + timedelta(days=10),
                    staked_amount=Decimal("100"),
                    stake_tx_hash=tx_hash_for(0xBEEE),
                    current_streak=0,
                    longest_streak=0,
                    progress_percentage=0,
                    status=ACTIVE,
                )
            )
            await db_session.flush()

        with patch.object(lifecycle_service, "verify_stake", new=stake_verified_while_other_request_joins):
            with pytest.raises(InvalidState, match="already participating"):
                await join_challenge(db_session, ledger, bob, challenge.id, tx_hash, now=START)
        await db_session.commit()

        rows = (
            await db_session.execute(select(UserChallenge).where(UserChallenge.user_id == bob.id))
        ).scalars().all()
        assert [r.stake_tx_hash for r in rows] == [tx_hash_for(0xBEEE)]
        stakes = (
            await db_session.execute(select(Transaction).where(Transaction.transaction_type == TX_STAKE))
        ).scalars().all()
        assert stakes == []

    @pytest.mark.asyncio
    async def test_rejoin_after_withdrawal_rejected(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge()
        await join(bob, challenge)
        await exit_challenge(db_session, bob, challenge.id)
        await db_session.commit()

        with pytest.raises(InvalidState):
            await join(bob, challenge)

    @pytest.mark.asyncio
    async def test_unknown_or_inactive_challenge(self, db_session, bob, make_challenge, ledger):
        with pytest.raises(NotFound):
            await join_challenge(db_session, ledger, bob, 999, tx_hash_for(1))

        inactive = await make_challenge(is_active=False)
        with pytest.raises(NotFound):
            await join_challenge(db_session, ledger, bob, inactive.id, tx_hash_for(1))

    @pytest.mark.asyncio
    async def test_full_challenge(self, db_session, alice, bob, make_challenge, join):
        challenge = await make_challenge(max_participants=1)
        await join(alice, challenge)
        with pytest.raises(InvalidState, match="full"):
            await join(bob, challenge)

    @pytest.mark.asyncio
    async def test_invite_code_required(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge(invite_code="SECRET12")
        with pytest.raises(Forbidden):
            await join(bob, challenge)
        with pytest.raises(Forbidden):
            await join(bob, challenge, invite_code="WRONG123")

        uc = await join(bob, challenge, invite_code=" secret12 ")
        assert uc.status == ACTIVE

    @pytest.mark.asyncio
    async def test_unverified_stake_creates_nothing(self, db_session, bob, make_challenge, ledger):
        challenge = await make_challenge()
        tx = tx_hash_for(5)
        ledger.add_stake(tx, bob.wallet_address, 1)  # wrong amount

        with pytest.raises(VerificationFailed):
            await join_challenge(db_session, ledger, bob, challenge.id, tx)
        rows = (await db_session.execute(select(UserChallenge))).scalars().all()
        assert rows == []


class TestRecordProgress:
    @pytest.mark.asyncio
    async def test_minutes_accumulate_until_requirement(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge(daily_requirement=20)
        uc = await join(bob, challenge, now=START)

        first = await record_progress(db_session, bob, uc.id, 10, today=DAY0)
        assert first.minutes_practiced == 10
        assert first.completed is False
        assert uc.current_streak == 0

        second = await record_progress(db_session, bob, uc.id, 15, today=DAY0)
        assert second.id == first.id
        assert second.minutes_practiced == 25
        assert second.completed is True
        assert uc.current_streak == 1
        assert uc.longest_streak == 1
        assert uc.progress_percentage == 10

    @pytest.mark.asyncio
    async def test_streak_breaks_after_gap(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge()
        uc = await join(bob, challenge, now=START)

        for offset in (0, 1, 2):
            await record_progress(db_session, bob, uc.id, 20, today=DAY0 + timedelta(days=offset))
        assert uc.current_streak == 3

        await record_progress(db_session, bob, uc.id, 20, today=DAY0 + timedelta(days=4))
        assert uc.current_streak == 1
        assert uc.longest_streak == 3
        assert uc.progress_percentage == 40

    @pytest.mark.asyncio
    async def test_today_progress(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge()
        uc = await join(bob, challenge, now=START)

        info = await get_daily_progress(db_session, bob, uc.id, today=DAY0)
        assert (info.day, info.minutes_practiced, info.completed) == (DAY0, 0, False)
        assert info.remaining_minutes == 20

        await record_progress(db_session, bob, uc.id, 12, today=DAY0)
        info = await get_daily_progress(db_session, bob, uc.id, today=DAY0)
        assert (info.minutes_practiced, info.completed, info.remaining_minutes) == (12, False, 8)

        await record_progress(db_session, bob, uc.id, 18, today=DAY0)
        info = await get_daily_progress(db_session, bob, uc.id, today=DAY0)
        assert (info.minutes_practiced, info.completed, info.remaining_minutes) == (30, True, 0)
        assert info.current_streak == 1
        assert info.progress_percentage == 10
        assert (info.language_code, info.proficiency_level) == ("ja", "BEGINNER")

    @pytest.mark.asyncio
    async def test_today_progress_requires_active(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge()
        uc = await join(bob, challenge)
        await exit_challenge(db_session, bob, challenge.id)

        with pytest.raises(NotFound, match="not active"):
            await get_daily_progress(db_session, bob, uc.id, today=DAY0)

    @pytest.mark.asyncio
    async def test_concurrent_first_insert_merges_minutes(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge(daily_requirement=20)
        uc = await join(bob, challenge, now=START)
        real_lookup = lifecycle_service._day_record
        calls = 0

        async def lookup_then_lose_race(db, user_challenge_id, day):
            nonlocal calls
            calls += 1
            if calls == 1:
                # Another request inserts today's row after our lookup.
                db.add(
                    DailyProgress(user_challenge_id=user_challenge_id, date=day, minutes_practiced=15, completed=False)
                )
                await db.flush()
                return None
            return await real_lookup(db, user_challenge_id, day)

        with patch.object(lifecycle_service, "_day_record", new=lookup_then_lose_race):
            record = await record_progress(db_session, bob, uc.id, 10, today=DAY0)
        await db_session.commit()

        assert calls == 2
        assert record.minutes_practiced == 25
        assert record.completed is True
        rows = (
            await db_session.execute(select(DailyProgress).where(DailyProgress.user_challenge_id == uc.id))
        ).scalars().all()
        assert len(rows) == 1
        assert uc.current_streak == 1

    @pytest.mark.asyncio
    async def test_rejects_non_positive_minutes(self, db_session, bob, make_challenge, join):
        uc = await join(bob, await make_challenge())
        with pytest.raises(ValidationFailed):
            await record_progress(db_session, bob, uc.id, 0)

    @pytest.mark.asyncio
    async def test_other_users_participation_not_found(self, db_session, alice, bob, make_challenge, join):
        uc = await join(bob, await make_challenge())
        with pytest.raises(NotFound):
            await record_progress(db_session, alice, uc.id, 20)

    @pytest.mark.asyncio
    async def test_inactive_participation_rejected(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge()
        uc = await join(bob, challenge)
        await exit_challenge(db_session, bob, challenge.id)

        with pytest.raises(InvalidState, match="not active"):
            await record_progress(db_session, bob, uc.id, 20)


class TestDailyExercise:
    @pytest.mark.asyncio
    async def test_prompt_follows_todays_progress(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge(daily_requirement=30)
        uc = await join(bob, challenge, now=START)

        fresh = await get_daily_exercise(db_session, bob, challenge.id, today=DAY0)
        assert fresh.exercise == "Practice 30 minutes of Japanese today."
        assert fresh.info.user_challenge_id == uc.id

        await record_progress(db_session, bob, uc.id, 10, today=DAY0)
        partial = await get_daily_exercise(db_session, bob, challenge.id, today=DAY0)
        assert "You need 20 more minutes" in partial.exercise
        assert partial.description.startswith("Continue")

        await record_progress(db_session, bob, uc.id, 25, today=DAY0)
        done = await get_daily_exercise(db_session, bob, challenge.id, today=DAY0)
        assert done.info.completed is True
        assert done.info.remaining_minutes == 0
        assert "Your goal was 30 minutes" in done.exercise

    @pytest.mark.asyncio
    async def test_requires_active_participation(self, db_session, alice, bob, make_challenge, join):
        challenge = await make_challenge()
        await join(bob, challenge)
        with pytest.raises(NotFound):
            await get_daily_exercise(db_session, alice, challenge.id)

        await exit_challenge(db_session, bob, challenge.id)
        with pytest.raises(NotFound):
            await get_daily_exercise(db_session, bob, challenge.id)


class TestExit:
    @pytest.mark.asyncio
    async def test_hardcore_exit_rejected(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge(is_hardcore=True)
        uc = await join(bob, challenge)

        with pytest.raises(InvalidState, match="hardcore"):
            await exit_challenge(db_session, bob, challenge.id)
        assert uc.status == ACTIVE

    @pytest.mark.asyncio
    async def test_exit_freezes_progress(self, db_session, bob, make_challenge, join, ledger):
        challenge = await make_challenge()
        uc = await join(bob, challenge, now=START)
        await practice(db_session, bob, uc, 3)

        result = await exit_challenge(db_session, bob, challenge.id)
        await db_session.commit()

        assert result.status == WITHDRAWN
        assert result.progress_percentage == 30
        assert ledger.submissions == []
        assert "CHALLENGE_WITHDRAWN" in await notification_types(db_session, bob.id)

    @pytest.mark.asyncio
    async def test_exit_twice(self, db_session, bob, make_challenge, join):
        challenge = await make_challenge()
        await join(bob, challenge)
        await exit_challenge(db_session, bob, challenge.id)

        with pytest.raises(InvalidState):
            await exit_challenge(db_session, bob, challenge.id)

    @pytest.mark.asyncio
    async def test_exit_without_participation(self, db_session, bob, make_challenge):
        challenge = await make_challenge()
        with pytest.raises(NotFound):
            await exit_challenge(db_session, bob, challenge.id)


class TestComplete:
    @pytest.mark.asyncio
    async def test_end_to_end_eight_of_ten_days(self, db_session, bob, make_challenge, join, distributor, ledger):
        await seed_achievements(db_session)
        challenge = await make_challenge(duration_days=10, daily_requirement=20)
        uc = await join(bob, challenge, now=START)
        await practice(db_session, bob, uc, 8)

        result = await complete_challenge(db_session, distributor, bob, uc.id)
        await db_session.commit()

        assert result.user_challenge.status == COMPLETED
        assert result.reward == Decimal("105")
        assert result.already_processed is False
        assert result.user_challenge.completion_tx_hash == result.tx_hash
        assert result.user_challenge.progress_percentage == 80
        assert ledger.submissions[0]["args"] == [bob.wallet_address, str(challenge.id), 500]

        rewards = (
            await db_session.execute(select(Transaction).where(Transaction.transaction_type == TX_REWARD))
        ).scalars().all()
        assert len(rewards) == 1
        assert rewards[0].amount == Decimal("105")
        assert rewards[0].tx_hash == result.tx_hash

        earned = (
            await db_session.execute(select(UserAchievement).where(UserAchievement.user_id == bob.id))
        ).scalars().all()
        assert len(earned) == 1
        types = await notification_types(db_session, bob.id)
        assert "CHALLENGE_COMPLETED" in types
        assert "ACHIEVEMENT_EARNED" in types

    @pytest.mark.asyncio
    async def test_seven_of_ten_days_is_not_enough(self, db_session, bob, make_challenge, join, distributor, ledger):
        challenge = await make_challenge(duration_days=10, daily_requirement=20)
        uc = await join(bob, challenge, now=START)
        await practice(db_session, bob, uc, 7)

        with pytest.raises(InvalidState) as exc_info:
            await complete_challenge(db_session, distributor, bob, uc.id)

        assert exc_info.value.extra == {"completed_days": 7, "total_days": 10, "required_days": 8}
        assert uc.status == ACTIVE
        assert ledger.submissions == []

    @pytest.mark.asyncio
    async def test_under_practiced_days_do_not_count(self, db_session, bob, make_challenge, join, distributor):
        challenge = await make_challenge(duration_days=10, daily_requirement=20)
        uc = await join(bob, challenge, now=START)
        await practice(db_session, bob, uc, 10, minutes=19)

        with pytest.raises(InvalidState):
            await complete_challenge(db_session, distributor, bob, uc.id)

    @pytest.mark.asyncio
    async def test_second_completion_returns_recorded_payout(
        self, db_session, bob, make_challenge, join, distributor, ledger
    ):
        challenge = await make_challenge()
        uc = await join(bob, challenge, now=START)
        await practice(db_session, bob, uc, 10)

        first = await complete_challenge(db_session, distributor, bob, uc.id)
        await db_session.commit()
        second = await complete_challenge(db_session, distributor, bob, uc.id)

        assert second.already_processed is True
        assert second.tx_hash == first.tx_hash
        assert second.reward == first.reward
        assert len(ledger.submissions) == 1

    @pytest.mark.asyncio
    async def test_payout_failure_leaves_status_unchanged(
        self, db_session, bob, make_challenge, join, distributor, ledger, sleeper
    ):
        challenge = await make_challenge()
        uc = await join(bob, challenge, now=START)
        await practice(db_session, bob, uc, 8)
        ledger.outcomes = ["revert", "revert", "revert"]

        with pytest.raises(LedgerSubmissionFailed):
            await complete_challenge(db_session, distributor, bob, uc.id)

        await db_session.refresh(uc)
        assert uc.status == ACTIVE
        assert uc.completion_tx_hash is None
        assert sleeper.calls == [5.0, 10.0]
        failed = (
            await db_session.execute(
                select(Transaction).where(
                    Transaction.transaction_type == TX_REWARD, Transaction.status == TX_FAILED
                )
            )
        ).scalars().all()
        assert sorted(t.tx_hash for t in failed) == sorted(s["tx_hash"] for s in ledger.submissions)

    @pytest.mark.asyncio
    async def test_late_mined_payout_is_recognised_on_retry(
        self, db_session, bob, make_challenge, join, distributor, ledger
    ):
        challenge = await make_challenge()
        uc = await join(bob, challenge, now=START)
        await practice(db_session, bob, uc, 8)
        ledger.outcomes = ["timeout", "timeout", "timeout"]

        with pytest.raises(LedgerSubmissionFailed):
            await complete_challenge(db_session, distributor, bob, uc.id)
        assert len(ledger.submissions) == 3

        mined = ledger.submissions[0]["tx_hash"]
        ledger.receipts[mined] = payout_receipt(mined, bob.wallet_address, str(challenge.id))
        result = await complete_challenge(db_session, distributor, bob, uc.id)
        await db_session.commit()

        assert result.already_processed is True
        assert result.tx_hash == mined
        assert len(ledger.submissions) == 3
        await db_session.refresh(uc)
        assert uc.status == COMPLETED
        assert uc.completion_tx_hash == mined

    @pytest.mark.asyncio
    async def test_retry_with_unmined_submissions_pays_once(
        self, db_session, bob, make_challenge, join, distributor, ledger
    ):
        challenge = await make_challenge()
        uc = await join(bob, challenge, now=START)
        await practice(db_session, bob, uc, 8)
        ledger.outcomes = ["timeout", "timeout", "timeout"]

        with pytest.raises(LedgerSubmissionFailed):
            await complete_challenge(db_session, distributor, bob, uc.id)

        result = await complete_challenge(db_session, distributor, bob, uc.id)
        await db_session.commit()

        assert result.already_processed is False
        assert len(ledger.submissions) == 4
        assert result.tx_hash == ledger.submissions[3]["tx_hash"]
        rewards = (
            await db_session.execute(
                select(Transaction).where(
                    Transaction.transaction_type == TX_REWARD, Transaction.status == TX_COMPLETED
                )
            )
        ).scalars().all()
        assert [t.tx_hash for t in rewards] == [result.tx_hash]

    @pytest.mark.asyncio
    async def test_retry_after_failure_succeeds(self, db_session, bob, make_challenge, join, distributor, ledger):
        challenge = await make_challenge()
        uc = await join(bob, challenge, now=START)
        await practice(db_session, bob, uc, 8)
        ledger.balance = 0

        with pytest.raises(InsufficientFunds):
            await complete_challenge(db_session, distributor, bob, uc.id)

        ledger.balance = 10**12
        result = await complete_challenge(db_session, distributor, bob, uc.id)
        await db_session.commit()
        assert result.user_challenge.status == COMPLETED

    @pytest.mark.asyncio
    async def test_withdrawn_cannot_complete(self, db_session, bob, make_challenge, join, distributor):
        challenge = await make_challenge()
        uc = await join(bob, challenge, now=START)
        await practice(db_session, bob, uc, 8)
        await exit_challenge(db_session, bob, challenge.id)

        with pytest.raises(InvalidState):
            await complete_challenge(db_session, distributor, bob, uc.id)

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_block_completion(
        self, db_session, bob, make_challenge, join, distributor
    ):
        challenge = await make_challenge()
        uc = await join(bob, challenge, now=START)
        await practice(db_session, bob, uc, 8)

        with patch(
            "shinobi.notifications.service.create_notification",
            new=AsyncMock(side_effect=RuntimeError("inbox down")),
        ):
            result = await complete_challenge(db_session, distributor, bob, uc.id)
        await db_session.commit()

        assert result.user_challenge.status == COMPLETED
        assert "CHALLENGE_COMPLETED" not in await notification_types(db_session, bob.id)


class TestAchievements:
    @pytest.mark.asyncio
    async def test_first_challenge_awarded_once(self, db_session, bob, make_challenge, join, distributor):
        await seed_achievements(db_session)
        for _ in range(2):
            challenge = await make_challenge()
            uc = await join(bob, challenge, now=START)
            await practice(db_session, bob, uc, 8)
            await complete_challenge(db_session, distributor, bob, uc.id)
            await db_session.commit()

        earned = (
            await db_session.execute(select(UserAchievement).where(UserAchievement.user_id == bob.id))
        ).scalars().all()
        assert len(earned) == 1

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, db_session):
        assert await seed_achievements(db_session) == 3
        assert await seed_achievements(db_session) == 3


class TestCompletedDayCounting:
    @pytest.mark.asyncio
    async def test_completed_days_count_distinct_dates(self, db_session, make_challenge, distributor, join):
        carol, _ = await get_or_create_user(db_session, CAROL)
        await db_session.commit()
        challenge = await make_challenge(duration_days=5)
        uc = await join(carol, challenge, now=START)
        await practice(db_session, carol, uc, 3)

        rows = (
            await db_session.execute(select(DailyProgress).where(DailyProgress.user_challenge_id == uc.id))
        ).scalars().all()
        assert {r.date for r in rows} == {DAY0, DAY0 + timedelta(days=1), DAY0 + timedelta(days=2)}

        with pytest.raises(InvalidState) as exc_info:
            await complete_challenge(db_session, distributor, carol, uc.id)
        assert exc_info.value.extra["completed_days"] == 3
