"""Challenge lifecycle business logic.

Rules:
- One participation per (user, challenge), in any status; the unique
  constraint is the at-most-once guarantee, the pre-check only gives a
  friendlier error
- A participation is ACTIVE until it becomes COMPLETED, FAILED or WITHDRAWN
- Explicit completion needs completed_days / duration_days >= threshold (0.80)
- Hardcore challenges cannot be exited
- Ledger failures during payout never change the participation's status

Services flush; routers commit. The one exception is a failed payout, whose
FAILED transaction record is committed before the error is re-raised.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from fractions import Fraction

import structlog
from sqlalchemy import distinct, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shinobi.chain.ledger import Ledger
from shinobi.chain.reward_distributor import RewardDistributor
from shinobi.chain.staking_verifier import verify_stake
from shinobi.challenges.achievements import evaluate_challenge_achievements
from shinobi.challenges.invite_codes import generate_unique_invite_code, normalize_invite_code
from shinobi.challenges.schemas import CreateChallengeRequest
from shinobi.challenges.state_machine import ACTIVE, COMPLETED, WITHDRAWN, validate_transition
from shinobi.challenges.streak import (
    compute_progress_percentage,
    evaluate_streak,
    meets_completion_threshold,
    utc_today,
)
from shinobi.challenges.yield_calculator import potential_reward, yield_basis_points
from shinobi.config import get_settings
from shinobi.db.models import Challenge, DailyProgress, Transaction, User, UserChallenge
from shinobi.email.templates import language_name
from shinobi.errors import (
    Forbidden,
    InsufficientFunds,
    InvalidState,
    LedgerSubmissionFailed,
    NotFound,
    ValidationFailed,
)
from shinobi.notifications.service import (
    CHALLENGE_COMPLETED,
    CHALLENGE_CREATED,
    CHALLENGE_JOINED,
    CHALLENGE_WITHDRAWN,
    notify,
)

logger = structlog.get_logger()

# Transaction types and statuses mirrored from the ledger
TX_STAKE = "STAKE"
TX_REWARD = "REWARD"
TX_CONTRACT_REGISTRATION = "CONTRACT_REGISTRATION"
TX_COMPLETED = "COMPLETED"
TX_FAILED = "FAILED"

# (field, min, max) accepted by create_challenge
CHALLENGE_LIMITS: tuple[tuple[str, Decimal, Decimal], ...] = (
    ("duration_days", Decimal(1), Decimal(365)),
    ("daily_requirement", Decimal(5), Decimal(120)),
    ("stake_amount", Decimal(10), Decimal(1000)),
    ("yield_percentage", Decimal(0), Decimal(20)),
)


@dataclass(frozen=True)
class ChallengeListing:
    challenge: Challenge
    participant_count: int
    is_participating: bool = False

    @property
    def is_at_capacity(self) -> bool:
        limit = self.challenge.max_participants
        return limit is not None and self.participant_count >= limit

    @property
    def potential_reward(self) -> Decimal:
        return potential_reward(self.challenge.stake_amount, self.challenge.yield_percentage)


@dataclass(frozen=True)
class CompletionResult:
    user_challenge: UserChallenge
    reward: Decimal
    tx_hash: str
    already_processed: bool = False


@dataclass(frozen=True)
class PracticeInfo:
    user_challenge_id: int
    challenge_id: int
    day: date
    minutes_practiced: int
    completed: bool
    daily_requirement: int
    current_streak: int
    longest_streak: int
    progress_percentage: int
    language_code: str
    proficiency_level: str

    @property
    def remaining_minutes(self) -> int:
        return max(0, self.daily_requirement - self.minutes_practiced)


@dataclass(frozen=True)
class DailyExercise:
    info: PracticeInfo
    description: str
    exercise: str


def gas_currency(chain: str | None) -> str:
    return "MATIC" if chain in ("polygon", "mumbai", "amoy") else "ETH"


def required_days(duration_days: int, threshold: float) -> int:
    """Smallest number of completed days meeting the threshold."""
    return math.ceil(Fraction(str(threshold)) * duration_days)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_challenge(db: AsyncSession, challenge_id: int) -> Challenge | None:
    result = await db.execute(
        select(Challenge).options(selectinload(Challenge.creator)).where(Challenge.id == challenge_id)
    )
    return result.scalar_one_or_none()


async def get_participation(db: AsyncSession, user_id: int, user_challenge_id: int) -> UserChallenge | None:
    """Participation owned by ``user_id``, with its challenge loaded."""
    result = await db.execute(
        select(UserChallenge)
        .options(selectinload(UserChallenge.challenge))
        .where(UserChallenge.id == user_challenge_id, UserChallenge.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_participation_for_challenge(db: AsyncSession, user_id: int, challenge_id: int) -> UserChallenge | None:
    result = await db.execute(
        select(UserChallenge)
        .options(selectinload(UserChallenge.challenge))
        .where(UserChallenge.user_id == user_id, UserChallenge.challenge_id == challenge_id)
    )
    return result.scalar_one_or_none()


async def count_participants(db: AsyncSession, challenge_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(UserChallenge).where(UserChallenge.challenge_id == challenge_id)
    )
    return result.scalar_one()


async def count_completed_days(db: AsyncSession, user_challenge_id: int) -> int:
    """Distinct calendar days with a completed record."""
    result = await db.execute(
        select(func.count(distinct(DailyProgress.date))).where(
            DailyProgress.user_challenge_id == user_challenge_id,
            DailyProgress.completed.is_(True),
        )
    )
    return result.scalar_one()


async def list_challenges(
    db: AsyncSession,
    language_code: str | None = None,
    proficiency_level: str | None = None,
    user_id: int | None = None,
) -> list[ChallengeListing]:
    """Active challenges, newest first, with participant counts."""
    counts = (
        select(UserChallenge.challenge_id, func.count().label("n"))
        .group_by(UserChallenge.challenge_id)
        .subquery()
    )
    query = (
        select(Challenge, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.challenge_id == Challenge.id)
        .options(selectinload(Challenge.creator))
        .where(Challenge.is_active.is_(True))
    )
    if language_code:
        query = query.where(Challenge.language_code == language_code)
    if proficiency_level:
        query = query.where(Challenge.proficiency_level == proficiency_level)
    query = query.order_by(Challenge.created_at.desc(), Challenge.id.desc())

    rows = (await db.execute(query)).all()

    joined: set[int] = set()
    if user_id is not None and rows:
        joined = set(
            (
                await db.execute(
                    select(UserChallenge.challenge_id).where(
                        UserChallenge.user_id == user_id,
                        UserChallenge.challenge_id.in_([c.id for c, _ in rows]),
                    )
                )
            ).scalars().all()
        )
    return [ChallengeListing(challenge=c, participant_count=n, is_participating=c.id in joined) for c, n in rows]


async def get_challenge_detail(db: AsyncSession, challenge_id: int, user_id: int | None = None) -> ChallengeListing:
    challenge = await get_challenge(db, challenge_id)
    if challenge is None:
        raise NotFound("Challenge not found")
    participating = False
    if user_id is not None:
        participating = await get_participation_for_challenge(db, user_id, challenge_id) is not None
    return ChallengeListing(
        challenge=challenge,
        participant_count=await count_participants(db, challenge_id),
        is_participating=participating,
    )


async def list_user_challenges(db: AsyncSession, user_id: int, status: str = ACTIVE) -> list[UserChallenge]:
    """User's participations in ``status``, soonest-ending first."""
    result = await db.execute(
        select(UserChallenge)
        .options(selectinload(UserChallenge.challenge))
        .where(UserChallenge.user_id == user_id, UserChallenge.status == status)
        .order_by(UserChallenge.end_date.asc())
    )
    return list(result.scalars().all())


async def _practice_info(db: AsyncSession, participation: UserChallenge, today: date) -> PracticeInfo:
    record = await _day_record(db, participation.id, today)
    challenge = participation.challenge
    return PracticeInfo(
        user_challenge_id=participation.id,
        challenge_id=participation.challenge_id,
        day=today,
        minutes_practiced=record.minutes_practiced if record else 0,
        completed=record.completed if record else False,
        daily_requirement=challenge.daily_requirement,
        current_streak=participation.current_streak,
        longest_streak=participation.longest_streak,
        progress_percentage=participation.progress_percentage,
        language_code=challenge.language_code,
        proficiency_level=challenge.proficiency_level,
    )


async def get_daily_progress(
    db: AsyncSession,
    user: User,
    user_challenge_id: int,
    today: date | None = None,
) -> PracticeInfo:
    """Today's practice against the daily requirement for an ACTIVE participation.

    Raises:
        NotFound: not this user's participation, or no longer ACTIVE.
    """
    participation = await get_participation(db, user.id, user_challenge_id)
    if participation is None or participation.status != ACTIVE:
        raise NotFound("Challenge not found or not active")
    return await _practice_info(db, participation, today or utc_today())


async def get_daily_exercise(
    db: AsyncSession,
    user: User,
    challenge_id: int,
    today: date | None = None,
) -> DailyExercise:
    """Today's practice prompt for the user's ACTIVE participation in ``challenge_id``."""
    participation = await get_participation_for_challenge(db, user.id, challenge_id)
    if participation is None or participation.status != ACTIVE:
        raise NotFound("Challenge not found or user not participating")
    info = await _practice_info(db, participation, today or utc_today())

    if info.completed:
        description = "You've already completed today's goal! Keep practicing for extra progress."
        exercise = (
            f"You've practiced {info.minutes_practiced} minutes today. "
            f"Your goal was {info.daily_requirement} minutes."
        )
    elif info.minutes_practiced:
        description = "Continue your daily practice to reach your goal!"
        exercise = (
            f"You've practiced {info.minutes_practiced} minutes today. "
            f"You need {info.remaining_minutes} more minutes to reach your daily goal."
        )
    else:
        description = "Start your daily practice to maintain your streak!"
        exercise = f"Practice {info.daily_requirement} minutes of {language_name(info.language_code)} today."
    return DailyExercise(info=info, description=description, exercise=exercise)


# ---------------------------------------------------------------------------
# Challenge management
# ---------------------------------------------------------------------------


def _validate_terms(data: CreateChallengeRequest) -> None:
    for field, low, high in CHALLENGE_LIMITS:
        value = Decimal(getattr(data, field))
        if value < low or value > high:
            raise ValidationFailed(f"{field} must be between {low} and {high}")


async def create_challenge(db: AsyncSession, creator: User, data: CreateChallengeRequest) -> Challenge:
    """Create a challenge owned by ``creator``.

    Capacity-limited challenges get an invite code when none is supplied. A
    deployment transaction hash, when given, is mirrored as a
    CONTRACT_REGISTRATION transaction.
    """
    _validate_terms(data)

    invite_code = normalize_invite_code(data.invite_code) if data.invite_code else None
    if data.max_participants and not invite_code:
        invite_code = await generate_unique_invite_code(db)

    now = datetime.now(timezone.utc)
    challenge = Challenge(
        title=data.title,
        description=data.description,
        language_code=data.language_code,
        proficiency_level=data.proficiency_level,
        duration_days=data.duration_days,
        daily_requirement=data.daily_requirement,
        stake_amount=data.stake_amount,
        yield_percentage=data.yield_percentage,
        is_hardcore=data.is_hardcore,
        max_participants=data.max_participants,
        invite_code=invite_code,
        creator_id=creator.id,
        is_active=True,
        contract_address=data.contract_address.lower() if data.contract_address else None,
        contract_chain=data.contract_chain,
        created_at=now,
    )
    db.add(challenge)
    try:
        async with db.begin_nested():
            await db.flush()
    except IntegrityError as e:
        raise InvalidState("Invite code already in use") from e

    if data.transaction_hash:
        db.add(
            Transaction(
                user_id=creator.id,
                transaction_type=TX_CONTRACT_REGISTRATION,
                amount=Decimal(0),
                currency=gas_currency(data.contract_chain),
                tx_hash=data.transaction_hash,
                status=TX_COMPLETED,
                created_at=now,
                completed_at=now,
            )
        )
        await db.flush()

    logger.info("challenge_created", challenge_id=challenge.id, creator_id=creator.id)
    await notify(
        db,
        creator.id,
        CHALLENGE_CREATED,
        "Challenge Created",
        f'You\'ve successfully created the "{challenge.title}" challenge.',
    )
    return challenge


async def update_contract(
    db: AsyncSession,
    user: User,
    challenge_id: int,
    tx_hash: str,
    contract_address: str,
    contract_chain: str = "polygon",
) -> Challenge:
    """Link a deployed contract to a challenge. Creator only, once."""
    challenge = await get_challenge(db, challenge_id)
    if challenge is None:
        raise NotFound("Challenge not found")
    if challenge.creator_id != user.id:
        raise Forbidden("Only the challenge creator can update contract details")
    if challenge.contract_address:
        raise InvalidState("Challenge contract is already linked")

    now = datetime.now(timezone.utc)
    challenge.contract_address = contract_address.lower()
    challenge.contract_chain = contract_chain
    db.add(
        Transaction(
            user_id=user.id,
            transaction_type=TX_CONTRACT_REGISTRATION,
            amount=Decimal(0),
            currency=gas_currency(contract_chain),
            tx_hash=tx_hash,
            status=TX_COMPLETED,
            created_at=now,
            completed_at=now,
        )
    )
    await db.flush()
    logger.info("challenge_contract_linked", challenge_id=challenge_id, contract=challenge.contract_address)
    return challenge


# ---------------------------------------------------------------------------
# Participation transitions
# ---------------------------------------------------------------------------


async def join_challenge(
    db: AsyncSession,
    ledger: Ledger,
    user: User,
    challenge_id: int,
    tx_hash: str,
    invite_code: str | None = None,
    now: datetime | None = None,
) -> UserChallenge:
    """Join a challenge after verifying the on-chain stake.

    Raises:
        NotFound: challenge missing or inactive.
        InvalidState: user already has a participation (any status), or the
            challenge is full.
        Forbidden: wrong or missing invite code for a private challenge.
        VerificationFailed: the stake transaction does not check out.
    """
    log = logger.bind(user_id=user.id, challenge_id=challenge_id)
    challenge = await get_challenge(db, challenge_id)
    if challenge is None or not challenge.is_active:
        raise NotFound("Challenge not found or inactive")

    if await get_participation_for_challenge(db, user.id, challenge_id) is not None:
        raise InvalidState("You are already participating in this challenge")

    if challenge.max_participants is not None:
        if await count_participants(db, challenge_id) >= challenge.max_participants:
            raise InvalidState("Challenge is full")

    if challenge.invite_code:
        if not invite_code or normalize_invite_code(invite_code) != challenge.invite_code:
            raise Forbidden("Invalid invite code")

    settings = get_settings()
    await verify_stake(
        ledger,
        tx_hash,
        challenge.stake_amount,
        user.wallet_address,
        settings.staking_contract_address,
        settings.token_decimals,
    )

    now = now or datetime.now(timezone.utc)
    participation = UserChallenge(
        user_id=user.id,
        challenge_id=challenge_id,
        start_date=now,
        end_date=now + timedelta(days=challenge.duration_days),
        staked_amount=challenge.stake_amount,
        stake_tx_hash=tx_hash,
        current_streak=0,
        longest_streak=0,
        progress_percentage=0,
        status=ACTIVE,
    )
    try:
        async with db.begin_nested():
            db.add(participation)
            await db.flush()
    except IntegrityError as e:
        log.info("join_race_lost")
        raise InvalidState("You are already participating in this challenge") from e

    db.add(
        Transaction(
            user_id=user.id,
            user_challenge_id=participation.id,
            transaction_type=TX_STAKE,
            amount=challenge.stake_amount,
            currency="USDC",
            tx_hash=tx_hash,
            status=TX_COMPLETED,
            created_at=now,
            completed_at=now,
        )
    )
    await db.flush()

    log.info("challenge_joined", user_challenge_id=participation.id)
    await notify(
        db,
        user.id,
        CHALLENGE_JOINED,
        "New Challenge Started",
        f'You\'ve joined the "{challenge.title}" challenge. Start practicing daily to maintain your streak!',
    )
    return participation


async def refresh_progress(db: AsyncSession, participation: UserChallenge, today: date) -> None:
    """Recompute streak, longest streak and progress percentage from stored days."""
    records = (
        await db.execute(select(DailyProgress).where(DailyProgress.user_challenge_id == participation.id))
    ).scalars().all()
    streak = evaluate_streak(records, today)
    participation.current_streak = streak
    participation.longest_streak = max(participation.longest_streak or 0, streak)
    completed = len({r.date for r in records if r.completed})
    participation.progress_percentage = compute_progress_percentage(
        completed, participation.challenge.duration_days
    )


async def _day_record(db: AsyncSession, user_challenge_id: int, day: date) -> DailyProgress | None:
    result = await db.execute(
        select(DailyProgress).where(
            DailyProgress.user_challenge_id == user_challenge_id,
            DailyProgress.date == day,
        )
    )
    return result.scalars().first()


async def record_progress(
    db: AsyncSession,
    user: User,
    user_challenge_id: int,
    minutes: int,
    today: date | None = None,
) -> DailyProgress:
    """Add practice minutes to today's record and refresh the participation.

    Minutes only ever accumulate. Streak and progress are recomputed on every
    call, not only on the day's first completion.
    """
    if minutes <= 0:
        raise ValidationFailed("minutes must be positive")
    participation = await get_participation(db, user.id, user_challenge_id)
    if participation is None:
        raise NotFound("Challenge not found")
    if participation.status != ACTIVE:
        raise InvalidState("Challenge is not active")

    today = today or utc_today()
    requirement = participation.challenge.daily_requirement

    record = await _day_record(db, user_challenge_id, today)
    if record is None:
        try:
            async with db.begin_nested():
                record = DailyProgress(
                    user_challenge_id=user_challenge_id,
                    date=today,
                    minutes_practiced=minutes,
                    completed=minutes >= requirement,
                )
                db.add(record)
                await db.flush()
        except IntegrityError:
            # Concurrent insert for the same day won; add to its row instead.
            record = await _day_record(db, user_challenge_id, today)
            if record is None:
                raise
            record.minutes_practiced += minutes
            record.completed = record.minutes_practiced >= requirement
    else:
        record.minutes_practiced += minutes
        record.completed = record.minutes_practiced >= requirement
    await db.flush()

    await refresh_progress(db, participation, today)
    await db.flush()
    logger.info(
        "progress_recorded",
        user_challenge_id=user_challenge_id,
        minutes=minutes,
        total_minutes=record.minutes_practiced,
        completed=record.completed,
        streak=participation.current_streak,
    )
    return record


async def exit_challenge(db: AsyncSession, user: User, challenge_id: int) -> UserChallenge:
    """Withdraw from a non-hardcore challenge. No payout is issued."""
    participation = await get_participation_for_challenge(db, user.id, challenge_id)
    if participation is None:
        raise NotFound("You are not participating in this challenge")
    if participation.status != ACTIVE:
        raise InvalidState("This challenge is not active")
    if participation.challenge.is_hardcore:
        raise InvalidState(
            "Cannot exit a hardcore challenge. Hardcore challenges require completion to get your stake back."
        )

    completed = await count_completed_days(db, participation.id)
    validate_transition(participation.status, WITHDRAWN)
    participation.progress_percentage = compute_progress_percentage(
        completed, participation.challenge.duration_days
    )
    participation.status = WITHDRAWN
    await db.flush()

    logger.info(
        "challenge_withdrawn",
        user_challenge_id=participation.id,
        progress=participation.progress_percentage,
    )
    await notify(
        db,
        user.id,
        CHALLENGE_WITHDRAWN,
        "Challenge Withdrawn",
        f'You\'ve withdrawn from the "{participation.challenge.title}" challenge. '
        f"Your progress was {participation.progress_percentage}%.",
    )
    return participation


async def _recorded_reward(db: AsyncSession, participation: UserChallenge) -> Decimal | None:
    result = await db.execute(
        select(Transaction.amount)
        .where(
            Transaction.user_challenge_id == participation.id,
            Transaction.transaction_type == TX_REWARD,
            Transaction.status == TX_COMPLETED,
        )
        .order_by(Transaction.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _unsettled_payout_hashes(db: AsyncSession, participation: UserChallenge) -> list[str]:
    """Hashes submitted by earlier failed payout attempts, newest first."""
    result = await db.execute(
        select(Transaction.tx_hash)
        .where(
            Transaction.user_challenge_id == participation.id,
            Transaction.transaction_type == TX_REWARD,
            Transaction.status == TX_FAILED,
            Transaction.tx_hash.is_not(None),
        )
        .order_by(Transaction.id.desc())
    )
    return list(result.scalars().all())


async def complete_challenge(
    db: AsyncSession,
    distributor: RewardDistributor,
    user: User,
    user_challenge_id: int,
    threshold: float | None = None,
) -> CompletionResult:
    """Pay out a finished participation.

    ACTIVE participations must meet the completion threshold; they receive
    stake + yield and become COMPLETED. Participations the sweep already
    marked COMPLETED (no payout hash yet) are claimed: stake + yield if the
    threshold was met, stake only otherwise. A recorded payout is returned
    as-is.

    Raises:
        NotFound: no such participation for this user.
        InvalidState: below threshold, or FAILED/WITHDRAWN.
        InsufficientFunds, LedgerSubmissionFailed: payout did not settle; the
            participation is left untouched and a FAILED REWARD transaction
            is recorded for each submitted hash. The next claim checks those
            hashes before submitting again.
    """
    if threshold is None:
        threshold = get_settings().completion_threshold
    participation = await get_participation(db, user.id, user_challenge_id)
    if participation is None:
        raise NotFound("Challenge not found or already completed")
    challenge = participation.challenge
    log = logger.bind(user_id=user.id, user_challenge_id=user_challenge_id)

    completed_days = await count_completed_days(db, participation.id)
    met = meets_completion_threshold(completed_days, challenge.duration_days, threshold)
    full_reward = potential_reward(participation.staked_amount, challenge.yield_percentage)

    if participation.status == COMPLETED and participation.completion_tx_hash:
        recorded = await _recorded_reward(db, participation)
        return CompletionResult(
            user_challenge=participation,
            reward=recorded if recorded is not None else full_reward,
            tx_hash=participation.completion_tx_hash,
            already_processed=True,
        )

    if participation.status == ACTIVE:
        if not met:
            raise InvalidState(
                f"Challenge not yet complete. You've completed {completed_days} days "
                f"out of {challenge.duration_days} required.",
                completed_days=completed_days,
                total_days=challenge.duration_days,
                required_days=required_days(challenge.duration_days, threshold),
            )
    elif participation.status != COMPLETED:
        raise InvalidState("This challenge is not active")

    if met:
        reward, bps = full_reward, yield_basis_points(challenge.yield_percentage)
    else:
        # Sweep-completed no-loss challenge below threshold: stake back, no yield.
        reward, bps = Decimal(participation.staked_amount), 0

    previous = await _unsettled_payout_hashes(db, participation)
    try:
        result = await distributor.distribute(participation, user.wallet_address, reward, bps, previous)
    except (InsufficientFunds, LedgerSubmissionFailed) as e:
        submitted = getattr(e, "submitted_hashes", ())
        log.warning(
            "reward_distribution_failed", error=e.message, status=participation.status, submitted=len(submitted)
        )
        # One FAILED row per submitted hash.
        failed_at = datetime.now(timezone.utc)
        for tx_hash in submitted or (None,):
            db.add(
                Transaction(
                    user_id=user.id,
                    user_challenge_id=participation.id,
                    transaction_type=TX_REWARD,
                    amount=reward,
                    currency="USDC",
                    tx_hash=tx_hash,
                    status=TX_FAILED,
                    created_at=failed_at,
                )
            )
        await db.commit()
        raise

    now = datetime.now(timezone.utc)
    if participation.status == ACTIVE:
        validate_transition(ACTIVE, COMPLETED)
        participation.status = COMPLETED
    participation.completion_tx_hash = result.tx_hash
    participation.progress_percentage = compute_progress_percentage(completed_days, challenge.duration_days)
    db.add(
        Transaction(
            user_id=user.id,
            user_challenge_id=participation.id,
            transaction_type=TX_REWARD,
            amount=reward,
            currency="USDC",
            tx_hash=result.tx_hash,
            status=TX_COMPLETED,
            created_at=now,
            completed_at=now,
        )
    )
    await db.flush()
    log.info("challenge_completed", tx_hash=result.tx_hash, reward=str(reward))

    await notify(
        db,
        user.id,
        CHALLENGE_COMPLETED,
        "Challenge Completed!",
        f'Congratulations! You\'ve completed the "{challenge.title}" challenge '
        f"and earned {reward:.2f} USDC.",
    )
    await evaluate_challenge_achievements(db, user.id)

    return CompletionResult(
        user_challenge=participation,
        reward=reward,
        tx_hash=result.tx_hash,
        already_processed=result.already_processed,
    )
