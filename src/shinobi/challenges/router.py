"""Challenge API endpoints under /api/v1/challenges."""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shinobi.auth.dependencies import get_current_user, get_optional_user
from shinobi.chain.ledger import Ledger
from shinobi.chain.reward_distributor import RewardDistributor
from shinobi.challenges import lifecycle_service as lifecycle
from shinobi.challenges.schemas import (
    ChallengeResponse,
    ChallengeSummary,
    CompletionResponse,
    CreateChallengeRequest,
    DailyExerciseResponse,
    ExitResponse,
    JoinChallengeRequest,
    LanguageInfo,
    ProgressResponse,
    RecordProgressRequest,
    TodayProgressResponse,
    UpdateContractRequest,
    UserChallengeResponse,
    YieldResponse,
)
from shinobi.challenges.state_machine import ACTIVE, ALL_STATUSES
from shinobi.challenges.yield_calculator import calculate_yield
from shinobi.database import get_session
from shinobi.db.models import Challenge, User, UserChallenge
from shinobi.dependencies import get_distributor, get_ledger
from shinobi.errors import ValidationFailed

router = APIRouter(prefix="/api/v1/challenges", tags=["Challenges"])


# ── Helpers ──


def _challenge_response(
    listing: lifecycle.ChallengeListing,
    viewer: User | None = None,
) -> ChallengeResponse:
    c = listing.challenge
    return ChallengeResponse(
        id=str(c.id),
        title=c.title,
        description=c.description,
        language_code=c.language_code,
        proficiency_level=c.proficiency_level,
        duration_days=c.duration_days,
        daily_requirement=c.daily_requirement,
        stake_amount=c.stake_amount,
        yield_percentage=c.yield_percentage,
        is_hardcore=c.is_hardcore,
        max_participants=c.max_participants,
        is_active=c.is_active,
        contract_address=c.contract_address,
        contract_chain=c.contract_chain,
        creator_id=str(c.creator_id),
        creator_name=c.creator.username if c.creator else None,
        created_at=c.created_at,
        participant_count=listing.participant_count,
        is_at_capacity=listing.is_at_capacity,
        potential_reward=listing.potential_reward,
        is_participating=listing.is_participating,
        invite_code=c.invite_code if viewer is not None and viewer.id == c.creator_id else None,
    )


def _summary(c: Challenge) -> ChallengeSummary:
    return ChallengeSummary(
        id=str(c.id),
        title=c.title,
        language_code=c.language_code,
        proficiency_level=c.proficiency_level,
        duration_days=c.duration_days,
        daily_requirement=c.daily_requirement,
        stake_amount=c.stake_amount,
        yield_percentage=c.yield_percentage,
        is_hardcore=c.is_hardcore,
    )


def _participation_response(uc: UserChallenge) -> UserChallengeResponse:
    return UserChallengeResponse(
        id=str(uc.id),
        challenge=_summary(uc.challenge),
        status=uc.status,
        start_date=uc.start_date,
        end_date=uc.end_date,
        staked_amount=uc.staked_amount,
        stake_tx_hash=uc.stake_tx_hash,
        current_streak=uc.current_streak,
        longest_streak=uc.longest_streak,
        progress_percentage=uc.progress_percentage,
        completion_tx_hash=uc.completion_tx_hash,
    )


# ── Catalogue ──


@router.get("", response_model=list[ChallengeResponse])
async def list_challenges(
    language_code: str | None = Query(None, max_length=8),
    proficiency_level: str | None = Query(None, max_length=16),
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
) -> list[ChallengeResponse]:
    """Active challenges, newest first."""
    listings = await lifecycle.list_challenges(
        db, language_code, proficiency_level, user_id=user.id if user else None
    )
    return [_challenge_response(item, user) for item in listings]


@router.post("", response_model=ChallengeResponse, status_code=201)
async def create_challenge(
    body: CreateChallengeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    challenge = await lifecycle.create_challenge(db, user, body)
    await db.commit()
    listing = await lifecycle.get_challenge_detail(db, challenge.id, user.id)
    return _challenge_response(listing, user)


@router.get("/yield", response_model=YieldResponse)
async def project_yield(
    stake: Decimal = Query(...),
    yield_percentage: Decimal = Query(Decimal(5)),
    duration_days: int = Query(...),
) -> YieldResponse:
    """Display-only projection; degenerate input returns zeros."""
    p = calculate_yield(stake, yield_percentage, duration_days)
    return YieldResponse(
        yield_amount=p.yield_amount,
        total_reward=p.total_reward,
        daily_yield=p.daily_yield,
        apy=p.apy,
    )


@router.get("/me", response_model=list[UserChallengeResponse])
async def my_challenges(
    status: str = Query(ACTIVE),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[UserChallengeResponse]:
    """Own participations in ``status`` (default ACTIVE)."""
    status = status.upper()
    if status not in ALL_STATUSES:
        raise ValidationFailed(f"status must be one of {', '.join(ALL_STATUSES)}")
    participations = await lifecycle.list_user_challenges(db, user.id, status)
    return [_participation_response(uc) for uc in participations]


# ── Participation ──


@router.post("/participations/{user_challenge_id}/progress", response_model=ProgressResponse)
async def record_progress(
    user_challenge_id: int,
    body: RecordProgressRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProgressResponse:
    record = await lifecycle.record_progress(db, user, user_challenge_id, body.minutes)
    participation = await lifecycle.get_participation(db, user.id, user_challenge_id)
    await db.commit()
    return ProgressResponse(
        user_challenge_id=str(user_challenge_id),
        date=record.date,
        minutes_practiced=record.minutes_practiced,
        completed=record.completed,
        current_streak=participation.current_streak,
        longest_streak=participation.longest_streak,
        progress_percentage=participation.progress_percentage,
    )


@router.get("/participations/{user_challenge_id}/progress/today", response_model=TodayProgressResponse)
async def today_progress(
    user_challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> TodayProgressResponse:
    """Today's minutes against the daily requirement (ACTIVE participations only)."""
    info = await lifecycle.get_daily_progress(db, user, user_challenge_id)
    return TodayProgressResponse(
        user_challenge_id=str(info.user_challenge_id),
        date=info.day,
        minutes_practiced=info.minutes_practiced,
        completed=info.completed,
        daily_requirement=info.daily_requirement,
        remaining_minutes=info.remaining_minutes,
        current_streak=info.current_streak,
        longest_streak=info.longest_streak,
        progress_percentage=info.progress_percentage,
        language=LanguageInfo(code=info.language_code, level=info.proficiency_level),
    )


@router.post("/participations/{user_challenge_id}/complete", response_model=CompletionResponse)
async def complete(
    user_challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    distributor: RewardDistributor = Depends(get_distributor),
) -> CompletionResponse:
    """Pay out stake + yield. Ledger failures answer 502/503 and are safe to retry."""
    result = await lifecycle.complete_challenge(db, distributor, user, user_challenge_id)
    await db.commit()
    return CompletionResponse(
        user_challenge_id=str(user_challenge_id),
        status=result.user_challenge.status,
        reward=result.reward,
        transaction_hash=result.tx_hash,
        already_processed=result.already_processed,
    )


# ── Single challenge ──


@router.get("/{challenge_id}", response_model=ChallengeResponse)
async def get_challenge(
    challenge_id: int,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    listing = await lifecycle.get_challenge_detail(db, challenge_id, user.id if user else None)
    return _challenge_response(listing, user)


@router.post("/{challenge_id}/contract", response_model=ChallengeResponse)
async def update_contract(
    challenge_id: int,
    body: UpdateContractRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    """Link the deployed contract (creator only, once)."""
    await lifecycle.update_contract(
        db, user, challenge_id, body.transaction_hash, body.contract_address, body.contract_chain
    )
    await db.commit()
    listing = await lifecycle.get_challenge_detail(db, challenge_id, user.id)
    return _challenge_response(listing, user)


@router.post("/{challenge_id}/join", response_model=UserChallengeResponse, status_code=201)
async def join(
    challenge_id: int,
    body: JoinChallengeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    ledger: Ledger = Depends(get_ledger),
) -> UserChallengeResponse:
    """Join after the stake transaction is verified on-chain."""
    participation = await lifecycle.join_challenge(
        db, ledger, user, challenge_id, body.transaction_hash, body.invite_code
    )
    await db.commit()
    loaded = await lifecycle.get_participation(db, user.id, participation.id)
    return _participation_response(loaded)


@router.get("/{challenge_id}/daily-exercise", response_model=DailyExerciseResponse)
async def daily_exercise(
    challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> DailyExerciseResponse:
    result = await lifecycle.get_daily_exercise(db, user, challenge_id)
    return DailyExerciseResponse(
        challenge_id=str(challenge_id),
        user_challenge_id=str(result.info.user_challenge_id),
        description=result.description,
        exercise=result.exercise,
        daily_requirement=result.info.daily_requirement,
        current_progress=result.info.minutes_practiced,
        remaining_minutes=result.info.remaining_minutes,
    )


@router.post("/{challenge_id}/exit", response_model=ExitResponse)
async def exit_challenge(
    challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ExitResponse:
    """Withdraw from a non-hardcore challenge. No payout is issued."""
    participation = await lifecycle.exit_challenge(db, user, challenge_id)
    await db.commit()
    return ExitResponse(
        user_challenge_id=str(participation.id),
        status=participation.status,
        progress_percentage=participation.progress_percentage,
    )
