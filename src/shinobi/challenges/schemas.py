"""Pydantic schemas for challenge endpoints."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, Field

TX_HASH_PATTERN = r"^0x[0-9a-fA-F]{64}$"
ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"


# --- Requests ---


class CreateChallengeRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=128)
    description: str = Field("", max_length=2000)
    language_code: str = Field(..., min_length=2, max_length=8)
    proficiency_level: str = Field(..., min_length=1, max_length=16)
    duration_days: int
    daily_requirement: int
    stake_amount: Decimal = Field(..., decimal_places=6)
    yield_percentage: Decimal = Field(Decimal(5), decimal_places=2)
    is_hardcore: bool = False
    max_participants: int | None = Field(None, ge=1)
    invite_code: str | None = Field(None, min_length=4, max_length=16)
    contract_address: str | None = Field(None, pattern=ADDRESS_PATTERN)
    contract_chain: str = Field("polygon", max_length=32)
    transaction_hash: str | None = Field(None, pattern=TX_HASH_PATTERN)


class UpdateContractRequest(BaseModel):
    transaction_hash: str = Field(..., pattern=TX_HASH_PATTERN)
    contract_address: str = Field(..., pattern=ADDRESS_PATTERN)
    contract_chain: str = Field("polygon", max_length=32)


class JoinChallengeRequest(BaseModel):
    transaction_hash: str = Field(..., pattern=TX_HASH_PATTERN)
    invite_code: str | None = Field(None, max_length=16)


class RecordProgressRequest(BaseModel):
    minutes: int = Field(..., gt=0, le=1440)


# --- Responses ---


class ChallengeResponse(BaseModel):
    id: str
    title: str
    description: str
    language_code: str
    proficiency_level: str
    duration_days: int
    daily_requirement: int
    stake_amount: Decimal
    yield_percentage: Decimal
    is_hardcore: bool
    max_participants: int | None = None
    is_active: bool
    contract_address: str | None = None
    contract_chain: str | None = None
    creator_id: str
    creator_name: str | None = None
    created_at: dt.datetime | None = None
    participant_count: int
    is_at_capacity: bool
    potential_reward: Decimal
    is_participating: bool = False
    invite_code: str | None = None  # Only shown to the creator


class ChallengeSummary(BaseModel):
    id: str
    title: str
    language_code: str
    proficiency_level: str
    duration_days: int
    daily_requirement: int
    stake_amount: Decimal
    yield_percentage: Decimal
    is_hardcore: bool


class UserChallengeResponse(BaseModel):
    id: str
    challenge: ChallengeSummary
    status: str
    start_date: dt.datetime
    end_date: dt.datetime
    staked_amount: Decimal
    stake_tx_hash: str | None = None
    current_streak: int
    longest_streak: int
    progress_percentage: int
    completion_tx_hash: str | None = None


class ProgressResponse(BaseModel):
    user_challenge_id: str
    date: dt.date
    minutes_practiced: int
    completed: bool
    current_streak: int
    longest_streak: int
    progress_percentage: int


class LanguageInfo(BaseModel):
    code: str
    level: str


class TodayProgressResponse(BaseModel):
    user_challenge_id: str
    date: dt.date
    minutes_practiced: int
    completed: bool
    daily_requirement: int
    remaining_minutes: int
    current_streak: int
    longest_streak: int
    progress_percentage: int
    language: LanguageInfo


class DailyExerciseResponse(BaseModel):
    challenge_id: str
    user_challenge_id: str
    description: str
    exercise: str
    daily_requirement: int
    current_progress: int
    remaining_minutes: int


class CompletionResponse(BaseModel):
    user_challenge_id: str
    status: str
    reward: Decimal
    transaction_hash: str
    already_processed: bool


class ExitResponse(BaseModel):
    user_challenge_id: str
    status: str
    progress_percentage: int


class YieldResponse(BaseModel):
    yield_amount: Decimal
    total_reward: Decimal
    daily_yield: Decimal
    apy: Decimal
