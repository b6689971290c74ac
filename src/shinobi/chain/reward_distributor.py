"""Pay out stake + yield for a completed challenge, exactly once.

The retry policy is a plain fold over ``attempt(n)`` so it can be tested
without a network: up to ``max_attempts`` tries, waiting ``backoff * n``
after failed attempt ``n``, and offering a higher priority fee on later tries.
The whole loop runs under one overall timeout.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, TypeVar

import structlog

from shinobi.chain.abi import CHALLENGE_COMPLETED
from shinobi.chain.ledger import Ledger, from_base_units, to_base_units
from shinobi.errors import InsufficientFunds, LedgerSubmissionFailed

if TYPE_CHECKING:
    from shinobi.config import Settings
    from shinobi.db.models import UserChallenge

logger = structlog.get_logger()

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class AttemptFailed(Exception):
    """A single payout attempt did not produce a proven settlement."""


@dataclass(frozen=True)
class DistributionResult:
    tx_hash: str
    reward: Decimal
    already_processed: bool = False


def priority_fee_for_attempt(attempt: int, step_wei: int) -> int | None:
    """Market rate on the first attempt, ``step * attempt`` wei afterwards."""
    if attempt <= 1:
        return None
    return step_wei * attempt


async def run_with_retries(
    attempt: Callable[[int], Awaitable[T]],
    *,
    max_attempts: int = 3,
    backoff_seconds: float = 5.0,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Call ``attempt(1..max_attempts)`` until one returns.

    Raises:
        LedgerSubmissionFailed: all attempts failed; carries the last error.
    """
    last_error: Exception | None = None
    for n in range(1, max_attempts + 1):
        try:
            return await attempt(n)
        except Exception as e:  # noqa: BLE001
            last_error = e
            logger.warning("reward_attempt_failed", attempt=n, max_attempts=max_attempts, error=str(e))
            if n < max_attempts:
                await sleep(backoff_seconds * n)

    detail = str(last_error) if last_error else ""
    msg = detail or "Failed to process reward distribution after multiple attempts"
    raise LedgerSubmissionFailed(msg) from last_error


class RewardDistributor:
    """Submits ``completeChallenge`` to the staking contract with bounded retries."""

    def __init__(
        self,
        ledger: Ledger,
        *,
        staking_contract: str,
        token_address: str,
        admin_key: str,
        decimals: int = 6,
        max_attempts: int = 3,
        backoff_seconds: float = 5.0,
        priority_fee_step_wei: int = 1_000_000_000,
        confirmation_timeout: float = 20.0,
        overall_timeout: float = 30.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.ledger = ledger
        self.staking_contract = staking_contract
        self.token_address = token_address
        self.admin_key = admin_key
        self.decimals = decimals
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.priority_fee_step_wei = priority_fee_step_wei
        self.confirmation_timeout = confirmation_timeout
        self.overall_timeout = overall_timeout
        self._sleep = sleep

    @classmethod
    def from_settings(cls, ledger: Ledger, settings: Settings, sleep: Sleep = asyncio.sleep) -> RewardDistributor:
        return cls(
            ledger,
            staking_contract=settings.staking_contract_address,
            token_address=settings.usdc_contract_address,
            admin_key=settings.staking_admin_private_key,
            decimals=settings.token_decimals,
            max_attempts=settings.reward_max_attempts,
            backoff_seconds=settings.reward_retry_backoff_seconds,
            priority_fee_step_wei=settings.priority_fee_step_wei,
            confirmation_timeout=settings.confirmation_timeout_seconds,
            overall_timeout=settings.reward_timeout_seconds,
            sleep=sleep,
        )

    async def _settled(self, tx_hash: str) -> bool:
        """True if ``tx_hash`` is mined, succeeded and emitted ``ChallengeCompleted``."""
        try:
            receipt = await self.ledger.get_transaction_receipt(tx_hash)
        except Exception as e:  # noqa: BLE001
            # Unverifiable: treat as unsettled.
            logger.warning("previous_payout_check_failed", tx_hash=tx_hash, error=str(e))
            return False
        if receipt is None or not receipt.status:
            return False
        return bool(receipt.events(self.staking_contract, CHALLENGE_COMPLETED))

    async def find_settlement(self, candidates: Iterable[str | None]) -> str | None:
        """First hash in ``candidates`` that already paid out, if any."""
        for tx_hash in dict.fromkeys(h for h in candidates if h):
            if await self._settled(tx_hash):
                return tx_hash
        return None

    async def distribute(
        self,
        user_challenge: UserChallenge,
        wallet_address: str,
        reward_amount: Decimal,
        yield_bps: int,
        previous_hashes: Sequence[str] = (),
    ) -> DistributionResult:
        """Pay ``reward_amount`` to ``wallet_address`` for ``user_challenge``.

        ``completion_tx_hash`` and ``previous_hashes`` (submissions from
        earlier failed claims) are checked first; a settled one is returned
        instead of submitting again. The retry loop is bounded by
        ``overall_timeout`` seconds.

        Never mutates ``user_challenge``; the caller records the returned hash.
        Every hash submitted by a failed call is on ``error.submitted_hashes``.

        Raises:
            InsufficientFunds: the contract's token balance cannot cover the payout.
            LedgerSubmissionFailed: missing admin key, unreadable balance,
                every attempt failed, or the overall timeout elapsed.
        """
        log = logger.bind(user_challenge_id=user_challenge.id, wallet=wallet_address)

        settled = await self.find_settlement([user_challenge.completion_tx_hash, *previous_hashes])
        if settled is not None:
            log.info("reward_already_processed", tx_hash=settled)
            return DistributionResult(tx_hash=settled, reward=reward_amount, already_processed=True)

        if not self.admin_key:
            raise LedgerSubmissionFailed("Missing contract admin credentials")

        required = to_base_units(Decimal(reward_amount).quantize(Decimal(1).scaleb(-self.decimals)), self.decimals)
        try:
            balance = await self.ledger.get_token_balance(self.token_address, self.staking_contract)
        except Exception as e:
            raise LedgerSubmissionFailed("Failed to read staking contract balance") from e
        if balance < required:
            log.warning(
                "reward_insufficient_funds",
                balance=str(from_base_units(balance, self.decimals)),
                required=str(reward_amount),
            )
            raise InsufficientFunds("Insufficient contract balance for reward distribution")

        challenge_ref = str(user_challenge.challenge_id)
        submitted: list[str] = []

        async def attempt(n: int) -> str:
            log.info("reward_attempt", attempt=n)
            tx_hash = await self.ledger.submit_contract_call(
                self.staking_contract,
                "completeChallenge",
                [wallet_address, challenge_ref, yield_bps],
                self.admin_key,
                priority_fee_for_attempt(n, self.priority_fee_step_wei),
            )
            submitted.append(tx_hash)
            receipt = await self.ledger.wait_for_confirmation(tx_hash, self.confirmation_timeout)
            if receipt is None:
                raise AttemptFailed(f"Transaction {tx_hash} not confirmed")
            if not receipt.status:
                raise AttemptFailed("Transaction failed")
            if not receipt.events(self.staking_contract, CHALLENGE_COMPLETED):
                raise AttemptFailed("No completion event found in transaction")
            return receipt.tx_hash

        try:
            tx_hash = await asyncio.wait_for(
                run_with_retries(
                    attempt,
                    max_attempts=self.max_attempts,
                    backoff_seconds=self.backoff_seconds,
                    sleep=self._sleep,
                ),
                timeout=self.overall_timeout,
            )
        except asyncio.TimeoutError as e:
            log.warning("reward_distribution_timed_out", timeout=self.overall_timeout, submitted=len(submitted))
            err = LedgerSubmissionFailed("Reward distribution timed out")
            err.submitted_hashes = tuple(submitted)
            raise err from e
        except LedgerSubmissionFailed as e:
            e.submitted_hashes = tuple(submitted)
            raise
        log.info("reward_distributed", tx_hash=tx_hash, reward=str(reward_amount))
        return DistributionResult(tx_hash=tx_hash, reward=reward_amount)
