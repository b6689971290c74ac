"""Verify that a claimed transaction is a stake deposit into the staking contract.

Read-only. The (user, challenge) uniqueness constraint, not this check, is
what guarantees a stake is only ever attached to one participation.
"""

from __future__ import annotations

from decimal import Decimal

import structlog

from shinobi.chain.abi import STAKE_RECEIVED
from shinobi.chain.ledger import Ledger, to_base_units
from shinobi.errors import VerificationFailed

logger = structlog.get_logger()


async def verify_stake(
    ledger: Ledger,
    tx_hash: str,
    expected_amount: Decimal,
    expected_wallet: str,
    staking_contract: str,
    decimals: int = 6,
) -> str:
    """Return ``tx_hash`` if it deposited exactly ``expected_amount`` from ``expected_wallet``.

    Checks, in order: receipt exists and succeeded; transaction targets the
    staking contract; the contract emitted ``StakeReceived``; the first such
    event names the expected staker; its amount equals the expected amount
    scaled to ``decimals``.

    Raises:
        VerificationFailed: on the first check that does not hold, or when
            the ledger cannot be read.
    """
    log = logger.bind(tx_hash=tx_hash, wallet=expected_wallet)
    try:
        expected_units = to_base_units(expected_amount, decimals)
    except ValueError as e:
        raise VerificationFailed(str(e)) from e

    try:
        receipt = await ledger.get_transaction_receipt(tx_hash)
        if receipt is None or not receipt.status:
            raise VerificationFailed("Transaction failed or not found")

        tx = await ledger.get_transaction(tx_hash)
    except VerificationFailed:
        raise
    except Exception as e:
        log.warning("stake_verification_ledger_error", error=str(e))
        raise VerificationFailed("Failed to verify staking transaction") from e

    if tx is None or tx.to is None or tx.to.lower() != staking_contract.lower():
        raise VerificationFailed("Transaction is not interacting with the staking contract")

    events = receipt.events(staking_contract, STAKE_RECEIVED)
    if not events:
        raise VerificationFailed("No staking event found in transaction")

    event = events[0]
    staker = str(event.args.get("staker", ""))
    if staker.lower() != expected_wallet.lower():
        raise VerificationFailed("Staker address does not match user wallet")

    # Exact integer comparison in base units; the decimal forms are never compared.
    if str(event.args.get("amount")) != str(expected_units):
        raise VerificationFailed("Staked amount does not match required amount")

    log.info("stake_verified", amount_units=expected_units)
    return tx_hash
