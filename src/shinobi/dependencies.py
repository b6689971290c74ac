"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from shinobi.chain.ledger import Ledger, Web3Ledger
from shinobi.chain.reward_distributor import RewardDistributor
from shinobi.config import get_settings
from shinobi.learn.openrouter import OpenRouterClient


@lru_cache
def _web3_ledger() -> Web3Ledger:
    settings = get_settings()
    return Web3Ledger(
        settings.rpc_url,
        settings.staking_contract_address,
        gas_limit=settings.reward_gas_limit,
    )


def get_ledger() -> Ledger:
    """Ledger client for the configured RPC endpoint (overridden in tests)."""
    return _web3_ledger()


def get_distributor(ledger: Ledger = Depends(get_ledger)) -> RewardDistributor:
    return RewardDistributor.from_settings(ledger, get_settings())


def get_llm_client() -> OpenRouterClient:
    return OpenRouterClient.from_settings(get_settings())
