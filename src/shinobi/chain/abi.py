"""Minimal ABIs for the staking contract and the USDC token."""

from __future__ import annotations

from typing import Any

STAKE_RECEIVED = "StakeReceived"
CHALLENGE_COMPLETED = "ChallengeCompleted"

STAKING_ABI: list[dict[str, Any]] = [
    {
        "type": "event",
        "name": STAKE_RECEIVED,
        "anonymous": False,
        "inputs": [
            {"name": "staker", "type": "address", "indexed": True},
            {"name": "challengeId", "type": "string", "indexed": False},
            {"name": "amount", "type": "uint256", "indexed": False},
            {"name": "isHardcore", "type": "bool", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": CHALLENGE_COMPLETED,
        "anonymous": False,
        "inputs": [
            {"name": "user", "type": "address", "indexed": True},
            {"name": "challengeId", "type": "string", "indexed": False},
            {"name": "reward", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "function",
        "name": "completeChallenge",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "user", "type": "address"},
            {"name": "challengeId", "type": "string"},
            {"name": "yieldBasisPoints", "type": "uint256"},
        ],
        "outputs": [],
    },
]

ERC20_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

DECODABLE_EVENTS = (STAKE_RECEIVED, CHALLENGE_COMPLETED)
