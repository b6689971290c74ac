"""EVM ledger access.

Services depend on the ``Ledger`` protocol; ``Web3Ledger`` is the production
implementation over JSON-RPC. Amounts cross this boundary as integers scaled
by 10**decimals (USDC: 6).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import structlog
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import MismatchedABI, TimeExhausted, TransactionNotFound

from shinobi.chain.abi import DECODABLE_EVENTS, ERC20_ABI, STAKING_ABI

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LogEntry:
    """A receipt log. ``event`` is None when it does not decode against a known ABI."""

    address: str
    event: str | None
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    status: bool
    logs: tuple[LogEntry, ...] = ()

    def events(self, contract_address: str, event_name: str) -> list[LogEntry]:
        """Decoded events named ``event_name`` emitted by ``contract_address``."""
        target = contract_address.lower()
        return [log for log in self.logs if log.address.lower() == target and log.event == event_name]


@dataclass(frozen=True)
class LedgerTransaction:
    tx_hash: str
    to: str | None
    sender: str | None = None


class Ledger(Protocol):
    """Read/write operations the challenge core needs from the chain."""

    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None: ...

    async def get_transaction(self, tx_hash: str) -> LedgerTransaction | None: ...

    async def get_token_balance(self, token_address: str, holder: str) -> int: ...

    async def submit_contract_call(
        self,
        contract_address: str,
        function_name: str,
        args: list[Any],
        signer_key: str,
        priority_fee_wei: int | None = None,
    ) -> str: ...

    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> Receipt | None: ...


# ---------------------------------------------------------------------------
# Fixed-point conversion
# ---------------------------------------------------------------------------


def to_base_units(amount: Decimal | float | int | str, decimals: int = 6) -> int:
    """Scale a token amount to its integer on-chain representation.

    Raises:
        ValueError: negative, non-numeric, or more precise than ``decimals``.
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        msg = f"Invalid token amount: {amount!r}"
        raise ValueError(msg) from e
    if not value.is_finite() or value < 0:
        msg = f"Invalid token amount: {amount!r}"
        raise ValueError(msg)
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        msg = f"Amount {amount} has more than {decimals} decimal places"
        raise ValueError(msg)
    return int(scaled)


def from_base_units(units: int, decimals: int = 6) -> Decimal:
    """Inverse of to_base_units."""
    return Decimal(units).scaleb(-decimals)


# ---------------------------------------------------------------------------
# web3.py implementation
# ---------------------------------------------------------------------------


class Web3Ledger:
    """JSON-RPC ledger client backed by web3.py."""

    def __init__(self, rpc_url: str, staking_contract_address: str, gas_limit: int = 500_000) -> None:
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.gas_limit = gas_limit
        self._staking = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(staking_contract_address),
            abi=STAKING_ABI,
        )

    def _decode_log(self, raw_log: Any) -> LogEntry:  # noqa: ANN401
        address = str(raw_log["address"])
        for event_name in DECODABLE_EVENTS:
            event = getattr(self._staking.events, event_name)()
            try:
                decoded = event.process_log(raw_log)
            except (MismatchedABI, ValueError):
                continue
            return LogEntry(address=address, event=event_name, args=dict(decoded["args"]))
        return LogEntry(address=address, event=None)

    def _to_receipt(self, raw: Any) -> Receipt:  # noqa: ANN401
        return Receipt(
            tx_hash=AsyncWeb3.to_hex(raw["transactionHash"]),
            status=raw["status"] == 1,
            logs=tuple(self._decode_log(log) for log in raw["logs"]),
        )

    async def get_transaction_receipt(self, tx_hash: str) -> Receipt | None:
        try:
            raw = await self.w3.eth.get_transaction_receipt(tx_hash)  # type: ignore[arg-type]
        except TransactionNotFound:
            return None
        return self._to_receipt(raw)

    async def get_transaction(self, tx_hash: str) -> LedgerTransaction | None:
        try:
            raw = await self.w3.eth.get_transaction(tx_hash)  # type: ignore[arg-type]
        except TransactionNotFound:
            return None
        return LedgerTransaction(tx_hash=tx_hash, to=raw.get("to"), sender=raw.get("from"))

    async def get_token_balance(self, token_address: str, holder: str) -> int:
        token = self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(token_address), abi=ERC20_ABI)
        return int(await token.functions.balanceOf(AsyncWeb3.to_checksum_address(holder)).call())

    async def submit_contract_call(
        self,
        contract_address: str,
        function_name: str,
        args: list[Any],
        signer_key: str,
        priority_fee_wei: int | None = None,
    ) -> str:
        account = Account.from_key(signer_key)
        contract = self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(contract_address), abi=STAKING_ABI)
        params: dict[str, Any] = {
            "from": account.address,
            "nonce": await self.w3.eth.get_transaction_count(account.address, "pending"),
            "gas": self.gas_limit,
            "chainId": await self.w3.eth.chain_id,
        }
        if priority_fee_wei is not None:
            params["maxPriorityFeePerGas"] = priority_fee_wei
        # web3 only accepts checksummed address arguments; wallets are stored lower-cased.
        call_args = [
            AsyncWeb3.to_checksum_address(a) if isinstance(a, str) and AsyncWeb3.is_address(a) else a for a in args
        ]
        tx = await contract.functions[function_name](*call_args).build_transaction(params)
        signed = account.sign_transaction(tx)
        tx_hash = AsyncWeb3.to_hex(await self.w3.eth.send_raw_transaction(signed.raw_transaction))
        logger.info("ledger_tx_submitted", tx_hash=tx_hash, function=function_name, priority_fee_wei=priority_fee_wei)
        return tx_hash

    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> Receipt | None:
        try:
            raw = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)  # type: ignore[arg-type]
        except TimeExhausted:
            return None
        return self._to_receipt(raw)
