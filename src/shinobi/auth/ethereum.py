"""EIP-191 personal-sign verification for wallet sign-in."""

from __future__ import annotations

from eth_account import Account
from eth_account.messages import encode_defunct

SIGN_IN_TEMPLATE = (
    "Welcome to ShinobiSpeak!\n\n"
    "Please sign this message to verify your wallet ownership.\n\n"
    "This request will not trigger a blockchain transaction or cost any gas fees.\n\n"
    "Wallet address: {address}\n"
    "Nonce: {nonce}"
)


def build_sign_in_message(wallet_address: str, nonce: str) -> str:
    return SIGN_IN_TEMPLATE.format(address=wallet_address, nonce=nonce)


def recover_signer(message: str, signature: str) -> str:
    """Address that produced ``signature`` over ``message``.

    Raises:
        ValueError: malformed signature.
    """
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:
        msg = f"Malformed signature: {e}"
        raise ValueError(msg) from e


def verify_wallet_signature(wallet_address: str, message: str, signature: str) -> bool:
    """True if ``signature`` over ``message`` was made by ``wallet_address`` (case-insensitive)."""
    try:
        recovered = recover_signer(message, signature)
    except ValueError:
        return False
    return recovered.lower() == wallet_address.lower()
