"""Domain errors raised by services and rendered by the global error handler."""

from __future__ import annotations

from typing import Any


class ShinobiError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str, **extra: Any) -> None:  # noqa: ANN401
        super().__init__(message)
        self.message = message
        self.extra = extra


class Unauthorized(ShinobiError):
    status_code = 401


class Forbidden(ShinobiError):
    status_code = 403


class NotFound(ShinobiError):
    status_code = 404


class InvalidState(ShinobiError):
    """Action not permitted in the current status (e.g. exiting a hardcore challenge)."""

    status_code = 409


class ValidationFailed(ShinobiError):
    status_code = 400


class VerificationFailed(ShinobiError):
    """On-chain proof does not match the claim."""

    status_code = 400


class InsufficientFunds(ShinobiError):
    """Staking contract cannot cover the payout."""

    status_code = 503


class LedgerSubmissionFailed(ShinobiError):
    """Payout transaction not confirmed after all attempts. Safe to retry later."""

    status_code = 502
    retryable = True
    submitted_hashes: tuple[str, ...] = ()


class ServiceUnavailable(ShinobiError):
    """A backing service (Redis) is not reachable."""

    status_code = 503


class UpstreamProviderError(ShinobiError):
    """Third-party LLM provider failure."""

    status_code = 502
