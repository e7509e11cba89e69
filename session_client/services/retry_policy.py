"""
Transient-Failure Retry Policy.

Pure data: how many physical attempts a request gets and how long to
wait between them.  Only ``SERVER_ERROR`` and ``NETWORK_ERROR`` are ever
retried; a definitive client error goes straight back to the caller.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from session_client.config import ClientConfig
from session_client.models.enums import ResponseKind

_RETRYABLE_KINDS: frozenset[ResponseKind] = frozenset({
    ResponseKind.SERVER_ERROR,
    ResponseKind.NETWORK_ERROR,
})


class RetryPolicy(BaseModel):
    """Attempt budget plus exponential delay table.

    Attributes
    ----------
    max_attempts:
        Physical attempts per dispatch generation (first try included).
    delays_ms:
        ``delays_ms[n]`` is slept after failed attempt ``n + 1``.
    """

    max_attempts: int = Field(default=3, ge=1)
    delays_ms: tuple[int, ...] = (1000, 2000, 4000)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _cover_budget(self) -> "RetryPolicy":
        if len(self.delays_ms) < self.max_attempts:
            raise ValueError("delays_ms must have an entry for every attempt")
        return self

    @classmethod
    def from_config(cls, config: ClientConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.MAX_NETWORK_RETRIES,
            delays_ms=tuple(config.RETRY_DELAYS_MS),
        )

    @staticmethod
    def is_retryable(kind: ResponseKind) -> bool:
        return kind in _RETRYABLE_KINDS

    def should_retry(self, kind: ResponseKind, attempt: int) -> bool:
        """``True`` when *kind* is transient and *attempt* (1-based) was
        not the last one in the budget.
        """
        return self.is_retryable(kind) and attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        return self.delays_ms[attempt - 1] / 1000.0
