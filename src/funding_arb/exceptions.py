"""Custom exceptions for the funding sync and scan engine.

Connector, reconciliation and guard errors live here to avoid circular
imports between the exchange, collector and orchestration layers.
"""


class FundingArbError(Exception):
    """Base exception for all engine errors."""


class UpstreamError(FundingArbError):
    """An exchange API call failed.

    status is the HTTP status code when one was received, or None for
    timeouts and connection failures (treated as transient).
    """

    def __init__(self, exchange: str, status: int | None, message: str) -> None:
        super().__init__(f"[{exchange}] {message}" + (f" (status {status})" if status else ""))
        self.exchange = exchange
        self.status = status
        self.message = message

    @property
    def is_rate_limited(self) -> bool:
        return self.status == 429

    @property
    def is_unavailable(self) -> bool:
        return self.status is None or self.status >= 500

    @property
    def is_transient(self) -> bool:
        """Rate limiting and upstream unavailability are worth retrying."""
        return self.is_rate_limited or self.is_unavailable


class MalformedPayloadError(UpstreamError):
    """The exchange answered, but not with the shape we expect. Never retried."""

    def __init__(self, exchange: str, message: str) -> None:
        super().__init__(exchange, None, message)

    @property
    def is_transient(self) -> bool:
        return False


class ListingFetchError(FundingArbError):
    """One or more exchanges failed to return listings during reconciliation."""

    def __init__(self, exchanges: list[str]) -> None:
        super().__init__(
            f"Listing fetch failed for: {', '.join(exchanges)}. "
            "Reconciliation cancelled to keep the listing table intact."
        )
        self.exchanges = exchanges


class OperationInProgress(FundingArbError):
    """An operation of the same kind is already running."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"{operation} is already running")
        self.operation = operation
