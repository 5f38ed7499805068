"""Shared exception hierarchy for airdrop services."""

from collections.abc import Sequence

# ── Chain ─────────────────────────────────────────────────────────────────────


class ChainClientError(Exception):
    """Base exception for chain client errors."""


class RPCError(ChainClientError):
    """RPC call failed."""


class ChainConnectionError(ChainClientError):
    """Cannot reach the RPC endpoint."""


class ProxyLookupError(ChainClientError):
    """Proxy-chain lookup returned an unusable response."""


# ── Ingestion ─────────────────────────────────────────────────────────────────


class IngestionError(Exception):
    """Base exception for ingestion errors."""


class MalformedRecordError(IngestionError):
    """A raw record is missing fields or carries invalid amounts."""


# ── Allocation ────────────────────────────────────────────────────────────────


class AllocationError(Exception):
    """Base exception for allocation errors."""


class InvalidGlobalStateError(AllocationError):
    """Global stake parameters have a non-positive share denominator."""


class NoEligibleStakeError(AllocationError):
    """Total countable stake is zero; shares cannot be computed.

    The classified records stay available on ``records`` for diagnostics.
    """

    def __init__(self, message: str, records: Sequence[object] = ()) -> None:
        super().__init__(message)
        self.records: tuple[object, ...] = tuple(records)


# ── Snapshot ──────────────────────────────────────────────────────────────────


class SnapshotError(Exception):
    """Base exception for snapshot run errors."""


class SnapshotNotFoundError(SnapshotError):
    """Requested snapshot does not exist."""


# ── Export ────────────────────────────────────────────────────────────────────


class ExportError(Exception):
    """Base exception for export errors."""
