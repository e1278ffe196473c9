"""Replica replication status: recovery mode, replay lag and WAL receiver state."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from ...logger import get_logger

if TYPE_CHECKING:
    from .pool import AsyncConnectionPool

logger = get_logger(__name__)

# Lag is 0 while the replica has replayed everything it received; otherwise it
# is the age of the last replayed transaction.
REPLICATION_STATUS_QUERY = """
SELECT
    pg_is_in_recovery() AS in_recovery,
    CASE
        WHEN NOT pg_is_in_recovery() THEN NULL
        WHEN pg_last_wal_receive_lsn() = pg_last_wal_replay_lsn() THEN 0::float8
        ELSE EXTRACT(EPOCH FROM now() - pg_last_xact_replay_timestamp())::float8
    END AS lag_seconds,
    (SELECT status FROM pg_stat_wal_receiver LIMIT 1) AS wal_receiver_status
"""


class ReplicationStatus(BaseModel):
    """Replication state as seen from the replica."""

    model_config = ConfigDict(frozen=True)

    address: str
    in_recovery: bool
    lag_seconds: float | None = None
    wal_receiver_status: str | None = None
    max_lag_seconds: float = Field(default=60.0, ge=0.0)
    checked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_streaming(self) -> bool:
        return self.wal_receiver_status == "streaming"

    @property
    def is_lagging(self) -> bool:
        """True when lag is known and above the threshold."""
        return self.lag_seconds is not None and self.lag_seconds > self.max_lag_seconds

    @property
    def promoted(self) -> bool:
        """A server configured as replica that left recovery has been promoted."""
        return not self.in_recovery


async def aread_replication_status(
    pool: AsyncConnectionPool,
    max_lag_seconds: float,
    timeout: float,
) -> ReplicationStatus:
    """Read replication state from ``pool``.

    Raises
    ------
    ConnectivityError
        If the replica cannot be reached within ``timeout``.
    QueryFailedError
        If the server rejects the status query.
    """
    row = await pool.afetchrow(REPLICATION_STATUS_QUERY, timeout=timeout)
    if row is None:
        msg = "replication status query returned no rows"
        raise RuntimeError(msg)

    status = ReplicationStatus(
        address=pool.descriptor.address,
        in_recovery=row["in_recovery"],
        lag_seconds=row["lag_seconds"],
        wal_receiver_status=row["wal_receiver_status"],
        max_lag_seconds=max_lag_seconds,
    )

    if status.promoted:
        logger.warning("Replica is not in recovery mode, it may have been promoted", address=status.address)
    elif status.is_lagging:
        logger.warning("High replication lag", address=status.address, lag_seconds=status.lag_seconds)
    elif not status.is_streaming:
        logger.warning("WAL receiver not streaming", address=status.address, status=status.wal_receiver_status)
    return status
