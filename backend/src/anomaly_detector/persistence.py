"""
Supabase persistence for uploaded transactions.

Rows are mapped to the ``transactions`` table schema and inserted in
fixed-size batches, one batch at a time.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from supabase import Client, create_client

from . import observability
from .config import Settings
from .errors import PersistenceError
from .logger import log_batch_persisted, log_persistence_skipped
from .models import PersistenceReport, TransactionRow

logger = logging.getLogger(__name__)


def chunk_records(records: Sequence[Dict[str, Any]], size: int) -> List[List[Dict[str, Any]]]:
    """Split records into consecutive batches of at most ``size`` items."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(records[start:start + size]) for start in range(0, len(records), size)]


class SupabaseTransactionStore:
    """
    Writes transaction rows to a Supabase table.

    Persistence is disabled (not an error) when no Supabase URL is configured.
    A failed batch stops the save: earlier batches stay committed and later
    batches are never attempted.
    """

    BATCH_SIZE = 1000

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        table: str = "transactions",
        batch_size: int = BATCH_SIZE,
        client: Optional[Client] = None,
    ):
        """
        Initialize the store.

        Args:
            supabase_url: Project URL; None disables persistence
            supabase_key: API key used to create the client
            table: Target table name
            batch_size: Records per insert call
            client: Pre-built Supabase client (skips create_client)
        """
        self.supabase_url = supabase_url
        self.supabase_key = supabase_key
        self.table = table
        self.batch_size = batch_size
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseTransactionStore":
        return cls(
            supabase_url=settings.supabase_url,
            supabase_key=settings.supabase_key,
            table=settings.supabase_table,
            batch_size=settings.persist_batch_size,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.supabase_url)

    def _get_client(self) -> Client:
        if self._client is None:
            if not self.supabase_key:
                raise PersistenceError("SUPABASE_KEY is not configured")
            try:
                self._client = create_client(self.supabase_url, self.supabase_key)
            except Exception as e:
                raise PersistenceError(str(e)) from e
            logger.info(f"Supabase client initialized for {self.supabase_url}")
        return self._client

    async def save_transactions(self, rows: Sequence[TransactionRow]) -> PersistenceReport:
        """
        Persist rows in sequential batches.

        Args:
            rows: Full ordered row sequence from ingestion

        Returns:
            PersistenceReport with written record and batch counts

        Raises:
            PersistenceError: On the first failing batch, with the store's message
        """
        if not self.enabled:
            log_persistence_skipped(logger, len(rows))
            return PersistenceReport(skipped=True)

        client = self._get_client()
        records = [row.to_record() for row in rows]
        batches = chunk_records(records, self.batch_size)

        report = PersistenceReport()
        for number, batch in enumerate(batches, start=1):
            try:
                await asyncio.to_thread(
                    lambda: client.table(self.table).insert(batch).execute()
                )
            except Exception as e:
                message = getattr(e, "message", None) or str(e)
                logger.error(
                    "Supabase insert error",
                    extra={
                        "status": "batch_failed",
                        "details": {
                            "table": self.table,
                            "batch_number": number,
                            "total_batches": len(batches),
                            "error": message,
                        },
                    },
                )
                raise PersistenceError(message) from e

            report.records_written += len(batch)
            report.batches_written += 1
            observability.persisted_batches_total.inc()
            observability.persisted_records_total.inc(len(batch))
            log_batch_persisted(logger, self.table, number, len(batches), len(batch))

        return report
