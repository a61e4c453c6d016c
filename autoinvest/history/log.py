"""Append-only log of execution attempts."""
import asyncio
from typing import List, Optional

import structlog
from pydantic import TypeAdapter

from autoinvest.core.models import ExecutionRecord
from autoinvest.storage.base import DurableStore

logger = structlog.get_logger(__name__)

HISTORY_KEY = "execution_history"

_records_adapter = TypeAdapter(List[ExecutionRecord])


class HistoryLog:
    """
    Execution records in insertion order.

    Records are frozen and never mutated once appended. Display order
    (newest first) is derived on read.
    """

    def __init__(self, store: Optional[DurableStore] = None):
        self.store = store
        self._lock = asyncio.Lock()
        self._records: List[ExecutionRecord] = []

    async def load(self) -> int:
        """Restore records from the store. Returns the number loaded."""
        if self.store is None:
            return 0

        blob = await self.store.load(HISTORY_KEY)
        if blob is None:
            return 0

        records = _records_adapter.validate_json(blob)
        async with self._lock:
            self._records = list(records)

        logger.info("history_log.loaded", count=len(records))
        return len(records)

    def dump(self) -> bytes:
        return _records_adapter.dump_json(self._records)

    async def append(self, record: ExecutionRecord) -> ExecutionRecord:
        async with self._lock:
            self._records.append(record)
            if self.store is not None:
                await self.store.save(HISTORY_KEY, self.dump())

        logger.debug(
            "history_log.appended",
            record_id=record.id,
            order_id=record.order_id,
            success=record.success,
            error_reason=record.error_reason.value if record.error_reason else None,
        )
        return record

    def records(self) -> List[ExecutionRecord]:
        """All records in insertion order."""
        return list(self._records)

    def newest_first(self, limit: Optional[int] = None) -> List[ExecutionRecord]:
        records = list(reversed(self._records))
        return records[:limit] if limit is not None else records

    def for_order(self, order_id: str) -> List[ExecutionRecord]:
        return [r for r in self._records if r.order_id == order_id]

    def failures_for_order(self, order_id: str) -> List[ExecutionRecord]:
        return [r for r in self._records if r.order_id == order_id and not r.success]

    def consecutive_failures(self, order_id: str) -> int:
        """Failures for an order since its last success."""
        count = 0
        for record in reversed(self._records):
            if record.order_id != order_id:
                continue
            if record.success:
                break
            count += 1
        return count

    @property
    def success_count(self) -> int:
        return sum(1 for r in self._records if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self._records if not r.success)

    def __len__(self) -> int:
        return len(self._records)
