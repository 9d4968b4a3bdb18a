"""
Chunked Batch Engine

A job is a reader, a processor and a writer driven in bounded chunks:

    reader.read() -> item | None        (None = exhausted)
    processor.process(item) -> result | None   (None = filtered, nothing to write)
    writer.write([result, ...])         (once per chunk, only non-filtered results)

Processor failures go through the skip policy. A skipped item is dropped and
the run continues; a refused skip (or any non-skippable error) aborts the run.
Aborted runs are not raised to the caller: ``run()`` returns a FAILED
``RunSummary`` after every listener has seen it.
"""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, Optional, Sequence, TypeVar

from hobbyjobs.batch.outcome import SideEffectTracker
from hobbyjobs.batch.skip_policy import SkipPolicy
from hobbyjobs.core.clock import Clock, utcnow
from hobbyjobs.core.exceptions import PipelineAbortedError
from hobbyjobs.core.logging import get_logger, job_log_context
from hobbyjobs.db.models.run_audit import RunStatus

logger = get_logger(__name__)

T = TypeVar("T")
U = TypeVar("U")

TRIGGER_CRON = "CRON"
TRIGGER_ADMIN_MANUAL = "ADMIN_MANUAL"


class ItemReader(ABC, Generic[T]):
    """מקור פריטים לעיבוד: מחזיר None כשאין עוד"""

    read_count: int = 0

    @abstractmethod
    async def read(self) -> Optional[T]:
        ...


class ItemProcessor(ABC, Generic[T, U]):
    """ממפה פריט למצב החדש שלו, או None אם אין מה לכתוב"""

    @abstractmethod
    async def process(self, item: T) -> Optional[U]:
        ...


class ItemWriter(ABC, Generic[U]):
    """
    Persists one chunk and runs its best-effort side effects.

    Counters live on the writer and are reset by the run listener before
    each run.
    """

    def __init__(self) -> None:
        self.items_written = 0
        self.side_effects = SideEffectTracker()

    def reset(self) -> None:
        self.items_written = 0
        self.side_effects.reset()

    @abstractmethod
    async def write(self, items: Sequence[U]) -> None:
        ...


@dataclass
class RunContext:
    job_name: str
    run_id: str
    run_timestamp: str
    trigger: str
    started_at: datetime


@dataclass
class RunSummary:
    """תוצאת הרצה אחת: מה שה-listeners רואים ומה שמוחזר לקורא"""

    job_name: str
    run_id: str
    run_timestamp: str
    trigger: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: RunStatus = RunStatus.COMPLETED
    read_count: int = 0
    filter_count: int = 0
    skip_count: int = 0
    write_count: int = 0
    error: Optional[BaseException] = field(default=None, repr=False)

    @property
    def failed(self) -> bool:
        return self.status == RunStatus.FAILED

    @property
    def error_text(self) -> Optional[str]:
        if self.error is None:
            return None
        return f"{type(self.error).__name__}: {self.error}"


class RunListener(ABC):
    """hooks שנקראים בתחילת ובסוף כל הרצה"""

    async def before_run(self, context: RunContext) -> None:
        return None

    async def after_run(self, summary: RunSummary) -> None:
        return None


class BatchJob(Generic[T, U]):
    """
    Generic chunk-oriented job.

    Example:
        job = BatchJob(
            name="paymentReconciliationJob",
            reader=StalePaymentReader(db),
            processor=PaymentReconciliationProcessor(checkout_client),
            writer=PaymentReconciliationWriter(db, publisher),
            chunk_size=10,
            skip_policy=LimitedSkipPolicy(max_skip_count=50),
            listeners=[AuditRunListener(db, reader, writer)],
        )
        summary = await job.run(trigger=TRIGGER_CRON)
    """

    def __init__(
        self,
        name: str,
        reader: ItemReader[T],
        processor: ItemProcessor[T, U],
        writer: ItemWriter[U],
        chunk_size: int,
        skip_policy: SkipPolicy,
        listeners: Sequence[RunListener] = (),
        clock: Clock = utcnow,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.name = name
        self.reader = reader
        self.processor = processor
        self.writer = writer
        self.chunk_size = chunk_size
        self.skip_policy = skip_policy
        self.listeners = list(listeners)
        self._clock = clock

    async def run(
        self,
        run_timestamp: Optional[str] = None,
        trigger: str = TRIGGER_CRON,
    ) -> RunSummary:
        started_at = self._clock()
        # פרמטר ייחודי לכל הרצה: שתי הרצות לעולם לא חולקות זהות
        run_timestamp = run_timestamp or started_at.isoformat()
        run_id = uuid.uuid4().hex[:12]
        with job_log_context(self.name, run_id):
            return await self._run(run_id, run_timestamp, trigger, started_at)

    async def _run(
        self,
        run_id: str,
        run_timestamp: str,
        trigger: str,
        started_at: datetime,
    ) -> RunSummary:
        context = RunContext(
            job_name=self.name,
            run_id=run_id,
            run_timestamp=run_timestamp,
            trigger=trigger,
            started_at=started_at,
        )
        summary = RunSummary(
            job_name=self.name,
            run_id=run_id,
            run_timestamp=run_timestamp,
            trigger=trigger,
            started_at=started_at,
        )

        self.skip_policy.reset()
        for listener in self.listeners:
            await listener.before_run(context)

        logger.info(
            f"Job started: {self.name}",
            extra_data={"run_timestamp": run_timestamp, "trigger": trigger},
        )

        try:
            await self._execute(summary)
        except Exception as exc:
            summary.status = RunStatus.FAILED
            summary.error = exc
            logger.error(
                f"Job aborted: {self.name}",
                extra_data={
                    "read_count": summary.read_count,
                    "skip_count": summary.skip_count,
                    "error": summary.error_text,
                },
                exc_info=True,
            )

        summary.finished_at = self._clock()

        for listener in self.listeners:
            await listener.after_run(summary)

        logger.info(
            f"Job finished: {self.name}",
            extra_data={
                "status": summary.status.value,
                "read_count": summary.read_count,
                "filter_count": summary.filter_count,
                "skip_count": summary.skip_count,
                "write_count": summary.write_count,
            },
        )
        return summary

    async def _execute(self, summary: RunSummary) -> None:
        exhausted = False
        while not exhausted:
            chunk: list[U] = []
            read_in_chunk = 0

            while read_in_chunk < self.chunk_size:
                item = await self.reader.read()
                if item is None:
                    exhausted = True
                    break
                read_in_chunk += 1
                summary.read_count += 1

                result = await self._process_item(item, summary)
                if result is None:
                    continue
                chunk.append(result)

            if chunk:
                await self.writer.write(chunk)
                summary.write_count += len(chunk)

    async def _process_item(self, item: T, summary: RunSummary) -> Optional[U]:
        try:
            result = await self.processor.process(item)
        except Exception as exc:
            if not self.skip_policy.should_skip(exc):
                raise PipelineAbortedError(
                    self.name,
                    f"{type(exc).__name__} not skipped after {summary.skip_count} skips",
                    cause=exc,
                ) from exc
            summary.skip_count += 1
            logger.warning(
                "Item skipped after processing failure",
                extra_data={"skip_count": summary.skip_count, "error": str(exc)},
            )
            return None

        if result is None:
            summary.filter_count += 1
        return result
