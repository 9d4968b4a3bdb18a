"""
Chunked batch pipeline engine and the jobs built on it.
"""
from hobbyjobs.batch.engine import (
    BatchJob,
    ItemProcessor,
    ItemReader,
    ItemWriter,
    RunContext,
    RunListener,
    RunSummary,
    TRIGGER_ADMIN_MANUAL,
    TRIGGER_CRON,
)
from hobbyjobs.batch.skip_policy import LimitedSkipPolicy, SkipPolicy

__all__ = [
    "BatchJob",
    "ItemReader",
    "ItemProcessor",
    "ItemWriter",
    "RunContext",
    "RunListener",
    "RunSummary",
    "LimitedSkipPolicy",
    "SkipPolicy",
    "TRIGGER_CRON",
    "TRIGGER_ADMIN_MANUAL",
]
