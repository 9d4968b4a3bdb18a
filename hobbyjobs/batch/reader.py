"""
Buffered query reader.

The first ``read()`` runs exactly one query for everything eligible as of
``clock()``, buffers the rows and serves them one at a time. Once the buffer
is drained every further call returns None without touching the database.
"""
from __future__ import annotations

from abc import abstractmethod
from collections import deque
from datetime import datetime
from typing import Generic, Optional, TypeVar

from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession

from hobbyjobs.batch.engine import ItemReader
from hobbyjobs.core.clock import Clock, utcnow
from hobbyjobs.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class BufferedQueryReader(ItemReader[T], Generic[T]):

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self._clock = clock
        self._buffer: Optional[deque[T]] = None
        self.read_count = 0

    @abstractmethod
    def build_query(self, now: datetime) -> Select:
        """השאילתה היחידה של ה-reader, יחסית לזמן ההרצה"""

    async def read(self) -> Optional[T]:
        if self._buffer is None:
            now = self._clock()
            result = await self.db.execute(self.build_query(now))
            self._buffer = deque(result.scalars().all())
            logger.info(
                f"{type(self).__name__} loaded items",
                extra_data={"count": len(self._buffer), "as_of": now.isoformat()},
            )

        if not self._buffer:
            return None

        self.read_count += 1
        return self._buffer.popleft()
