"""
Skip Policy: כמה כשלים זמניים מותר לבלוע לפני שעוצרים הרצה.

מונה הדילוגים נשמר לאורך כל ההרצה (לא לכל chunk) ומתאפס רק ב-reset(),
שה-engine קורא לו בתחילת כל הרצה.
"""
from abc import ABC, abstractmethod

from hobbyjobs.core.exceptions import ExternalApiError

# -1 = ללא הגבלה
UNLIMITED = -1


class SkipPolicy(ABC):

    @abstractmethod
    def should_skip(self, error: BaseException) -> bool:
        ...

    def reset(self) -> None:
        return None


class LimitedSkipPolicy(SkipPolicy):
    """
    Skips only ``skippable`` errors, up to ``max_skip_count`` per run.

    With a ceiling of N the first N skippable failures return True and the
    next one returns False, which aborts the run. A non-skippable error
    returns False immediately and does not count toward the ceiling.
    """

    def __init__(
        self,
        max_skip_count: int,
        skippable: tuple[type[BaseException], ...] = (ExternalApiError,),
    ):
        if max_skip_count < UNLIMITED:
            raise ValueError("max_skip_count must be -1 (unlimited) or >= 0")
        self.max_skip_count = max_skip_count
        self.skippable = skippable
        self.skip_count = 0

    def should_skip(self, error: BaseException) -> bool:
        if not isinstance(error, self.skippable):
            return False
        if self.max_skip_count != UNLIMITED and self.skip_count >= self.max_skip_count:
            return False
        self.skip_count += 1
        return True

    def reset(self) -> None:
        self.skip_count = 0
