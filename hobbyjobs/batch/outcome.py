"""
Side-effect outcome tracking.

Side effects (event publication, downstream cleanup calls) report here and
never through exceptions, so a failed side effect can never roll back the
persisted change that triggered it.
"""
from hobbyjobs.db.models.run_audit import SideEffectOutcome


class SideEffectTracker:
    """מונה הצלחות/כשלונות של תופעות לוואי לאורך הרצה"""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.succeeded = 0
        self.failed = 0
        self.errors: list[str] = []

    def record_success(self) -> None:
        self.succeeded += 1

    def record_failure(self, error: str) -> None:
        self.failed += 1
        self.errors.append(error)

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed

    @property
    def outcome(self) -> SideEffectOutcome:
        # אין קריאות כלל = הצלחה
        if self.failed == 0:
            return SideEffectOutcome.SUCCESS
        if self.succeeded == 0:
            return SideEffectOutcome.FAILED
        return SideEffectOutcome.PARTIAL_FAILURE
