from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Per-operation result type.

Every reconciliation step returns an Outcome instead of raising. The pipeline
aggregates them into counts, so a failure is visible in the summary without
unwinding the batch.
"""

__all__ = [
    "OutcomeStatus",
    "Outcome",
]


class OutcomeStatus(Enum):
    CREATED = "created"
    SKIPPED = "skipped"  # already present and convergent, zero writes
    REPAIRED = "repaired"  # already present, drift corrected
    UPDATED = "updated"  # existing link upgraded to preferred
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    status: OutcomeStatus
    entity: str  # leaf / composite / structure / revision / link
    natural_id: str
    row_number: int = -1
    ref: Any = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not OutcomeStatus.FAILED

    @classmethod
    def created(cls, entity: str, natural_id: str, ref: Any, row_number: int = -1) -> Outcome:
        return cls(OutcomeStatus.CREATED, entity, natural_id, row_number, ref)

    @classmethod
    def skipped(
        cls, entity: str, natural_id: str, ref: Any = None, row_number: int = -1, reason: str | None = None
    ) -> Outcome:
        return cls(OutcomeStatus.SKIPPED, entity, natural_id, row_number, ref, reason)

    @classmethod
    def repaired(cls, entity: str, natural_id: str, ref: Any, row_number: int = -1, reason: str | None = None) -> Outcome:
        return cls(OutcomeStatus.REPAIRED, entity, natural_id, row_number, ref, reason)

    @classmethod
    def updated(cls, entity: str, natural_id: str, ref: Any, row_number: int = -1) -> Outcome:
        return cls(OutcomeStatus.UPDATED, entity, natural_id, row_number, ref)

    @classmethod
    def failed(cls, entity: str, natural_id: str, reason: str, row_number: int = -1) -> Outcome:
        return cls(OutcomeStatus.FAILED, entity, natural_id, row_number, None, reason)
