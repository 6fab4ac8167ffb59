from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from .error_record import ErrorRecord
from .outcome import Outcome, OutcomeStatus

"""Aggregated run results.

Outcomes produced by Phase 2 and Phase 3 are fed into a SummaryAccumulator,
which builds the immutable ReconcileSummary reported at the end of the run.
"""

ENTITIES = ("leaf", "composite", "structure", "revision", "link")


@dataclass(frozen=True)
class EntityCounts:
    created: int = 0
    skipped: int = 0
    repaired: int = 0
    updated: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.created + self.skipped + self.repaired + self.updated + self.failed


@dataclass(frozen=True)
class ReconcileSummary:
    """End-of-run report: counts per entity plus the full error list."""
    namespace: str
    total_rows: int
    leaves: EntityCounts
    composites: EntityCounts
    structures: EntityCounts
    revisions: EntityCounts
    links: EntityCounts
    childless_composites: int  # composites skipped for having no children
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    errors: list[ErrorRecord] = field(default_factory=list)
    stage_errors: list[str] = field(default_factory=list)

    @property
    def failed_total(self) -> int:
        return sum(
            c.failed for c in (self.leaves, self.composites, self.structures, self.revisions, self.links)
        )

    @property
    def has_failures(self) -> bool:
        return self.failed_total > 0 or bool(self.stage_errors)

    @property
    def error_messages(self) -> list[str]:
        return [e.describe() for e in self.errors] + list(self.stage_errors)


class SummaryAccumulator:
    """Collects Outcomes and errors while phases run.

    Outcomes are only added from the orchestrating thread (after futures
    complete), so no locking is needed here.
    """

    def __init__(self, namespace: str, total_rows: int, start_time: datetime) -> None:
        self.namespace = namespace
        self.total_rows = total_rows
        self.start_time = start_time
        self._counts: dict[str, Counter[OutcomeStatus]] = {e: Counter() for e in ENTITIES}
        self.childless_composites = 0
        self.errors: list[ErrorRecord] = []
        self.stage_errors: list[str] = []

    def add(self, outcome: Outcome) -> None:
        self._counts[outcome.entity][outcome.status] += 1

    def add_all(self, outcomes: list[Outcome]) -> None:
        for o in outcomes:
            self.add(o)

    def add_error(self, record: ErrorRecord) -> None:
        self.errors.append(record)

    def add_stage_error(self, message: str) -> None:
        self.stage_errors.append(message)

    def counts(self, entity: str) -> EntityCounts:
        c = self._counts[entity]
        return EntityCounts(
            created=c[OutcomeStatus.CREATED],
            skipped=c[OutcomeStatus.SKIPPED],
            repaired=c[OutcomeStatus.REPAIRED],
            updated=c[OutcomeStatus.UPDATED],
            failed=c[OutcomeStatus.FAILED],
        )

    def build(self, end_time: datetime) -> ReconcileSummary:
        return ReconcileSummary(
            namespace=self.namespace,
            total_rows=self.total_rows,
            leaves=self.counts("leaf"),
            composites=self.counts("composite"),
            structures=self.counts("structure"),
            revisions=self.counts("revision"),
            links=self.counts("link"),
            childless_composites=self.childless_composites,
            start_time=self.start_time,
            end_time=end_time,
            elapsed_seconds=(end_time - self.start_time).total_seconds(),
            errors=list(self.errors),
            stage_errors=list(self.stage_errors),
        )
