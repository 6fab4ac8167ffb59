from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Generic, TypeVar

"""Fan-out executor for Phase 2.

Units inside a stage run concurrently on a thread pool. run_stage returns
only when every unit has finished (success or recorded failure), so calling
it once per stage gives the barrier the pipeline relies on:

    leaves = executor.run_stage("leaf", leaf_units, work)
    composites = executor.run_stage("composite", composite_units, work)  # after all leaves

A unit function is expected to return its own Outcomes and never raise. If one
does raise anyway, the exception is recorded as a stage error (the
equivalent of a map/reduce stage error summary) and the other units carry on.
"""

logger = logging.getLogger(__name__)

U = TypeVar("U")
R = TypeVar("R")


@dataclass
class StageResult(Generic[R]):
    name: str
    results: list[R] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class StagedExecutor:
    """Thread-pool executor with per-stage join."""

    def __init__(self, max_workers: int = 4, on_unit_done: Callable[[], None] | None = None) -> None:
        self.max_workers = max(1, max_workers)
        self.on_unit_done = on_unit_done

    def run_stage(
        self,
        name: str,
        units: Sequence[U],
        work: Callable[[U], list[R]],
        describe: Callable[[U], str] = str,
    ) -> StageResult[R]:
        """Run every unit of one stage and wait for all of them.

        Returning only after the last unit finishes is what makes two
        consecutive calls a barrier.

        Args:
            name: Stage name used in logs and error messages
            units: Work units; their order is not preserved in the results
            work: Called once per unit on a worker thread
            describe: Renders a unit for error messages

        Returns:
            StageResult with every outcome of the units that completed and one
            error message per unit that raised
        """
        stage: StageResult[R] = StageResult(name=name)
        if not units:
            return stage
        logger.debug("stage=%s units=%d workers=%d", name, len(units), self.max_workers)
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix=f"bom-{name}") as pool:
            futures = {pool.submit(work, unit): unit for unit in units}
            for future in as_completed(futures):
                unit = futures[future]
                try:
                    stage.results.extend(future.result())
                except Exception as e:
                    msg = f"{name} unit {describe(unit)} crashed: {e}"
                    logger.error(msg)
                    stage.errors.append(msg)
                if self.on_unit_done is not None:
                    self.on_unit_done()
        return stage
