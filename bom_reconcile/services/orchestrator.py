from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from ..db.record_store import RecordStore
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import RunConfig
from ..models.error_record import ErrorRecord
from ..models.outcome import Outcome
from ..models.processing_result import ReconcileSummary, SummaryAccumulator
from ..models.row import ClassifiedRow, RowKind
from ..models.run_context import RunContext
from ..source.reader import SourceFile, SourceFileError, read_source_file
from .classifier import classify
from .executor import StagedExecutor
from .identity import IdentityResolver
from .item_reconciler import ItemReconciler, build_units
from .mapper import map_rows
from .progress import ProgressTracker
from .staging_cache import FileTTLCache, InMemoryTTLCache, StagingCache, load_staged_rows, stage_run
from .structure_reconciler import StructureReconciler

"""Pipeline orchestration.

    prepare_run       read + map + classify; fatal problems raise ProcessingError
    Phase 1           partition rows by kind, stage the full set in the cache
    Phase 2           leaf units, then (barrier) composite units, fanned out
    Phase 3           structures / revisions / links over the full row set
    summary           counts + error list, always produced

Nothing after prepare_run raises: each phase has its own top-level handler
that records a stage error and lets the pipeline continue to the summary.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ProcessingError",
    "PartitionedRows",
    "load_classified_rows",
    "prepare_run",
    "partition_rows",
    "make_cache",
    "reconcile_all",
]


class ProcessingError(Exception):
    """Fatal error raised before any write is attempted."""


@dataclass(frozen=True)
class PartitionedRows:
    leaves: tuple[ClassifiedRow, ...]
    composites: tuple[ClassifiedRow, ...]
    staged: bool  # True when the staging cache accepted the row set


def load_classified_rows(config: RunConfig) -> tuple[SourceFile, list[ClassifiedRow]]:
    """Read, map and classify the configured source file.

    Args:
        config: Run configuration naming the source file and column map

    Returns:
        The parsed source file and its classified rows, in file order

    Raises:
        SourceFileError: If the file is missing, unreadable or has no data rows
    """
    source = read_source_file(config.source_file)
    mapped = map_rows(source.rows, config.column_map)
    return source, classify(mapped, config.namespace)


def prepare_run(config: RunConfig, run_id: str | None = None) -> tuple[RunContext, list[ClassifiedRow]]:
    """Validate the run and build its classified rows.

    A file whose rows all lack a hierarchy key or item id is not an error;
    it yields an empty row list and a warning.

    Args:
        config: Run configuration
        run_id: Explicit run id; a random one is generated when omitted

    Returns:
        Tuple of (run context, classified rows)

    Raises:
        ProcessingError: If the namespace is blank, or the source file is
            missing or has no data rows
    """
    if not config.namespace or not config.namespace.strip():
        raise ProcessingError("run namespace is required")
    try:
        source, rows = load_classified_rows(config)
    except SourceFileError as e:
        raise ProcessingError(str(e)) from e
    logger.info(
        "source=%s header_columns=%d data_rows=%d usable_rows=%d",
        source.path.name, source.column_count, len(source.rows), len(rows),
    )
    if not rows:
        logger.warning("no data rows with both hierarchy and item id in %s; nothing to reconcile", source.path.name)

    ctx = RunContext(
        run_id=run_id or uuid.uuid4().hex,
        config=config,
        started_at=datetime.now(UTC),
        header_columns=source.column_count,
    )
    return ctx, rows


def partition_rows(ctx: RunContext, rows: list[ClassifiedRow], cache: StagingCache) -> PartitionedRows:
    """Phase 1: split by kind and stage the full row set for Phase 3.

    Args:
        ctx: Run context; its namespace and run id scope the cache keys
        rows: Complete classified row set
        cache: Staging cache backend

    Returns:
        PartitionedRows with leaves and composites in file order. ``staged``
        is False when the cache refused the write; Phase 3 then re-derives.
    """
    leaves = tuple(r for r in rows if r.kind is RowKind.LEAF)
    composites = tuple(r for r in rows if r.kind is RowKind.COMPOSITE)
    staged = stage_run(cache, ctx, rows)
    logger.info("partition leaves=%d composites=%d staged=%s", len(leaves), len(composites), staged)
    return PartitionedRows(leaves=leaves, composites=composites, staged=staged)


def make_cache(config: RunConfig) -> StagingCache:
    if config.cache_dir is not None:
        return FileTTLCache(config.cache_dir)
    return InMemoryTTLCache()


def _record_outcomes(
    acc: SummaryAccumulator,
    error_log: ErrorLogBuffer,
    ctx: RunContext,
    phase: str,
    outcomes: list[Outcome],
) -> None:
    acc.add_all(outcomes)
    for outcome in outcomes:
        if outcome.ok:
            continue
        record = ErrorRecord.create(
            file=ctx.source_name,
            phase=phase,
            row=outcome.row_number,
            natural_id=outcome.natural_id,
            error_type=f"{outcome.entity.upper()}_FAILED",
            message=outcome.reason or "unknown error",
        )
        acc.add_error(record)
        error_log.append(record)


def reconcile_all(
    config: RunConfig,
    store: RecordStore,
    cache: StagingCache | None = None,
    *,
    run_id: str | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> ReconcileSummary:
    """Run the full import against ``store`` and return the end-of-run summary.

    Row, unit and phase failures are counted in the summary and written to
    the error log; they never propagate.

    Args:
        config: Run configuration
        store: Record store to reconcile against
        cache: Staging cache; built from ``config.cache_dir`` when omitted
        run_id: Explicit run id (tests); random when omitted
        error_log: Error log buffer; a default one under logs/ when omitted

    Returns:
        ReconcileSummary with per-entity counts and every error message

    Raises:
        ProcessingError: Only for fatal configuration or source problems,
            before anything is written
    """
    ctx, rows = prepare_run(config, run_id)
    cache = cache if cache is not None else make_cache(config)
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    acc = SummaryAccumulator(ctx.namespace, len(rows), ctx.started_at)
    resolver = IdentityResolver(store)

    logger.info("run started namespace=%s run_id=%s", ctx.namespace, ctx.run_id)

    # Phase 1
    try:
        parts = partition_rows(ctx, rows, cache)
    except Exception as e:
        acc.add_stage_error(f"partition phase aborted: {e}")
        logger.error("partition phase aborted: %s", e)
        parts = None

    # Phase 2: leaf stage fully completes before the composite stage starts
    if parts is not None:
        items = ItemReconciler(store, resolver, ctx)
        stages = (("leaf", build_units(parts.leaves)), ("composite", build_units(parts.composites)))
        total_units = sum(len(units) for _, units in stages)
        with ProgressTracker(total_units) as progress:
            executor = StagedExecutor(config.workers, on_unit_done=progress.advance)
            for name, units in stages:
                progress.set_stage(name)
                try:
                    stage = executor.run_stage(name, units, items.reconcile_unit)
                except Exception as e:
                    acc.add_stage_error(f"{name} stage aborted: {e}")
                    logger.error("%s stage aborted: %s", name, e)
                    continue
                _record_outcomes(acc, error_log, ctx, "items", stage.results)
                for msg in stage.errors:
                    acc.add_stage_error(msg)
                counts = acc.counts(name)
                progress.set_postfix(stage=name, done=counts.total, failed=counts.failed)
                logger.info(
                    "%s stage created=%d skipped=%d repaired=%d failed=%d",
                    name, counts.created, counts.skipped, counts.repaired, counts.failed,
                )

    # Phase 3
    try:
        full_rows = load_staged_rows(cache, ctx, rederive=lambda: load_classified_rows(config)[1])
        report = StructureReconciler(store, resolver, ctx).reconcile(full_rows)
        _record_outcomes(acc, error_log, ctx, "structures", report.outcomes)
        acc.childless_composites = report.childless
    except Exception as e:
        acc.add_stage_error(f"structures phase aborted: {e}")
        logger.error("structures phase aborted: %s", e)

    try:
        path = error_log.flush()
        if path is not None:
            logger.info("error log written: %s", path)
    except OSError as e:
        logger.warning("error log flush failed: %s", e)

    return acc.build(datetime.now(UTC))
