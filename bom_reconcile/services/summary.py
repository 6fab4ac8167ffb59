from __future__ import annotations

from ..models.processing_result import EntityCounts, ReconcileSummary

"""SUMMARY line rendering.

Format (single line, space separated key=value pairs):

    SUMMARY namespace=NS rows=N
      leaves=C/S/R/F composites=C/S/R/F
      structures=C/S/F revisions=C/S/F links=C/U/S/F
      childless=N errors=N elapsed_sec=X

where C=created, S=skipped (already present), R=repaired, U=updated,
F=failed. For structures and revisions "skipped" means an existing record
was reused.
"""

__all__ = [
    "format_seconds",
    "render_summary_line",
    "render_error_report",
]


def format_seconds(value: float) -> str:
    """Integers without a decimal point, tiny values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def _item_counts(c: EntityCounts) -> str:
    return f"{c.created}/{c.skipped}/{c.repaired}/{c.failed}"


def render_summary_line(summary: ReconcileSummary) -> str:
    """Render the SUMMARY line.

    Examples:
        >>> from datetime import datetime, timezone
        >>> from bom_reconcile.models.processing_result import EntityCounts, ReconcileSummary
        >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
        >>> s = ReconcileSummary(
        ...     namespace="ACME", total_rows=3,
        ...     leaves=EntityCounts(created=2), composites=EntityCounts(created=1),
        ...     structures=EntityCounts(created=1), revisions=EntityCounts(created=1),
        ...     links=EntityCounts(created=1), childless_composites=0,
        ...     start_time=t, end_time=t, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(s)  # doctest: +NORMALIZE_WHITESPACE
        'SUMMARY namespace=ACME rows=3 leaves=2/0/0/0 composites=1/0/0/0 structures=1/0/0 revisions=1/0/0 links=1/0/0/0 childless=0 errors=0 elapsed_sec=2'
    """
    s = summary
    return (
        f"SUMMARY namespace={s.namespace} rows={s.total_rows} "
        f"leaves={_item_counts(s.leaves)} "
        f"composites={_item_counts(s.composites)} "
        f"structures={s.structures.created}/{s.structures.skipped}/{s.structures.failed} "
        f"revisions={s.revisions.created}/{s.revisions.skipped}/{s.revisions.failed} "
        f"links={s.links.created}/{s.links.updated}/{s.links.skipped}/{s.links.failed} "
        f"childless={s.childless_composites} "
        f"errors={len(s.error_messages)} "
        f"elapsed_sec={format_seconds(s.elapsed_seconds)}"
    )


def render_error_report(summary: ReconcileSummary) -> list[str]:
    """One line per recorded error, in the order they were collected."""
    return list(summary.error_messages)
