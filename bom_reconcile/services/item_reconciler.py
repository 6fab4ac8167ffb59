from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from ..db.record_store import DuplicateIdentityError, RecordHandle, RecordStore, new_record
from ..models.outcome import Outcome
from ..models.row import ClassifiedRow, RowKind
from ..models.run_context import RunContext
from .identity import IdentityResolver, item_identity, vendor_identity

"""Phase 2: create-or-reconcile leaf and composite item records.

Per row:
- identity exists -> idempotent repair: add missing location lines, correct
  planning fields, add a missing vendor line. Each check writes only on
  drift, so a converged record costs zero writes (SKIPPED).
- identity missing -> build a new record (mapped fields, identity, kind
  defaults, location / vendor lines) and persist it once (CREATED).

Optional pieces (a single field, a sub-record line, a vendor lookup) are
guarded one by one and only logged when they fail. Only failing to persist
the primary record fails the row.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "WorkUnit",
    "build_units",
    "planning_values",
    "ItemReconciler",
]

LOCATIONS = "locations"
ITEM_VENDOR = "itemvendor"

_PLANNING_COMMON = {
    "autoreorderpoint": False,
    "autoleadtime": False,
    "autopreferredstocklevel": False,
}
_PLANNING_BY_KIND = {
    RowKind.LEAF: {"replenishmentmethod": "REORDER_POINT", "supplytype": "PURCHASE"},
    RowKind.COMPOSITE: {"replenishmentmethod": "TIME_PHASED", "supplytype": "BUILD"},
}


def planning_values(kind: RowKind) -> dict[str, Any]:
    """Expected planning / replenishment fields for an item of this kind."""
    return {**_PLANNING_BY_KIND[kind], **_PLANNING_COMMON}


def _kind_of_record(handle: RecordHandle) -> RowKind:
    return RowKind.COMPOSITE if handle.kind == RowKind.COMPOSITE.record_kind else RowKind.LEAF


@dataclass(frozen=True)
class WorkUnit:
    """All rows of one kind group that share an external identity.

    Rows in a unit run sequentially: the first creates, the rest find it.
    """
    kind: RowKind
    identity: str
    rows: tuple[ClassifiedRow, ...]

    def __str__(self) -> str:
        return f"{self.identity} ({len(self.rows)} row(s))"


def build_units(rows: Iterable[ClassifiedRow]) -> list[WorkUnit]:
    """Group rows into work units by (kind, item identity).

    Args:
        rows: Classified rows of one stage, in file order

    Returns:
        One WorkUnit per distinct identity, ordered by first appearance; rows
        inside a unit keep file order
    """
    grouped: dict[tuple[RowKind, str], list[ClassifiedRow]] = {}
    for row in rows:
        key = (row.kind, item_identity(row.run_namespace, row.natural_id))
        grouped.setdefault(key, []).append(row)
    return [WorkUnit(kind=k, identity=ident, rows=tuple(rs)) for (k, ident), rs in grouped.items()]


class ItemReconciler:
    """Reconciles item records for one run. Safe to share across worker threads:
    it holds no mutable state of its own."""

    def __init__(self, store: RecordStore, resolver: IdentityResolver, ctx: RunContext) -> None:
        self.store = store
        self.resolver = resolver
        self.ctx = ctx
        self.defaults = ctx.config.defaults

    def reconcile_unit(self, unit: WorkUnit) -> list[Outcome]:
        """Reconcile every row of one unit in order; one outcome per row."""
        return [self.reconcile_row(row) for row in unit.rows]

    def reconcile_row(self, row: ClassifiedRow) -> Outcome:
        """Create the row's item record, or repair the one that already exists.

        Args:
            row: Leaf or composite row

        Returns:
            Outcome with status CREATED, SKIPPED (exists, nothing to repair),
            REPAIRED or FAILED. Failures are returned, never raised.
        """
        entity = row.kind.value
        try:
            ref = self.resolver.resolve_or_none(row.kind.record_kind, row.natural_id, row.run_namespace)
            if ref is not None:
                return self._repair(row, ref)
            return self._create(row)
        except Exception as e:
            logger.error("%s failed row=%d item=%s: %s", entity, row.row_number, row.natural_id, e)
            return Outcome.failed(entity, row.natural_id, str(e), row.row_number)

    # -- create ------------------------------------------------------------

    def _create(self, row: ClassifiedRow) -> Outcome:
        handle = new_record(row.kind.record_kind)
        for field_id, value in row.leaf_fields.as_record_fields().items():
            self._optional(row, f"field {field_id}", handle.set_value, field_id, value)

        # identity goes on last so no mapped column can replace it
        handle.set_value("itemid", row.natural_id)
        handle.set_value("externalid", item_identity(row.run_namespace, row.natural_id))

        self._optional(row, "field includechildren", handle.set_value, "includechildren", True)
        if self.defaults.tax_schedule_ref is not None:
            self._optional(row, "field taxschedule", handle.set_value, "taxschedule", self.defaults.tax_schedule_ref)
        if self.defaults.subsidiary_ref is not None:
            self._optional(row, "field subsidiary", handle.set_value, "subsidiary", self.defaults.subsidiary_ref)

        if self.defaults.setup_planning:
            for field_id, value in planning_values(row.kind).items():
                self._optional(row, f"planning {field_id}", handle.set_value, field_id, value)

        for location in self.defaults.location_refs:
            self._optional(row, f"location {location}", handle.add_line, LOCATIONS, self._location_line(row, location))

        if row.kind is RowKind.LEAF:
            self._optional(row, "vendor line", self._attach_vendor, handle, row)

        ref = self.store.save(handle)
        logger.info("%s created item=%s ref=%s", row.kind.record_kind, row.natural_id, ref)
        return Outcome.created(row.kind.value, row.natural_id, ref, row.row_number)

    # -- repair ------------------------------------------------------------

    def _repair(self, row: ClassifiedRow, ref: Any) -> Outcome:
        handle = self.store.load(row.kind.record_kind, ref)
        record_kind = _kind_of_record(handle)
        if record_kind is not row.kind:
            # planning follows the stored record so repeated runs converge
            logger.warning(
                "item=%s exists as %s but row %d classifies it as %s",
                row.natural_id, handle.kind, row.row_number, row.kind.value,
            )

        changes: list[str] = []

        present = {line.get("location") for line in handle.lines(LOCATIONS)}
        for location in self.defaults.location_refs:
            if location in present:
                continue
            if self._optional(
                row, f"location {location}", handle.add_line, LOCATIONS, self._location_line(row, location)
            ):
                changes.append(f"location {location}")

        if self.defaults.setup_planning:
            for field_id, expected in planning_values(record_kind).items():
                if handle.get_value(field_id) == expected:
                    continue
                if self._optional(row, f"planning {field_id}", handle.set_value, field_id, expected):
                    changes.append(field_id)

        if record_kind is RowKind.LEAF:
            vendors_before = len(handle.lines(ITEM_VENDOR))
            self._optional(row, "vendor line", self._attach_vendor, handle, row)
            if len(handle.lines(ITEM_VENDOR)) > vendors_before:
                changes.append("vendor")

        if not changes:
            logger.debug("item exists, no drift item=%s ref=%s", row.natural_id, ref)
            return Outcome.skipped(row.kind.value, row.natural_id, ref, row.row_number)

        self.store.save(handle)
        logger.info("item repaired item=%s ref=%s changes=%s", row.natural_id, ref, changes)
        return Outcome.repaired(row.kind.value, row.natural_id, ref, row.row_number, ", ".join(changes))

    # -- sub-records -------------------------------------------------------

    def _location_line(self, row: ClassifiedRow, location: int) -> dict[str, Any]:
        ld = self.defaults.location_defaults
        return {
            "location": location,
            "preferredstocklevel": ld.stock_level,
            "reorderpoint": ld.reorder_point,
            "safetystocklevel": ld.safety_stock,
            "leadtime": ld.lead_time_for(row.sequence_index),
        }

    def _attach_vendor(self, handle: RecordHandle, row: ClassifiedRow) -> None:
        """Add a vendor line unless the record already has one for this vendor."""
        vendor_ref = self._vendor_ref_for(row)
        if not vendor_ref:
            return
        lines = handle.lines(ITEM_VENDOR)
        if any(line.get("vendor") == vendor_ref for line in lines):
            return
        handle.add_line(
            ITEM_VENDOR,
            {
                "vendor": vendor_ref,
                "preferredvendor": not lines,
                "purchaseprice": self.defaults.purchase_price,
            },
        )

    def _vendor_ref_for(self, row: ClassifiedRow) -> Any | None:
        if self.defaults.create_vendors_from_file and row.vendor_name:
            return self._ensure_vendor(row.vendor_name)
        return self.defaults.vendor_ref or None

    def _ensure_vendor(self, name: str) -> Any:
        external_id = vendor_identity(self.ctx.namespace, name)
        ref = self.resolver.resolve_identity("vendor", external_id)
        if ref is not None:
            return ref
        fields: dict[str, Any] = {"companyname": name.strip(), "externalid": external_id, "isperson": False}
        if self.defaults.subsidiary_ref is not None:
            fields["subsidiary"] = self.defaults.subsidiary_ref
        try:
            ref = self.store.create("vendor", fields)
        except DuplicateIdentityError:
            # another worker created it first
            return self.resolver.resolve_identity("vendor", external_id)
        logger.info("vendor created name=%s ref=%s", name, ref)
        return ref

    @staticmethod
    def _optional(row: ClassifiedRow, what: str, fn: Callable[..., Any], *args: Any) -> bool:
        try:
            fn(*args)
        except Exception as e:
            logger.warning("row=%d item=%s %s skipped: %s", row.row_number, row.natural_id, what, e)
            return False
        return True
