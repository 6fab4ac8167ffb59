from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any

from ..db.record_store import RecordStore, new_record
from ..models.outcome import Outcome
from ..models.row import ClassifiedRow
from ..models.run_context import RunContext
from .classifier import direct_children
from .identity import IdentityResolver, revision_identity, structure_identity

"""Phase 3: structures (BOMs), initial revisions and composite -> structure links.

Runs only after every Phase 2 unit has finished. Each composite is handled on
its own; a failure is counted and the next composite continues.

For one composite:
1. resolve the composite's own record (missing -> structure FAILED)
2. collect direct children; none at all -> skipped, not a failure
3. resolve each child; none resolvable -> structure FAILED
4. create-or-reuse the structure, then its REV_A revision with one component
   line per resolved child
5. create-or-upgrade the preferred link on the composite record
"""

logger = logging.getLogger(__name__)

__all__ = [
    "Component",
    "CompositeReport",
    "StructureReconciler",
]

LINK_SUBLIST = "billofmaterials"
COMPONENT_SUBLIST = "component"


@dataclass(frozen=True)
class Component:
    natural_id: str
    ref: Any
    quantity: Decimal
    memo: str | None = None


@dataclass
class CompositeReport:
    """Phase 3 outcomes plus the number of composites without children."""
    outcomes: list[Outcome] = field(default_factory=list)
    childless: int = 0


class StructureReconciler:
    """Phase 3: one structure, one revision and one preferred link per composite.

    Runs after every item record exists, so children are resolved by
    identity lookup only.
    """

    def __init__(self, store: RecordStore, resolver: IdentityResolver, ctx: RunContext) -> None:
        self.store = store
        self.resolver = resolver
        self.ctx = ctx

    def reconcile(self, rows: list[ClassifiedRow]) -> CompositeReport:
        """Reconcile structures for every composite in ``rows``.

        Args:
            rows: Complete classified row set; children are looked up in it

        Returns:
            CompositeReport holding structure, revision and link outcomes. A
            composite that crashes contributes one FAILED structure outcome.
        """
        report = CompositeReport()
        composites = [r for r in rows if r.is_composite]
        logger.info("structures phase composites=%d", len(composites))
        for composite in composites:
            try:
                outcomes = self.reconcile_composite(composite, rows)
            except Exception as e:
                logger.error("structure failed item=%s: %s", composite.natural_id, e)
                outcomes = [Outcome.failed("structure", composite.natural_id, str(e), composite.row_number)]
            if outcomes is None:
                report.childless += 1
                continue
            report.outcomes.extend(outcomes)
        return report

    def reconcile_composite(self, composite: ClassifiedRow, rows: list[ClassifiedRow]) -> list[Outcome] | None:
        """Reconcile one composite.

        Args:
            composite: The composite row
            rows: Complete classified row set

        Returns:
            [structure, revision, link] outcomes, a single FAILED structure
            outcome when the composite or all of its components cannot be
            resolved, or None when it has no children at all
        """
        nid = composite.natural_id
        composite_ref = self.resolver.resolve_or_none(composite.kind.record_kind, nid, composite.run_namespace)
        if composite_ref is None:
            logger.error("composite record not found item=%s", nid)
            return [Outcome.failed("structure", nid, "composite record not found", composite.row_number)]

        children = direct_children(composite, rows)
        if not children:
            logger.info("no children item=%s key=%s - skipping structure", nid, composite.hierarchy_key)
            return None

        components: list[Component] = []
        for child in children:
            child_ref = self.resolver.resolve_or_none(child.kind.record_kind, child.natural_id, child.run_namespace)
            if child_ref is None:
                logger.error("component not found item=%s parent=%s row=%d", child.natural_id, nid, child.row_number)
                continue
            components.append(
                Component(
                    natural_id=child.natural_id,
                    ref=child_ref,
                    quantity=child.structure_fields.quantity,
                    memo=child.structure_fields.memo,
                )
            )
        if not components:
            logger.error("no valid components item=%s children=%d", nid, len(children))
            return [Outcome.failed("structure", nid, "no resolvable components", composite.row_number)]

        structure = self._ensure_structure(composite)
        if not structure.ok:
            return [structure]
        revision = self._ensure_revision(composite, structure.ref, components)
        link = self._ensure_link(composite, composite_ref, structure.ref)
        return [structure, revision, link]

    def _ensure_structure(self, composite: ClassifiedRow) -> Outcome:
        nid = composite.natural_id
        external_id = structure_identity(composite.run_namespace, nid)
        existing = self.resolver.resolve_identity("bom", external_id)
        if existing is not None:
            logger.debug("structure exists item=%s ref=%s", nid, existing)
            return Outcome.skipped("structure", nid, existing, composite.row_number)
        try:
            handle = new_record("bom")
            handle.set_value("name", f"{nid}_BOM")
            handle.set_value("externalid", external_id)
            handle.set_value("includechildren", True)
            subsidiary = self.ctx.config.defaults.subsidiary_ref
            if subsidiary is not None:
                handle.set_value("subsidiary", subsidiary)
            ref = self.store.save(handle)
        except Exception as e:
            logger.error("structure creation failed item=%s: %s", nid, e)
            return Outcome.failed("structure", nid, str(e), composite.row_number)
        logger.info("structure created name=%s_BOM ref=%s", nid, ref)
        return Outcome.created("structure", nid, ref, composite.row_number)

    def _ensure_revision(self, composite: ClassifiedRow, structure_ref: Any, components: list[Component]) -> Outcome:
        nid = composite.natural_id
        external_id = revision_identity(composite.run_namespace, nid)
        existing = self.resolver.resolve_identity("bom_revision", external_id)
        if existing is not None:
            logger.debug("revision exists item=%s ref=%s", nid, existing)
            return Outcome.skipped("revision", nid, existing, composite.row_number)
        try:
            handle = new_record("bom_revision")
            handle.set_value("name", f"{nid}_REV_A")
            handle.set_value("billofmaterials", structure_ref)
            handle.set_value("effectivestartdate", (self.ctx.run_date - timedelta(days=1)).isoformat())
            handle.set_value("memo", f"Initial revision - {composite.run_namespace}")
            handle.set_value("externalid", external_id)
            added = 0
            for component in components:
                line: dict[str, Any] = {"item": component.ref, "quantity": component.quantity}
                if component.memo:
                    line["memo"] = component.memo
                try:
                    handle.add_line(COMPONENT_SUBLIST, line)
                    added += 1
                except Exception as e:
                    logger.error("component add failed item=%s parent=%s: %s", component.natural_id, nid, e)
            ref = self.store.save(handle)
        except Exception as e:
            logger.error("revision creation failed item=%s: %s", nid, e)
            return Outcome.failed("revision", nid, str(e), composite.row_number)
        logger.info("revision created name=%s_REV_A ref=%s components=%d", nid, ref, added)
        return Outcome.created("revision", nid, ref, composite.row_number)

    def _ensure_link(self, composite: ClassifiedRow, composite_ref: Any, structure_ref: Any) -> Outcome:
        """Make structure_ref the composite's one preferred structure.

        An existing link without the preferred flag is upgraded (UPDATED),
        never duplicated and never silently skipped.
        """
        nid = composite.natural_id
        try:
            handle = self.store.load(composite.kind.record_kind, composite_ref)
            lines = handle.lines(LINK_SUBLIST)
            current = next((ln for ln in lines if ln.get(LINK_SUBLIST) == structure_ref), None)
            others_default = any(ln.get("masterdefault") for ln in lines if ln is not current)

            if current is not None and current.get("masterdefault") is True and not others_default:
                return Outcome.skipped("link", nid, composite_ref, composite.row_number)

            for ln in lines:
                if ln is not current:
                    ln["masterdefault"] = False
            if current is None:
                handle.add_line(LINK_SUBLIST, {LINK_SUBLIST: structure_ref, "masterdefault": True})
            else:
                current["masterdefault"] = True
            self.store.save(handle)
        except Exception as e:
            logger.error("link failed item=%s structure=%s: %s", nid, structure_ref, e)
            return Outcome.failed("link", nid, str(e), composite.row_number)

        if current is None:
            logger.info("link created item=%s structure=%s", nid, structure_ref)
            return Outcome.created("link", nid, composite_ref, composite.row_number)
        logger.info("link upgraded to preferred item=%s structure=%s", nid, structure_ref)
        return Outcome.updated("link", nid, composite_ref, composite.row_number)
