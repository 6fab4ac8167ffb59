from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from bom_reconcile.db.record_store import RecordStoreError
from bom_reconcile.models.outcome import OutcomeStatus
from bom_reconcile.models.row import LeafFields, RowKind
from bom_reconcile.services.identity import IdentityResolver
from bom_reconcile.services.item_reconciler import ItemReconciler, build_units, planning_values


@pytest.fixture()
def reconciler(store, resolver, run_ctx) -> ItemReconciler:
    return ItemReconciler(store, resolver, run_ctx)


@pytest.fixture()
def rows(make_rows):
    return make_rows([("1.0", "ASM-1"), ("1.1", "PRT-1"), ("1.2", "PRT-2"), ("1.3", "PRT-1")])


def test_planning_values_by_kind():
    leaf = planning_values(RowKind.LEAF)
    composite = planning_values(RowKind.COMPOSITE)
    assert leaf["replenishmentmethod"] == "REORDER_POINT" and leaf["supplytype"] == "PURCHASE"
    assert composite["replenishmentmethod"] == "TIME_PHASED" and composite["supplytype"] == "BUILD"
    for values in (leaf, composite):
        assert values["autoreorderpoint"] is False
        assert values["autoleadtime"] is False
        assert values["autopreferredstocklevel"] is False


def test_build_units_groups_rows_by_identity(rows):
    units = build_units(rows)
    assert [(u.kind, u.identity, len(u.rows)) for u in units] == [
        (RowKind.COMPOSITE, "ACME_ASM-1", 1),
        (RowKind.LEAF, "ACME_PRT-1", 2),
        (RowKind.LEAF, "ACME_PRT-2", 1),
    ]
    assert str(units[1]) == "ACME_PRT-1 (2 row(s))"


def test_create_leaf(reconciler, store, rows):
    outcome = reconciler.reconcile_row(rows[1])
    assert outcome.status is OutcomeStatus.CREATED
    assert outcome.entity == "leaf"
    assert outcome.row_number == 2

    rec = store.load("inventory_item", outcome.ref)
    assert rec.kind == "inventory_item"
    assert rec.get_value("itemid") == "PRT-1"
    assert rec.get_value("externalid") == "ACME_PRT-1"
    assert rec.get_value("displayname") == "PRT-1 desc"
    assert rec.get_value("includechildren") is True
    assert rec.get_value("subsidiary") == 1
    assert rec.get_value("taxschedule") == 1
    assert rec.get_value("replenishmentmethod") == "REORDER_POINT"
    assert [ln["location"] for ln in rec.lines("locations")] == [1, 2]
    line = rec.lines("locations")[0]
    assert (line["preferredstocklevel"], line["reorderpoint"], line["safetystocklevel"]) == (1000, 600, 100)
    assert rec.lines("itemvendor") == [{"vendor": 5, "preferredvendor": True, "purchaseprice": Decimal(1)}]


def test_create_composite(reconciler, store, rows):
    outcome = reconciler.reconcile_row(rows[0])
    assert outcome.status is OutcomeStatus.CREATED
    assert outcome.entity == "composite"
    rec = store.load("assembly_item", outcome.ref)
    assert rec.kind == "assembly_item"
    assert rec.get_value("supplytype") == "BUILD"
    assert rec.lines("itemvendor") == []
    assert len(rec.lines("locations")) == 2


def test_lead_time_rotates_over_leaves(reconciler, store, make_rows):
    rows = make_rows([("1", "A"), ("2", "B"), ("3", "C"), ("4", "D")])
    refs = [reconciler.reconcile_row(r).ref for r in rows]
    lead_times = [store.load("inventory_item", ref).lines("locations")[0]["leadtime"] for ref in refs]
    assert lead_times == [3, 5, 8, 3]


def test_mapped_column_cannot_replace_identity(reconciler, store, rows):
    row = replace(rows[1], leaf_fields=LeafFields(display_name="PRT-1 desc", extra={"externalid": "L-PRT-1"}))
    first = reconciler.reconcile_row(row)
    assert first.status is OutcomeStatus.CREATED
    assert store.load("inventory_item", first.ref).get_value("externalid") == "ACME_PRT-1"
    assert store.find_by_external_id("inventory_item", "L-PRT-1") is None

    again = reconciler.reconcile_row(row)
    assert again.status is OutcomeStatus.SKIPPED
    assert again.ref == first.ref


def test_existing_converged_record_is_skipped_without_writes(reconciler, store, rows):
    reconciler.reconcile_row(rows[1])
    writes = store.write_count
    outcome = reconciler.reconcile_row(rows[3])  # same PRT-1, another row
    assert outcome.status is OutcomeStatus.SKIPPED
    assert store.write_count == writes
    assert len(store.records_of("inventory_item")) == 1


def test_drift_is_repaired_once(reconciler, store, rows):
    ref = reconciler.reconcile_row(rows[1]).ref
    handle = store.load("inventory_item", ref)
    handle.sublists["locations"] = handle.lines("locations")[:1]
    handle.sublists["itemvendor"] = []
    handle.set_value("replenishmentmethod", "MANUAL")
    store.save(handle)

    outcome = reconciler.reconcile_row(rows[1])
    assert outcome.status is OutcomeStatus.REPAIRED
    assert "location 2" in outcome.reason
    assert "replenishmentmethod" in outcome.reason
    assert "vendor" in outcome.reason
    repaired = store.load("inventory_item", ref)
    assert [ln["location"] for ln in repaired.lines("locations")] == [1, 2]
    assert repaired.get_value("replenishmentmethod") == "REORDER_POINT"
    assert len(repaired.lines("itemvendor")) == 1

    writes = store.write_count
    assert reconciler.reconcile_row(rows[1]).status is OutcomeStatus.SKIPPED
    assert store.write_count == writes


def test_repair_follows_stored_kind(reconciler, store, make_rows, caplog):
    as_leaf = make_rows([("1", "X")])[0]
    as_composite = make_rows([("1", "X"), ("1.1", "Y")])[0]
    reconciler.reconcile_row(as_leaf)
    writes = store.write_count
    with caplog.at_level(logging.WARNING):
        outcome = reconciler.reconcile_row(as_composite)
    assert outcome.status is OutcomeStatus.SKIPPED
    assert store.write_count == writes
    assert "exists as inventory_item" in caplog.text


def test_bad_optional_field_does_not_fail_the_row(reconciler, store, rows, caplog):
    row = replace(rows[1], leaf_fields=LeafFields(mpn="RC0603", extra={"Part Desc": "x", "custitem_color": "red"}))
    with caplog.at_level(logging.WARNING):
        outcome = reconciler.reconcile_row(row)
    assert outcome.status is OutcomeStatus.CREATED
    rec = store.load("inventory_item", outcome.ref)
    assert rec.get_value("mpn") == "RC0603"
    assert rec.get_value("custitem_color") == "red"
    assert "Part Desc" not in rec.fields
    assert "field Part Desc skipped" in caplog.text


def test_persist_failure_fails_the_row(reconciler, store, rows, monkeypatch):
    monkeypatch.setattr(store, "save", MagicMock(side_effect=RecordStoreError("db down")))
    outcome = reconciler.reconcile_row(rows[1])
    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.reason == "db down"
    assert outcome.row_number == 2


def test_lookup_failure_then_duplicate_is_a_soft_failure(store, run_ctx, rows):
    store.create("inventory_item", {"externalid": "ACME_PRT-1"})
    blind = MagicMock(spec=IdentityResolver)
    blind.resolve_or_none.return_value = None
    outcome = ItemReconciler(store, blind, run_ctx).reconcile_row(rows[1])
    assert outcome.status is OutcomeStatus.FAILED
    assert "already exists" in outcome.reason


def test_vendors_created_from_file_once(store, resolver, run_config, run_ctx, rows):
    config = replace(run_config, defaults=replace(run_config.defaults, create_vendors_from_file=True))
    ctx = replace(run_ctx, config=config)
    rec = ItemReconciler(store, resolver, ctx)
    a = replace(rows[1], vendor_name="Digi Supply")
    b = replace(rows[2], vendor_name=" Digi Supply ")
    ref_a = rec.reconcile_row(a).ref
    ref_b = rec.reconcile_row(b).ref

    vendors = store.records_of("vendor")
    assert len(vendors) == 1
    assert vendors[0].get_value("externalid") == "ACME_VENDOR_Digi Supply"
    assert vendors[0].get_value("companyname") == "Digi Supply"
    for ref in (ref_a, ref_b):
        assert store.load("inventory_item", ref).lines("itemvendor")[0]["vendor"] == vendors[0].ref


def test_no_vendor_line_without_vendor_ref(store, resolver, run_config, run_ctx, rows):
    config = replace(run_config, defaults=replace(run_config.defaults, vendor_ref=None, location_refs=()))
    ctx = replace(run_ctx, config=config)
    outcome = ItemReconciler(store, resolver, ctx).reconcile_row(rows[1])
    rec = store.load("inventory_item", outcome.ref)
    assert rec.lines("itemvendor") == []
    assert rec.lines("locations") == []


def test_planning_setup_can_be_disabled(store, resolver, run_config, run_ctx, rows):
    config = replace(run_config, defaults=replace(run_config.defaults, setup_planning=False))
    outcome = ItemReconciler(store, resolver, replace(run_ctx, config=config)).reconcile_row(rows[1])
    assert store.load("inventory_item", outcome.ref).get_value("replenishmentmethod") is None


def test_reconcile_unit_runs_rows_in_order(reconciler, rows):
    unit = build_units(rows)[1]
    outcomes = reconciler.reconcile_unit(unit)
    assert [o.status for o in outcomes] == [OutcomeStatus.CREATED, OutcomeStatus.SKIPPED]
