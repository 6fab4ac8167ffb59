from __future__ import annotations

from bom_reconcile.db.record_store import InMemoryRecordStore, RecordStoreError
from bom_reconcile.logging.error_log import ErrorLogBuffer
from bom_reconcile.services.orchestrator import reconcile_all
from bom_reconcile.services.structure_reconciler import LINK_SUBLIST

"""A run that fails part way leaves its completed records in place; the next
run detects them and finishes the job."""


class OutageStore(InMemoryRecordStore):
    """Rejects writes for the given external ids until healed."""

    def __init__(self, failing: set[str]) -> None:
        super().__init__()
        self.failing = set(failing)

    def save(self, handle):
        if handle.external_id in self.failing:
            raise RecordStoreError("service unavailable")
        return super().save(handle)


def test_rerun_completes_after_failure(run_config, tmp_path):
    store = OutageStore({"ACME_ASM-200", "ACME_ASM-100_BOM"})
    logs = ErrorLogBuffer(tmp_path / "logs")

    first = reconcile_all(run_config, store, error_log=logs)
    assert first.composites.failed == 1
    assert first.structures.failed == 2  # ASM-100 save rejected, ASM-200 missing
    assert first.has_failures
    assert {e.error_type for e in first.errors} == {"COMPOSITE_FAILED", "STRUCTURE_FAILED"}

    store.failing.clear()
    second = reconcile_all(run_config, store, error_log=logs)
    assert not second.has_failures
    assert second.composites.created == 1
    assert second.composites.skipped == 1
    assert second.structures.created == 2
    assert second.links.created == 2
    assert len(list((tmp_path / "logs").glob("errors-*.log"))) == 1

    for asm in ("ACME_ASM-100", "ACME_ASM-200"):
        ref = store.find_by_external_id("assembly_item", asm)
        lines = store.load("assembly_item", ref).lines(LINK_SUBLIST)
        assert len(lines) == 1 and lines[0]["masterdefault"] is True

    third = reconcile_all(run_config, store, error_log=logs)
    assert third.structures.created == 0 and third.links.skipped == 2


def test_interrupted_link_is_created_on_rerun(run_config, tmp_path):
    store = InMemoryRecordStore()
    logs = ErrorLogBuffer(tmp_path / "logs")
    reconcile_all(run_config, store, error_log=logs)

    # simulate a run that stopped after the structure but before the link
    ref = store.find_by_external_id("assembly_item", "ACME_ASM-200")
    handle = store.load("assembly_item", ref)
    handle.sublists[LINK_SUBLIST] = []
    store.save(handle)

    summary = reconcile_all(run_config, store, error_log=logs)
    assert summary.links.created == 1
    assert summary.links.skipped == 1
    assert summary.structures.skipped == 2
