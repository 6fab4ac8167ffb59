# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import pytest

from bom_reconcile.db.record_store import InMemoryRecordStore
from bom_reconcile.logging.init import reset_logging
from bom_reconcile.models.config_models import LocationDefaults, RunConfig, RunDefaults
from bom_reconcile.models.row import ClassifiedRow, LeafFields, MappedRow, StructureFields
from bom_reconcile.models.run_context import RunContext
from bom_reconcile.services.classifier import classify
from bom_reconcile.services.identity import IdentityResolver

SAMPLE_CSV = """Level,Part Number,Description,MPN,Manufacturer,Vendor,Qty
1.0,ASM-100,Top Assembly,,,,1
1.1,PRT-1,Resistor 10k,RC0603,Yageo,Digi Supply,4
1.2,ASM-200,Sub Assembly,,,,2
1.2.1,PRT-2,"Capacitor 1uF, 16V",GRM188,Murata,Digi Supply,2
1.2.2,PRT-1,Resistor 10k,RC0603,Yageo,Digi Supply,1
1.3,PRT-3,Connector,,TE,,0
"""

SAMPLE_COLUMN_MAP = {
    0: "hierarchy",
    1: "itemid",
    2: "displayname",
    3: "mpn",
    4: "manufacturer",
    5: "vendor",
    6: "quantity",
}


@pytest.fixture(autouse=True)
def _clean_logging() -> Iterator[None]:
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """namespace: ACME
source_file: ./data/bom.csv
column_map:
  0: hierarchy
  1: itemid
  2: displayname
  3: mpn
  4: manufacturer
  5: vendor
  6: quantity
workers: 2
defaults:
  location_refs: [1, 2]
  subsidiary_ref: 1
  vendor_ref: 5
  purchase_price: 1.25
  tax_schedule_ref: 3
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def sample_bom_csv(temp_workdir: Path) -> Path:
    f = temp_workdir / "data" / "bom.csv"
    f.write_text(SAMPLE_CSV, encoding="utf-8")
    return f


@pytest.fixture()
def run_config(tmp_path: Path) -> RunConfig:
    source = tmp_path / "bom.csv"
    source.write_text(SAMPLE_CSV, encoding="utf-8")
    return RunConfig(
        namespace="ACME",
        source_file=source,
        column_map=dict(SAMPLE_COLUMN_MAP),
        defaults=RunDefaults(
            location_refs=(1, 2),
            vendor_ref=5,
            location_defaults=LocationDefaults(lead_time_rotation=(3, 5, 8)),
        ),
        workers=2,
    )


@pytest.fixture()
def run_ctx(run_config: RunConfig) -> RunContext:
    return RunContext(
        run_id="run-1",
        config=run_config,
        started_at=datetime(2024, 5, 10, 12, 0, tzinfo=UTC),
        header_columns=7,
    )


@pytest.fixture()
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture()
def resolver(store: InMemoryRecordStore) -> IdentityResolver:
    return IdentityResolver(store)


@pytest.fixture()
def make_rows() -> Callable[..., list[ClassifiedRow]]:
    """Build classified rows from (hierarchy key, item id[, quantity]) tuples."""

    def _make(entries: list[tuple], namespace: str = "ACME") -> list[ClassifiedRow]:
        mapped = []
        for i, entry in enumerate(entries, start=1):
            key, item = entry[0], entry[1]
            qty = entry[2] if len(entry) > 2 else 1
            mapped.append(
                MappedRow(
                    row_number=i,
                    hierarchy_key=key,
                    natural_id=item,
                    leaf_fields=LeafFields(display_name=f"{item} desc"),
                    structure_fields=StructureFields(quantity=Decimal(str(qty))),
                )
            )
        return classify(mapped, namespace)

    return _make
