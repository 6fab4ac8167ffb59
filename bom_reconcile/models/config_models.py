from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from pathlib import Path

"""Config dataclasses for the BOM import run.

These are the typed shape of config/import.yml after validation in
bom_reconcile.config.loader. All are frozen: a run configuration is read once
and passed through the pipeline unchanged.
"""


class FieldName(str, Enum):
    """Semantic targets a CSV column can be mapped to.

    Any column_map value outside this vocabulary is an arbitrary pass-through
    item field and keeps its literal name.
    """
    HIERARCHY = "hierarchy"
    ITEM_ID = "itemid"
    DISPLAY_NAME = "displayname"  # fans out to three description fields
    MPN = "mpn"
    MANUFACTURER = "manufacturer"
    VENDOR = "vendor"
    VENDOR_PART_NUMBER = "vendorpartnumber"
    QUANTITY = "quantity"
    REVISION = "revision"
    MEMO = "memo"


# Record fields the importer owns; a column may not be passed through to them.
RESERVED_FIELD_IDS = frozenset({"externalid", "billofmaterials"})


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback; environment variables take precedence."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class LocationDefaults:
    """Values written on every per-location sub-record of a new item."""
    stock_level: int = 1000
    reorder_point: int = 600
    safety_stock: int = 100
    lead_time_days: int = 7
    # Optional demo rotation: leaf N gets lead_time_rotation[N % len]
    lead_time_rotation: tuple[int, ...] = ()

    def lead_time_for(self, sequence_index: int | None) -> int:
        if self.lead_time_rotation and sequence_index is not None:
            return self.lead_time_rotation[sequence_index % len(self.lead_time_rotation)]
        return self.lead_time_days


@dataclass(frozen=True)
class RunDefaults:
    """Domain defaults applied while creating or repairing records."""
    location_refs: tuple[int, ...] = ()
    subsidiary_ref: int | None = 1
    vendor_ref: int | None = None  # 0 / None = no vendor line
    purchase_price: Decimal = Decimal(1)
    tax_schedule_ref: int | None = 1
    setup_planning: bool = True
    create_vendors_from_file: bool = False
    location_defaults: LocationDefaults = field(default_factory=LocationDefaults)


@dataclass(frozen=True)
class RunConfig:
    """Root configuration for one import run."""
    namespace: str  # prefix for every external identity
    source_file: Path
    column_map: dict[int, str]  # column index -> FieldName value or pass-through field id
    defaults: RunDefaults = field(default_factory=RunDefaults)
    workers: int = 4
    cache_dir: Path | None = None  # file-backed staging cache when set
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
