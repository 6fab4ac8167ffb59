from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    DatabaseConfig,
    RESERVED_FIELD_IDS,
    FieldName,
    LocationDefaults,
    RunConfig,
    RunDefaults,
)

"""Run configuration loader.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate against run_config_schema.json (shipped with the package)
- Check that hierarchy and item id columns are mapped and that no column
  targets a reserved record field (the external identity)
- Apply defaults and build the frozen RunConfig
"""

SCHEMA_PATH = Path(__file__).parent / "run_config_schema.json"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: If the schema file is missing or not valid JSON, or the
            config data fails validation (missing keys, wrong types, unknown
            keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _normalize_column_map(raw: Any) -> Any:
    # YAML reads `0: hierarchy` with an int key; the schema speaks JSON (string keys)
    if isinstance(raw, dict):
        return {str(k).strip(): v for k, v in raw.items()}
    return raw


def _column_map(raw: dict[str, str]) -> dict[int, str]:
    column_map = {int(k): v.strip() for k, v in raw.items()}
    targets = set(column_map.values())
    missing = [f.value for f in (FieldName.HIERARCHY, FieldName.ITEM_ID) if f.value not in targets]
    if missing:
        raise ConfigError(f"config validation failed: column_map must map {', '.join(missing)}")
    reserved = sorted(targets & RESERVED_FIELD_IDS)
    if reserved:
        raise ConfigError(f"config validation failed: column_map may not target {', '.join(reserved)}")
    return column_map


def _decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ConfigError(f"config validation failed: {key} is not a number: {value!r}") from e


def _defaults(raw: dict[str, Any]) -> RunDefaults:
    loc_raw = raw.get("location_defaults") or {}
    base_loc = LocationDefaults()
    location_defaults = LocationDefaults(
        stock_level=loc_raw.get("stock_level", base_loc.stock_level),
        reorder_point=loc_raw.get("reorder_point", base_loc.reorder_point),
        safety_stock=loc_raw.get("safety_stock", base_loc.safety_stock),
        lead_time_days=loc_raw.get("lead_time_days", base_loc.lead_time_days),
        lead_time_rotation=tuple(loc_raw.get("lead_time_rotation", ())),
    )
    base = RunDefaults()
    return RunDefaults(
        location_refs=tuple(raw.get("location_refs", ())),
        subsidiary_ref=raw.get("subsidiary_ref", base.subsidiary_ref),
        vendor_ref=raw.get("vendor_ref", base.vendor_ref),
        purchase_price=_decimal(raw.get("purchase_price", base.purchase_price), "purchase_price"),
        tax_schedule_ref=raw.get("tax_schedule_ref", base.tax_schedule_ref),
        setup_planning=raw.get("setup_planning", base.setup_planning),
        create_vendors_from_file=raw.get("create_vendors_from_file", base.create_vendors_from_file),
        location_defaults=location_defaults,
    )


def load_config(path: Path) -> RunConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top level must be a mapping")

    data = dict(data)
    if "column_map" in data:
        data["column_map"] = _normalize_column_map(data["column_map"])

    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    cache_dir = data.get("cache_dir")
    return RunConfig(
        namespace=data["namespace"].strip(),
        source_file=Path(data["source_file"]),
        column_map=_column_map(data["column_map"]),
        defaults=_defaults(data.get("defaults") or {}),
        workers=data.get("workers", 4),
        cache_dir=Path(cache_dir) if cache_dir else None,
        database=db,
    )
