from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal, InvalidOperation

from ..models.config_models import FieldName
from ..models.row import LeafFields, MappedRow, StructureFields

"""Row mapper: raw cells -> MappedRow via the configured column map.

Blank cells and unmapped columns are ignored. A row that ends up without a
hierarchy key or natural id is dropped (None), which is normal for spacer
and note lines in exported BOMs.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "map_row",
    "map_rows",
    "parse_quantity",
]

# FieldName -> LeafFields attribute for the one-to-one typed fields
_TYPED_LEAF_FIELDS = {
    FieldName.MPN.value: "mpn",
    FieldName.MANUFACTURER.value: "manufacturer",
    FieldName.VENDOR_PART_NUMBER.value: "vendor_part_number",
    FieldName.REVISION.value: "revision",
}


def parse_quantity(value: str) -> Decimal:
    """Parse a component quantity; anything unparseable or not positive is 1."""
    try:
        qty = Decimal(value.strip())
    except (InvalidOperation, ValueError):
        return Decimal(1)
    if not qty.is_finite() or qty <= 0:
        return Decimal(1)
    return qty


def map_row(
    cells: Sequence[str], row_number: int, column_map: Mapping[int, str]
) -> MappedRow | None:
    """Apply the column map to one tokenized data row.

    Args:
        cells: Raw field values of the row
        row_number: 1-based data row number
        column_map: Column index -> field name

    Returns:
        MappedRow, or None when the hierarchy key or item id is blank
    """
    hierarchy: str | None = None
    natural_id: str | None = None
    quantity = Decimal(1)
    memo: str | None = None
    vendor: str | None = None
    typed: dict[str, str] = {}
    extra: dict[str, str] = {}

    for col_index, field_name in column_map.items():
        raw = cells[col_index] if 0 <= col_index < len(cells) else ""
        value = raw.strip()
        if not value:
            continue

        if field_name == FieldName.HIERARCHY.value:
            hierarchy = value
        elif field_name == FieldName.ITEM_ID.value:
            natural_id = value
        elif field_name == FieldName.QUANTITY.value:
            quantity = parse_quantity(value)
        elif field_name == FieldName.MEMO.value:
            memo = value
        elif field_name == FieldName.VENDOR.value:
            vendor = value
        elif field_name == FieldName.DISPLAY_NAME.value:
            typed["display_name"] = value
            typed["purchase_description"] = value
            typed["sales_description"] = value
        elif field_name in _TYPED_LEAF_FIELDS:
            typed[_TYPED_LEAF_FIELDS[field_name]] = value
        else:
            extra[field_name] = value

    if not hierarchy or not natural_id:
        return None

    return MappedRow(
        row_number=row_number,
        hierarchy_key=hierarchy,
        natural_id=natural_id,
        leaf_fields=LeafFields(**typed, extra=extra),
        structure_fields=StructureFields(quantity=quantity, memo=memo),
        vendor_name=vendor,
    )


def map_rows(rows: Iterable[Sequence[str]], column_map: Mapping[int, str]) -> list[MappedRow]:
    """Map every data row, numbering from 1 and dropping unusable rows."""
    mapped: list[MappedRow] = []
    dropped = 0
    for index, cells in enumerate(rows, start=1):
        row = map_row(cells, index, column_map)
        if row is None:
            dropped += 1
            continue
        mapped.append(row)
    if dropped:
        logger.debug("mapper dropped %d row(s) without hierarchy or item id", dropped)
    return mapped
