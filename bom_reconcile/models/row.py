from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

"""Row models for the BOM import pipeline.

A CSV data line moves through three shapes:

    raw cells  --(mapper)-->  MappedRow  --(classifier)-->  ClassifiedRow

MappedRow carries what the column map extracted. ClassifiedRow adds the
hierarchy-derived kind and parent key plus run-scoped context; it is created
once from the complete row set and never mutated afterwards.
"""

__all__ = [
    "RowKind",
    "LeafFields",
    "StructureFields",
    "MappedRow",
    "ClassifiedRow",
]


class RowKind(Enum):
    """Record kind derived purely from hierarchy prefixes."""
    LEAF = "leaf"
    COMPOSITE = "composite"

    @property
    def record_kind(self) -> str:
        return "assembly_item" if self is RowKind.COMPOSITE else "inventory_item"


@dataclass(frozen=True)
class LeafFields:
    """Item attributes mapped from CSV columns.

    The three description attributes are filled together by the
    ``displayname`` column. Columns outside the known vocabulary land in
    ``extra`` and are passed through to the record under their own name.
    """
    display_name: str | None = None
    purchase_description: str | None = None
    sales_description: str | None = None
    mpn: str | None = None
    manufacturer: str | None = None
    vendor_part_number: str | None = None
    revision: str | None = None
    extra: dict[str, str] = field(default_factory=dict)

    # typed attribute -> record field id
    RECORD_FIELDS = {
        "display_name": "displayname",
        "purchase_description": "purchasedescription",
        "sales_description": "salesdescription",
        "mpn": "mpn",
        "manufacturer": "manufacturer",
        "vendor_part_number": "vendorpartnumber",
        "revision": "revision",
    }

    def as_record_fields(self) -> dict[str, str]:
        """Return record field id -> value for every populated attribute."""
        out: dict[str, str] = {}
        for attr, field_id in self.RECORD_FIELDS.items():
            value = getattr(self, attr)
            if value:
                out[field_id] = value
        out.update({k: v for k, v in self.extra.items() if v})
        return out

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {attr: getattr(self, attr) for attr in self.RECORD_FIELDS}
        data["extra"] = dict(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LeafFields:
        kwargs = {attr: data.get(attr) for attr in cls.RECORD_FIELDS}
        return cls(**kwargs, extra=dict(data.get("extra") or {}))


@dataclass(frozen=True)
class StructureFields:
    """Per-row values that belong on the parent's structure component line."""
    quantity: Decimal = Decimal(1)
    memo: str | None = None


@dataclass(frozen=True)
class MappedRow:
    """One CSV data line after column mapping.

    row_number is 1-based counting data lines only (the header is not row 1).
    Rows without a hierarchy key or natural id never become a MappedRow.
    """
    row_number: int
    hierarchy_key: str
    natural_id: str
    leaf_fields: LeafFields = field(default_factory=LeafFields)
    structure_fields: StructureFields = field(default_factory=StructureFields)
    vendor_name: str | None = None


@dataclass(frozen=True)
class ClassifiedRow:
    """MappedRow plus hierarchy classification and run context."""
    row_number: int
    hierarchy_key: str
    natural_id: str
    kind: RowKind
    canonical_key: str
    parent_key: str | None
    run_namespace: str
    leaf_fields: LeafFields = field(default_factory=LeafFields)
    structure_fields: StructureFields = field(default_factory=StructureFields)
    vendor_name: str | None = None
    sequence_index: int | None = None  # ordinal among leaves, None for composites

    @property
    def is_composite(self) -> bool:
        return self.kind is RowKind.COMPOSITE

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation used by the staging cache."""
        return {
            "row_number": self.row_number,
            "hierarchy_key": self.hierarchy_key,
            "natural_id": self.natural_id,
            "kind": self.kind.value,
            "canonical_key": self.canonical_key,
            "parent_key": self.parent_key,
            "run_namespace": self.run_namespace,
            "leaf_fields": self.leaf_fields.to_dict(),
            "quantity": str(self.structure_fields.quantity),
            "memo": self.structure_fields.memo,
            "vendor_name": self.vendor_name,
            "sequence_index": self.sequence_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClassifiedRow:
        return cls(
            row_number=int(data["row_number"]),
            hierarchy_key=data["hierarchy_key"],
            natural_id=data["natural_id"],
            kind=RowKind(data["kind"]),
            canonical_key=data["canonical_key"],
            parent_key=data.get("parent_key"),
            run_namespace=data["run_namespace"],
            leaf_fields=LeafFields.from_dict(data.get("leaf_fields") or {}),
            structure_fields=StructureFields(
                quantity=Decimal(data.get("quantity") or "1"),
                memo=data.get("memo"),
            ),
            vendor_name=data.get("vendor_name"),
            sequence_index=data.get("sequence_index"),
        )
