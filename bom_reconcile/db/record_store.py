from __future__ import annotations

import copy
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

"""Abstract keyed record store and its in-memory implementation.

The engine only needs four operations:

    find_by_external_id(kind, external_id) -> ref | None
    create(kind, fields, sublists)         -> ref
    load(kind, ref)                        -> RecordHandle (mutable copy)
    save(handle)                           -> ref

Refs are opaque. Nothing assumes they are sequential; continuity across runs
comes only from external ids, which are unique per record family (inventory
and assembly items share the "item" family, so a part cannot exist once as
each kind).
"""

__all__ = [
    "RecordStoreError",
    "DuplicateIdentityError",
    "RecordNotFoundError",
    "InvalidFieldError",
    "RecordHandle",
    "RecordStore",
    "InMemoryRecordStore",
    "family_of",
    "new_record",
]

KIND_FAMILY = {
    "inventory_item": "item",
    "assembly_item": "item",
    "vendor": "vendor",
    "bom": "bom",
    "bom_revision": "bom_revision",
}

# record field / sublist ids: lower-case identifier style
_FIELD_ID = re.compile(r"^[a-z][a-z0-9_]*$")


class RecordStoreError(Exception):
    """Base exception for record store failures."""


class DuplicateIdentityError(RecordStoreError):
    """Raised when a create collides with an existing external id."""


class RecordNotFoundError(RecordStoreError):
    """Raised when loading a ref that does not exist."""


class InvalidFieldError(RecordStoreError):
    """Raised when a field or sublist id is not accepted by the store."""


def family_of(kind: str) -> str:
    try:
        return KIND_FAMILY[kind]
    except KeyError:
        raise RecordStoreError(f"unknown record kind: {kind}") from None


def _check_field_id(field_id: str) -> None:
    if not isinstance(field_id, str) or not _FIELD_ID.match(field_id):
        raise InvalidFieldError(f"invalid field id: {field_id!r}")


@dataclass
class RecordHandle:
    """Mutable working copy of a record; changes persist only through save()."""
    kind: str
    ref: Any = None
    fields: dict[str, Any] = field(default_factory=dict)
    sublists: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

    @property
    def external_id(self) -> str | None:
        return self.fields.get("externalid")

    def get_value(self, field_id: str, default: Any = None) -> Any:
        return self.fields.get(field_id, default)

    def set_value(self, field_id: str, value: Any) -> None:
        _check_field_id(field_id)
        self.fields[field_id] = value

    def lines(self, sublist: str) -> list[dict[str, Any]]:
        return self.sublists.get(sublist, [])

    def add_line(self, sublist: str, values: dict[str, Any]) -> None:
        _check_field_id(sublist)
        for key in values:
            _check_field_id(key)
        self.sublists.setdefault(sublist, []).append(dict(values))


def new_record(kind: str) -> RecordHandle:
    """Unsaved handle; save() creates it."""
    family_of(kind)
    return RecordHandle(kind=kind)


class RecordStore(Protocol):
    def find_by_external_id(self, kind: str, external_id: str) -> Any | None: ...

    def create(
        self, kind: str, fields: dict[str, Any], sublists: dict[str, list[dict[str, Any]]] | None = None
    ) -> Any: ...

    def load(self, kind: str, ref: Any) -> RecordHandle: ...

    def save(self, handle: RecordHandle) -> Any: ...

    def close(self) -> None: ...


class InMemoryRecordStore:
    """Thread-safe dict-backed store used for dry runs and tests.

    The lock only keeps the store's own dicts consistent. Two workers racing
    to create the same external id get DuplicateIdentityError for the loser,
    the same as a unique constraint in a real database.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[int, RecordHandle] = {}
        self._index: dict[tuple[str, str], int] = {}
        self._next_ref = 1000
        self.write_count = 0

    def __len__(self) -> int:
        return len(self._records)

    def close(self) -> None:
        """Nothing to release; records stay readable for inspection."""

    def find_by_external_id(self, kind: str, external_id: str) -> int | None:
        with self._lock:
            return self._index.get((family_of(kind), external_id))

    def create(
        self, kind: str, fields: dict[str, Any], sublists: dict[str, list[dict[str, Any]]] | None = None
    ) -> int:
        family = family_of(kind)
        for key in fields:
            _check_field_id(key)
        external_id = fields.get("externalid")
        with self._lock:
            if external_id is not None and (family, external_id) in self._index:
                raise DuplicateIdentityError(
                    f"{family} with external id {external_id!r} already exists"
                )
            ref = self._next_ref
            self._next_ref += 1
            self._records[ref] = RecordHandle(
                kind=kind,
                ref=ref,
                fields=copy.deepcopy(fields),
                sublists=copy.deepcopy(sublists or {}),
            )
            if external_id is not None:
                self._index[(family, external_id)] = ref
            self.write_count += 1
            return ref

    def load(self, kind: str, ref: Any) -> RecordHandle:
        with self._lock:
            rec = self._records.get(ref)
            if rec is None or family_of(rec.kind) != family_of(kind):
                raise RecordNotFoundError(f"{kind} {ref} not found")
            return copy.deepcopy(rec)

    def save(self, handle: RecordHandle) -> int:
        if handle.ref is None:
            ref = self.create(handle.kind, handle.fields, handle.sublists)
            handle.ref = ref
            return ref
        with self._lock:
            if handle.ref not in self._records:
                raise RecordNotFoundError(f"{handle.kind} {handle.ref} not found")
            family = family_of(handle.kind)
            old_ext = self._records[handle.ref].external_id
            new_ext = handle.external_id
            if new_ext != old_ext:
                if new_ext is not None and self._index.get((family, new_ext), handle.ref) != handle.ref:
                    raise DuplicateIdentityError(
                        f"{family} with external id {new_ext!r} already exists"
                    )
                self._index.pop((family, old_ext), None)
                if new_ext is not None:
                    self._index[(family, new_ext)] = handle.ref
            self._records[handle.ref] = copy.deepcopy(handle)
            self.write_count += 1
            return handle.ref

    def records_of(self, kind: str) -> list[RecordHandle]:
        """Snapshot of every record of exactly this kind (test/inspection helper)."""
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values() if r.kind == kind]
