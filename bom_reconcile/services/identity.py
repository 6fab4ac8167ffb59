from __future__ import annotations

import logging
from typing import Any

from ..db.record_store import RecordStore

"""Deterministic external identities and existence lookups.

Identity is a pure function of (namespace, natural id, role):

    item       NS_<naturalId>
    structure  NS_<naturalId>_BOM
    revision   NS_<naturalId>_REV_A
    vendor     NS_VENDOR_<vendorName>

Every create is preceded by a lookup of the identity it is about to write,
which is what makes repeated runs and duplicate rows converge on one record.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "item_identity",
    "structure_identity",
    "revision_identity",
    "vendor_identity",
    "identity_for",
    "IdentityResolver",
]

STRUCTURE_SUFFIX = "_BOM"
REVISION_SUFFIX = "_REV_A"


def item_identity(namespace: str, natural_id: str) -> str:
    return f"{namespace}_{natural_id}"


def structure_identity(namespace: str, natural_id: str) -> str:
    return f"{namespace}_{natural_id}{STRUCTURE_SUFFIX}"


def revision_identity(namespace: str, natural_id: str) -> str:
    return f"{namespace}_{natural_id}{REVISION_SUFFIX}"


def vendor_identity(namespace: str, vendor_name: str) -> str:
    return f"{namespace}_VENDOR_{vendor_name.strip()}"


_BUILDERS = {
    "inventory_item": item_identity,
    "assembly_item": item_identity,
    "bom": structure_identity,
    "bom_revision": revision_identity,
    "vendor": vendor_identity,
}


def identity_for(kind: str, natural_id: str, namespace: str) -> str:
    try:
        builder = _BUILDERS[kind]
    except KeyError:
        raise ValueError(f"no identity scheme for kind: {kind}") from None
    return builder(namespace, natural_id)


class IdentityResolver:
    """Existence lookups by external identity.

    Lookup errors are logged and reported as not-found. Forward progress wins
    over strict consistency: the following create either succeeds or trips
    the store's uniqueness check and becomes a soft row failure.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def resolve_or_none(self, kind: str, natural_id: str, namespace: str) -> Any | None:
        external_id = identity_for(kind, natural_id, namespace)
        return self.resolve_identity(kind, external_id)

    def resolve_identity(self, kind: str, external_id: str) -> Any | None:
        try:
            return self.store.find_by_external_id(kind, external_id)
        except Exception as e:
            logger.warning("identity lookup failed kind=%s id=%s: %s", kind, external_id, e)
            return None
