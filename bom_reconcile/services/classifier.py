from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from ..models.row import ClassifiedRow, MappedRow, RowKind

"""Hierarchy classifier.

Decides leaf vs composite for every row from hierarchy-key prefixes alone and
derives each row's parent key. Classification needs the complete row set: a
row is composite iff some other key lies strictly below it, which no single
row can tell on its own.

A trailing "0" segment names the level itself ("1.0" is the top assembly whose
children are "1.1", "1.2"), so keys are compared in canonical form with such
segments removed. The first segment is never removed.

Rather than scanning every key per row, the classifier collects every proper
dotted prefix of every key once; a key is composite iff it is in that set.
The result is identical to the pairwise scan.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "canonical_key",
    "parent_key",
    "descendant_prefixes",
    "classify",
    "direct_children",
]


def canonical_key(key: str) -> str:
    """Drop trailing zero segments: '1.0' -> '1', '1.2.0' -> '1.2'."""
    segments = key.strip().split(".")
    while len(segments) > 1 and _is_zero(segments[-1]):
        segments.pop()
    return ".".join(segments)


def _is_zero(segment: str) -> bool:
    return segment.isdigit() and int(segment) == 0


def parent_key(key: str) -> str | None:
    """Canonical key with the last segment removed, None for a root key."""
    canon = canonical_key(key)
    if "." not in canon:
        return None
    return canonical_key(canon.rsplit(".", 1)[0])


def descendant_prefixes(keys: Iterable[str]) -> set[str]:
    """Every canonical key that has at least one key strictly below it."""
    prefixes: set[str] = set()
    for key in keys:
        canon = canonical_key(key)
        # a dot at the last position would leave an empty suffix
        for i, ch in enumerate(canon[:-1]):
            if ch == ".":
                prefixes.add(canon[:i])
    return prefixes


def classify(rows: Sequence[MappedRow], namespace: str) -> list[ClassifiedRow]:
    """Classify the complete mapped row set.

    Rows sharing a hierarchy key are classified independently against the same
    key set and therefore get the same kind. Leaves are numbered in file order
    (sequence_index) for demo-value rotation; the index plays no part in
    identity.

    Args:
        rows: Every mapped row of the file
        namespace: Run namespace stamped onto each row

    Returns:
        Classified rows in the same order as ``rows``
    """
    composite_keys = descendant_prefixes(r.hierarchy_key for r in rows)

    classified: list[ClassifiedRow] = []
    leaf_seq = 0
    for row in rows:
        canon = canonical_key(row.hierarchy_key)
        kind = RowKind.COMPOSITE if canon in composite_keys else RowKind.LEAF
        seq: int | None = None
        if kind is RowKind.LEAF:
            seq = leaf_seq
            leaf_seq += 1
        classified.append(
            ClassifiedRow(
                row_number=row.row_number,
                hierarchy_key=row.hierarchy_key,
                natural_id=row.natural_id,
                kind=kind,
                canonical_key=canon,
                parent_key=parent_key(row.hierarchy_key),
                run_namespace=namespace,
                leaf_fields=row.leaf_fields,
                structure_fields=row.structure_fields,
                vendor_name=row.vendor_name,
                sequence_index=seq,
            )
        )

    composites = sum(1 for r in classified if r.is_composite)
    logger.info(
        "classified rows=%d leaves=%d composites=%d", len(classified), len(classified) - composites, composites
    )
    return classified


def direct_children(composite: ClassifiedRow, rows: Iterable[ClassifiedRow]) -> list[ClassifiedRow]:
    """Rows whose parent key is the composite's canonical key."""
    return [r for r in rows if r.parent_key == composite.canonical_key]
