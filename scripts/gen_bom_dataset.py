#!/usr/bin/env python3
"""Dataset generation script for performance testing.

Generates synthetic hierarchical BOM CSV files. Each top-level assembly is
written as "N.0" followed by its subtree ("N.1", "N.1.1", ...), so the file
exercises both the trailing-zero key form and nested sub-assemblies:

    Level,Part Number,Description,MPN,Manufacturer,Vendor,Qty
    1.0,ASM-00001,Assembly 1,,,,1
    1.1,PRT-00002,Resistor 10k,MPN-4821,Acme Parts,Digi Supply,4
    ...

Part numbers are reused across assemblies with probability --reuse, so the
same leaf can appear under several parents as it does in real BOMs.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np

HEADER = ["Level", "Part Number", "Description", "MPN", "Manufacturer", "Vendor", "Qty"]

MANUFACTURERS = ["Acme Parts", "Globex", "Initech", "Umbrella Components", "Soylent Electro"]
VENDORS = ["Digi Supply", "Mouse Electronics", "Arrowhead Distribution"]
PART_TYPES = ["Resistor", "Capacitor", "Connector", "Bracket", "Screw", "Cable", "IC", "Diode"]


def generate_bom_rows(
    assemblies: int,
    depth: int = 3,
    fanout: int = 4,
    reuse: float = 0.2,
    seed: int = 42,
) -> list[list[str]]:
    """Generate data rows (without header).

    Args:
        assemblies: Number of top-level assemblies
        depth: Maximum nesting depth below each top-level assembly
        fanout: Mean number of children per assembly (Poisson, at least 1)
        reuse: Probability that a leaf reuses an already generated part number
        seed: Random seed for reproducible data

    Returns:
        Rows of string cells in HEADER order
    """
    rng = np.random.default_rng(seed)
    rows: list[list[str]] = []
    leaf_ids: list[str] = []
    counter = 0

    def next_id(prefix: str) -> str:
        nonlocal counter
        counter += 1
        return f"{prefix}-{counter:05d}"

    def emit_children(parent_key: str, level: int) -> None:
        n_children = max(1, int(rng.poisson(fanout)))
        for i in range(1, n_children + 1):
            key = f"{parent_key}.{i}"
            # deeper levels are increasingly likely to be leaves
            is_assembly = level < depth and rng.random() < 0.35 / level
            if is_assembly:
                rows.append([key, next_id("ASM"), f"Sub-assembly {key}", "", "", "", str(int(rng.integers(1, 3)))])
                emit_children(key, level + 1)
                continue
            if leaf_ids and rng.random() < reuse:
                part = leaf_ids[int(rng.integers(0, len(leaf_ids)))]
            else:
                part = next_id("PRT")
                leaf_ids.append(part)
            part_type = PART_TYPES[int(rng.integers(0, len(PART_TYPES)))]
            rows.append(
                [
                    key,
                    part,
                    f"{part_type} {part[-4:]}",
                    f"MPN-{int(rng.integers(1000, 9999))}",
                    MANUFACTURERS[int(rng.integers(0, len(MANUFACTURERS)))],
                    VENDORS[int(rng.integers(0, len(VENDORS)))],
                    str(int(rng.integers(1, 20))),
                ]
            )

    for a in range(1, assemblies + 1):
        rows.append([f"{a}.0", next_id("ASM"), f"Assembly {a}", "", "", "", "1"])
        emit_children(str(a), 1)
    return rows


def _csv_cell(value: str) -> str:
    if any(ch in value for ch in ',"\t\n'):
        return '"' + value.replace('"', '""') + '"'
    return value


def write_bom_csv(output_path: Path, rows: list[list[str]]) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    lines = [",".join(_csv_cell(c) for c in row) for row in [HEADER, *rows]]
    output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def main() -> int:
    """Main CLI interface for dataset generation."""
    parser = argparse.ArgumentParser(
        description="Generate synthetic hierarchical BOM CSV datasets for performance testing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # 200 top-level assemblies, default shape
  %(prog)s data/bom.csv --assemblies 200

  # Deep, wide trees
  %(prog)s data/deep.csv --assemblies 50 --depth 5 --fanout 8
        """,
    )
    parser.add_argument("output", type=Path, help="Output CSV file path")
    parser.add_argument("--assemblies", type=int, default=100, help="Top-level assemblies (default: 100)")
    parser.add_argument("--depth", type=int, default=3, help="Maximum nesting depth (default: 3)")
    parser.add_argument("--fanout", type=int, default=4, help="Mean children per assembly (default: 4)")
    parser.add_argument("--reuse", type=float, default=0.2, help="Leaf part number reuse probability (default: 0.2)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.assemblies <= 0:
        print("Error: --assemblies must be positive", file=sys.stderr)
        return 1
    if args.depth <= 0 or args.fanout <= 0:
        print("Error: --depth and --fanout must be positive", file=sys.stderr)
        return 1
    if not 0.0 <= args.reuse <= 1.0:
        print("Error: --reuse must be between 0 and 1", file=sys.stderr)
        return 1

    rows = generate_bom_rows(args.assemblies, args.depth, args.fanout, args.reuse, args.seed)
    write_bom_csv(args.output, rows)
    print(f"Created BOM file: {args.output}")
    print(f"  Data rows: {len(rows):,}")
    print(f"  Top-level assemblies: {args.assemblies}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
