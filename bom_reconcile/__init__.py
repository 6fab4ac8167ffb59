"""Hierarchical BOM import and reconciliation engine."""

__version__ = "0.3.0"
