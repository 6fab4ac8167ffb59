"""Pipeline services: mapping, classification, reconciliation and reporting."""
