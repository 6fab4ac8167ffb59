"""Domain models for the BOM import pipeline."""

from .config_models import DatabaseConfig, FieldName, LocationDefaults, RunConfig, RunDefaults
from .error_record import ErrorRecord
from .outcome import Outcome, OutcomeStatus
from .processing_result import EntityCounts, ReconcileSummary, SummaryAccumulator
from .row import ClassifiedRow, LeafFields, MappedRow, RowKind, StructureFields
from .run_context import RunContext

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "FieldName",
    "LocationDefaults",
    "RunConfig",
    "RunDefaults",
    # Row models
    "ClassifiedRow",
    "LeafFields",
    "MappedRow",
    "RowKind",
    "StructureFields",
    # Results
    "EntityCounts",
    "ErrorRecord",
    "Outcome",
    "OutcomeStatus",
    "ReconcileSummary",
    "RunContext",
    "SummaryAccumulator",
]
