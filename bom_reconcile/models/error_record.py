from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the structured error log.

One record per row-level (or phase-level) failure. row=-1 marks failures that
are not attributable to a single CSV row, such as a stage crash or a
composite whose structure could not be built from any child.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: source CSV file name
        phase: pipeline phase (partition / items / structures)
        row: 1-based data row number, -1 when unknown
        natural_id: item id the failure concerns ("" when unknown)
        error_type: classification in UPPER_SNAKE_CASE
        message: human-readable failure reason
    """
    timestamp: str
    file: str
    phase: str
    row: int
    natural_id: str
    error_type: str
    message: str

    @staticmethod
    def create(
        file: str, phase: str, row: int, natural_id: str, error_type: str, message: str
    ) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            phase=phase,
            row=row,
            natural_id=natural_id,
            error_type=error_type,
            message=message,
        )

    def describe(self) -> str:
        """One-line message used in the end-of-run report."""
        where = f"row {self.row}" if self.row >= 0 else "run"
        subject = f" ({self.natural_id})" if self.natural_id else ""
        return f"[{self.phase}] {where}{subject} {self.error_type}: {self.message}"

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
