from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from .config_models import RunConfig


@dataclass(frozen=True)
class RunContext:
    """Immutable per-run context passed explicitly between phases."""
    run_id: str
    config: RunConfig
    started_at: datetime
    header_columns: int = 0

    @property
    def namespace(self) -> str:
        return self.config.namespace

    @property
    def source_name(self) -> str:
        return self.config.source_file.name

    @property
    def run_date(self) -> date:
        return self.started_at.date()

    def cache_key(self, name: str) -> str:
        return f"{self.namespace}:{self.run_id}:{name}"
