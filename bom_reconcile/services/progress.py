from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

One bar over Phase 2 work units. In non-TTY environments (CI, piped output)
no bar is created, so logs stay free of control sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """Check whether a progress bar should be drawn.

    Returns:
        True if stdout is a TTY, False otherwise
    """
    return sys.stdout.isatty()


class ProgressTracker:
    """Unit counter backed by tqdm when stdout is a terminal.

    advance() is called from the orchestrating thread as futures complete.
    """

    def __init__(self, total_units: int, *, description: str = "Reconciling items") -> None:
        """Initialize the tracker.

        Args:
            total_units: Work units across both Phase 2 stages
            description: Progress bar label
        """
        self.total_units = total_units
        self.description = description
        self.completed = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_units,
                desc=description,
                unit="item",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def set_stage(self, stage: str) -> None:
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({stage})")

    def advance(self) -> None:
        self.completed += 1
        if self.pbar is not None:
            self.pbar.update(1)

    def set_postfix(self, **kwargs: Any) -> None:
        """Show running counts next to the bar (no-op without a TTY)."""
        if self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
