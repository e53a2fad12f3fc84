from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, PositiveInt


class RunnerSettings(BaseModel):
    """Host-side knobs for program runs."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Upper bound on step() calls per run. None keeps runs unbounded.
    max_steps: Optional[PositiveInt] = None
