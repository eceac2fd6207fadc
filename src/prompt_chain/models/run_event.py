"""Pydantic model for run progress notifications."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel

from prompt_chain.models.run_result import RunResult

RunEventKind = Literal["run_started", "step_started", "step_succeeded", "step_failed", "run_finished"]


class RunEvent(BaseModel):
    kind: RunEventKind
    step_index: Optional[int] = None
    snapshot: RunResult
