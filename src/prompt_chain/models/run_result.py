"""Pydantic models for the observable outcome of a run."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from prompt_chain.errors import ErrorKind


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.ABORTED)


class RunResultStep(BaseModel):
    step_index: int
    step_id: str
    step_name: str = ""
    input_prompt: str
    output_text: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @model_validator(mode="after")
    def _check_outcome(self) -> "RunResultStep":
        if (self.output_text is None) == (self.error is None):
            raise ValueError("A step result carries exactly one of output_text or error.")
        return self

    @property
    def succeeded(self) -> bool:
        return self.output_text is not None


class RunResult(BaseModel):
    prompt_id: str
    status: RunStatus = RunStatus.PENDING
    steps: list[RunResultStep] = Field(default_factory=list)
    total_steps: int = 0
    current_step: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
