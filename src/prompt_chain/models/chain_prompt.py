"""Pydantic model for a saved chain definition."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from prompt_chain.models.chain_file_spec import Difficulty
from prompt_chain.models.chain_step import ChainStep
from prompt_chain.models.chain_variable import ChainVariable
from prompt_chain.models.model_spec import ModelSpec


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChainPrompt(BaseModel):
    id: str = Field(min_length=1)
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    difficulty: Optional[Difficulty] = None
    estimated_time: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    variables: list[ChainVariable] = Field(default_factory=list)
    steps: list[ChainStep] = Field(default_factory=list)
    model: ModelSpec = Field(default_factory=ModelSpec)
    instructions: str = ""

    @model_validator(mode="after")
    def _check_unique_keys(self) -> "ChainPrompt":
        seen_keys: set[str] = set()
        for variable in self.variables:
            if variable.key in seen_keys:
                raise ValueError(f"Duplicate variable key: {variable.key!r}")
            seen_keys.add(variable.key)
        seen_ids: set[str] = set()
        for step in self.steps:
            if step.id in seen_ids:
                raise ValueError(f"Duplicate step id: {step.id!r}")
            seen_ids.add(step.id)
        return self

    def updated(self, **changes: Any) -> "ChainPrompt":
        """Return a validated copy with ``changes`` applied and ``updated_at`` refreshed."""
        data = self.model_dump()
        data.update(changes)
        data["created_at"] = self.created_at
        data["updated_at"] = utc_now()
        return ChainPrompt.model_validate(data)

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on name, description and tags."""
        needle = query.strip().lower()
        haystack = [self.name, self.description or "", *self.tags]
        return any(needle in text.lower() for text in haystack)
