"""Pydantic models for chain file frontmatter."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from prompt_chain.models.chain_variable import ChainVariable
from prompt_chain.models.model_spec import ModelSpec


class ChainStepSpec(BaseModel):
    id: str
    name: Optional[str] = None
    prompt_section: Optional[str] = None  # defaults to "step:<id>"


Difficulty = Literal["beginner", "intermediate", "advanced"]


class ChainFileSpec(BaseModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    difficulty: Optional[Difficulty] = None
    estimated_time: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    variables: list[ChainVariable] = Field(default_factory=list)
    model: ModelSpec = Field(default_factory=ModelSpec)
    steps: Optional[list[ChainStepSpec]] = None
