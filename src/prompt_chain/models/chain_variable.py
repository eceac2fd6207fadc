"""Pydantic model for a chain variable declaration."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ChainVariable(BaseModel):
    key: str = Field(min_length=1)
    default_value: Optional[str] = None  # None means "required"; "" is a real default
