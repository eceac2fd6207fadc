"""Pydantic model for a single chain step."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ChainStep(BaseModel):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    prompt: str = ""

    def display_name(self, index: int) -> str:
        return self.name or f"Step {index + 1}"
