"""
Prompt template rendering.

Templates reference caller variables as ``{{ key }}`` and the output of an
earlier step by ordinal, either ``{{step:0}}`` (0-based) or the legacy
``{{Step1.output}}`` (1-based). Rendering never fails:

* an unresolved variable stays in the text exactly as written, so the user
  can see what did not resolve;
* a step reference that has not run yet, or does not exist, becomes "".
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping, Sequence


PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")
STEP_REF_RE = re.compile(r"^step:(\d+)$", re.IGNORECASE)
LEGACY_STEP_REF_RE = re.compile(r"^Step(\d+)\.output$")


@dataclass(frozen=True)
class TemplateCheck:
    missing_variables: list[str] = field(default_factory=list)
    invalid_references: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.missing_variables and not self.invalid_references


def step_reference(placeholder: str) -> int | None:
    """Return the 0-based step ordinal a placeholder points at, or None for variables."""
    match = STEP_REF_RE.match(placeholder)
    if match:
        return int(match.group(1))
    match = LEGACY_STEP_REF_RE.match(placeholder)
    if match:
        return int(match.group(1)) - 1
    return None


def extract_placeholders(template: str) -> list[str]:
    placeholders: list[str] = []
    for match in PLACEHOLDER_RE.finditer(template):
        placeholder = match.group(1).strip()
        if placeholder not in placeholders:
            placeholders.append(placeholder)
    return placeholders


def render(template: str, variables: Mapping[str, str], prior_outputs: Sequence[str]) -> str:
    def substitute(match: re.Match[str]) -> str:
        placeholder = match.group(1).strip()
        index = step_reference(placeholder)
        if index is not None:
            if 0 <= index < len(prior_outputs):
                return prior_outputs[index]
            return ""
        value = variables.get(placeholder)
        if value is None:
            return match.group(0)
        return value

    return PLACEHOLDER_RE.sub(substitute, template)


def check_template(template: str, variables: Mapping[str, str], step_index: int | None = None) -> TemplateCheck:
    """
    Report unresolved variables and step references that cannot have run yet.
    ``step_index`` is the ordinal of the step owning the template.
    """
    missing: list[str] = []
    invalid: list[str] = []
    for placeholder in extract_placeholders(template):
        index = step_reference(placeholder)
        if index is None:
            if placeholder not in variables:
                missing.append(placeholder)
        elif index < 0 or (step_index is not None and index >= step_index):
            invalid.append(placeholder)
    return TemplateCheck(missing_variables=missing, invalid_references=invalid)
