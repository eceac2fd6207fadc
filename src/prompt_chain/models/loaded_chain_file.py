"""Loaded chain markdown plus parsed metadata."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import frontmatter

from prompt_chain.models.chain_file_spec import ChainFileSpec, ChainStepSpec
from prompt_chain.models.chain_prompt import ChainPrompt
from prompt_chain.models.chain_step import ChainStep


logger = logging.getLogger(__name__)

SECTION_HEADER_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*$", re.MULTILINE)
STEP_HEADER_RE = re.compile(r"^step:([A-Za-z0-9_-]+)(?:\s+(.+))?$", re.IGNORECASE)


@dataclass
class LoadedChainFile:
    spec: ChainFileSpec
    chain_id: str
    instructions: str
    step_prompts: dict[str, str]  # "step:<id>" -> markdown chunk
    step_titles: dict[str, str]  # "step:<id>" -> optional title from the header

    def __init__(self, chain: Path | str) -> None:
        post, source_label = load_chain_frontmatter(chain)
        spec = ChainFileSpec.model_validate(post.metadata)
        sections = parse_chain_sections(post.content)
        if sections.first_section_start is not None:
            preamble = post.content[: sections.first_section_start]
            if preamble.strip():
                logger.warning("Ignored text before the first section in %s", source_label)
        if spec.id:
            chain_id = spec.id
        elif isinstance(chain, Path):
            chain_id = chain.stem
        else:
            raise ValueError("Inline chain markdown must declare an id in its frontmatter.")
        self.spec = spec
        self.chain_id = chain_id
        self.instructions = sections.instructions
        self.step_prompts = sections.step_prompts
        self.step_titles = sections.step_titles

    @classmethod
    def from_parts(
        cls,
        *,
        spec: ChainFileSpec,
        chain_id: str,
        instructions: str,
        step_prompts: dict[str, str],
        step_titles: dict[str, str] | None = None,
    ) -> "LoadedChainFile":
        obj = cls.__new__(cls)
        obj.spec = spec
        obj.chain_id = chain_id
        obj.instructions = instructions
        obj.step_prompts = step_prompts
        obj.step_titles = step_titles or {}
        return obj

    def step_specs(self) -> list[ChainStepSpec]:
        if self.spec.steps is not None:
            return self.spec.steps
        return [ChainStepSpec(id=key.split(":", 1)[1]) for key in self.step_prompts]

    def to_chain(self) -> ChainPrompt:
        steps: list[ChainStep] = []
        for step_spec in self.step_specs():
            section = step_spec.prompt_section or f"step:{step_spec.id}"
            if section not in self.step_prompts:
                raise KeyError(f"Step {step_spec.id!r} has no section {section!r} in chain {self.chain_id!r}.")
            steps.append(
                ChainStep(
                    id=step_spec.id,
                    name=step_spec.name or self.step_titles.get(section),
                    prompt=self.step_prompts[section],
                )
            )
        data: dict[str, object] = {
            "id": self.chain_id,
            "name": self.spec.name,
            "description": self.spec.description,
            "category": self.spec.category,
            "tags": self.spec.tags,
            "difficulty": self.spec.difficulty,
            "estimated_time": self.spec.estimated_time,
            "variables": self.spec.variables,
            "steps": steps,
            "model": self.spec.model,
            "instructions": self.instructions,
        }
        if self.spec.created_at is not None:
            data["created_at"] = self.spec.created_at
        if self.spec.updated_at is not None:
            data["updated_at"] = self.spec.updated_at
        return ChainPrompt.model_validate(data)


@dataclass(frozen=True)
class ParsedChainSections:
    instructions: str
    step_prompts: dict[str, str]
    step_titles: dict[str, str]
    first_section_start: int | None


def load_chain_frontmatter(chain: Path | str) -> tuple[frontmatter.Post, str]:
    if isinstance(chain, Path):
        post = frontmatter.load(str(chain))
        return post, str(chain)
    post = frontmatter.loads(chain)
    return post, "<inline>"


def normalize_header_text(header_text: str) -> str:
    normalized = header_text.strip().lower().replace("_", " ")
    return re.sub(r"\s+", " ", normalized)


def classify_section_header(header_text: str) -> tuple[str, str, str] | None:
    header = header_text.strip()
    step_match = STEP_HEADER_RE.match(header)
    if step_match:
        title = (step_match.group(2) or "").strip()
        return ("step", f"step:{step_match.group(1)}", title)
    if normalize_header_text(header_text) == "instructions":
        return ("instructions", "instructions", "")
    return None


def parse_chain_sections(markdown_body: str) -> ParsedChainSections:
    recognized: list[tuple[str, str, str, int, int]] = []
    for match in SECTION_HEADER_RE.finditer(markdown_body):
        classified = classify_section_header(match.group(2))
        if classified is None:
            continue
        kind, key, title = classified
        recognized.append((kind, key, title, match.start(), match.end()))

    instructions = ""
    step_prompts: dict[str, str] = {}
    step_titles: dict[str, str] = {}

    for index, (kind, key, title, _start, end) in enumerate(recognized):
        next_index = index + 1
        section_end = recognized[next_index][3] if next_index < len(recognized) else len(markdown_body)
        content = markdown_body[end:section_end].strip()
        if kind == "instructions":
            if not instructions:
                instructions = content
            continue
        if key in step_prompts:
            raise ValueError(f"Duplicate step section: {key}")
        step_prompts[key] = content
        if title:
            step_titles[key] = title

    first_section_start = recognized[0][3] if recognized else None
    return ParsedChainSections(
        instructions=instructions,
        step_prompts=step_prompts,
        step_titles=step_titles,
        first_section_start=first_section_start,
    )


def render_chain_file(chain: ChainPrompt) -> str:
    """Serialize a chain back to frontmatter plus ``## step:<id>`` sections."""
    data = chain.model_dump(mode="json", exclude_none=True)
    metadata: dict[str, object] = {
        key: data[key]
        for key in (
            "id",
            "name",
            "description",
            "category",
            "tags",
            "difficulty",
            "estimated_time",
            "created_at",
            "updated_at",
            "variables",
            "model",
        )
        if key in data and data[key] != []
    }
    step_entries: list[dict[str, str]] = []
    sections: list[str] = []
    if chain.instructions:
        sections.append(f"## instructions\n\n{chain.instructions}")
    for step in chain.steps:
        if STEP_HEADER_RE.match(f"step:{step.id}") is None:
            raise ValueError(f"Step id {step.id!r} cannot be written as a section header.")
        entry = {"id": step.id}
        if step.name:
            entry["name"] = step.name
        step_entries.append(entry)
        sections.append(f"## step:{step.id}\n\n{step.prompt}")
    metadata["steps"] = step_entries
    post = frontmatter.Post("\n\n".join(sections), **metadata)
    return frontmatter.dumps(post, sort_keys=False) + "\n"
