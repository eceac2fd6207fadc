"""Chain discovery, lookup and the bundled template catalog."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterator

import frontmatter
import yaml

from prompt_chain.models.chain_prompt import ChainPrompt, utc_now
from prompt_chain.models.loaded_chain_file import LoadedChainFile


logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"[^a-z0-9]+")


def load_chain_file(path: Path) -> ChainPrompt:
    return LoadedChainFile(path).to_chain()


def read_chain_id(path: Path) -> str | None:
    """
    Read only the frontmatter of ``path`` and return its chain id.
    Returns None for markdown that is not a chain file (no ``name`` in frontmatter).
    Raises yaml.YAMLError, OSError or UnicodeDecodeError for unreadable files.
    """
    post = frontmatter.load(str(path))
    if not post.metadata.get("name"):
        return None
    return str(post.metadata.get("id") or path.stem)


def slugify(text: str) -> str:
    return SLUG_RE.sub("-", text.lower()).strip("-") or "chain"


class ChainRegistry:
    """
    Read side of chain storage: markdown chain files under ``chain_roots`` plus
    chains registered in memory. Earlier roots win when ids collide.

    Indexing reads frontmatter only. Files that are not chains, or that cannot
    be read, are skipped with a log line; a malformed chain only fails when it
    is requested by id.
    """

    def __init__(self, chain_roots: list[Path]):
        self.chain_roots = chain_roots
        self._cache: dict[str, ChainPrompt] = {}
        self._registered: dict[str, ChainPrompt] = {}
        self._index: dict[str, Path] | None = None

    def _build_index(self) -> dict[str, Path]:
        index: dict[str, Path] = {}
        for root in self.chain_roots:
            if not root.exists():
                continue
            for path in sorted(root.rglob("*.md")):
                try:
                    chain_id = read_chain_id(path)
                except (yaml.YAMLError, OSError, UnicodeDecodeError) as exc:
                    logger.warning("Skipping %s: unreadable frontmatter (%s)", path, exc)
                    continue
                if chain_id is None:
                    logger.debug("Skipping %s: not a chain file", path)
                    continue
                if chain_id in index:
                    logger.debug("Skipping %s: chain %r already found in %s", path, chain_id, index[chain_id])
                    continue
                index[chain_id] = path
        return index

    def _get_index(self) -> dict[str, Path]:
        if self._index is None:
            self._index = self._build_index()
        return self._index

    def register(self, chain: ChainPrompt) -> None:
        self._registered[chain.id] = chain

    def list_chains(self) -> list[str]:
        return sorted(set(self._get_index()) | set(self._registered))

    def get(self, chain_id: str) -> ChainPrompt:
        if chain_id in self._registered:
            return self._registered[chain_id]
        if chain_id in self._cache:
            return self._cache[chain_id]
        path = self._get_index().get(chain_id)
        if path is None:
            raise KeyError(f"Chain not found: {chain_id} (searched: {self.chain_roots})")
        chain = load_chain_file(path)
        self._cache[chain_id] = chain
        return chain

    def iter_chains(self) -> Iterator[ChainPrompt]:
        """Yield every loadable chain in id order, logging and skipping broken ones."""
        for chain_id in self.list_chains():
            try:
                yield self.get(chain_id)
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping chain %r: %s", chain_id, exc)

    def categories(self) -> list[str]:
        return sorted({chain.category for chain in self.iter_chains() if chain.category})

    def by_category(self, category: str) -> list[ChainPrompt]:
        wanted = category.strip().lower()
        return [chain for chain in self.iter_chains() if (chain.category or "").lower() == wanted]

    def search(self, query: str) -> list[ChainPrompt]:
        return [chain for chain in self.iter_chains() if chain.matches(query)]

    def import_chain(self, chain_id: str, custom_name: str | None = None) -> ChainPrompt:
        """
        Copy a chain (typically a bundled template) under a fresh id and register it.

        The copy takes ``custom_name`` when given, gets an id derived from its
        name that does not collide with any known chain, and new timestamps.
        """
        template = self.get(chain_id)
        name = custom_name or template.name
        now = utc_now()
        data = template.model_dump()
        data.update(id=self._unused_id(slugify(name)), name=name, created_at=now, updated_at=now)
        chain = ChainPrompt.model_validate(data)
        self.register(chain)
        logger.info("Imported chain %r as %r", chain_id, chain.id)
        return chain

    def _unused_id(self, base: str) -> str:
        taken = set(self.list_chains())
        candidate = base
        suffix = 2
        while candidate in taken:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate
