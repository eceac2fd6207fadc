"""Helper for running chains by id, one at a time."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Mapping

import anyio
from anyio.abc import TaskGroup

from prompt_chain.cancellation import CancellationToken
from prompt_chain.chain_registry import ChainRegistry
from prompt_chain.chain_runner import ChainRunner, RunHandle, RunListener, resolve_variables
from prompt_chain.errors import RunAlreadyActive
from prompt_chain.generation import AgentGenerationService, GenerationService
from prompt_chain.models.chain_prompt import ChainPrompt
from prompt_chain.models.run_result import RunResult


logger = logging.getLogger(__name__)

GenerationFactory = Callable[[ChainPrompt], GenerationService]


def agent_generation_for(chain: ChainPrompt) -> GenerationService:
    return AgentGenerationService(chain.model, chain.instructions)


class Orchestrator:
    def __init__(
        self,
        chain_roots: list[Path] | None = None,
        generation_factory: GenerationFactory | None = None,
    ) -> None:
        self.registry: ChainRegistry = ChainRegistry(chain_roots or [])
        self._generation_factory: GenerationFactory = generation_factory or agent_generation_for
        self._active: RunHandle | None = None

    @property
    def active(self) -> RunHandle | None:
        if self._active is not None and self._active.done:
            self._active = None
        return self._active

    def start(
        self,
        chain_id: str,
        variables: Mapping[str, str] | None = None,
        *,
        task_group: TaskGroup,
        cancel_token: CancellationToken | None = None,
    ) -> RunHandle:
        self._check_idle()
        chain = self.registry.get(chain_id)
        runner = ChainRunner(self._generation_factory(chain))
        handle = runner.start(chain, variables, task_group=task_group, cancel_token=cancel_token)
        self._active = handle
        return handle

    def abort_active(self, reason: str | None = None) -> bool:
        """Cancel the active run, e.g. when the host page navigates away. False when idle."""
        active = self.active
        if active is None:
            return False
        logger.warning("Aborting active chain %r: %s", active.prompt_id, reason or "requested")
        active.cancel(reason)
        return True

    async def run(
        self,
        chain_id: str,
        variables: Mapping[str, str] | None = None,
        *,
        listener: RunListener | None = None,
        timeout: float | None = None,
    ) -> RunResult:
        # Lookup and validation errors must surface before the task group opens.
        self._check_idle()
        resolve_variables(self.registry.get(chain_id), variables or {})
        async with anyio.create_task_group() as task_group:
            handle = self.start(chain_id, variables, task_group=task_group)
            if listener is not None:
                handle.subscribe(listener)
            if timeout is not None:
                with anyio.move_on_after(timeout):
                    await handle.wait()
                handle.cancel(f"Timed out after {timeout:g}s")
        return handle.snapshot()

    def _check_idle(self) -> None:
        active = self.active
        if active is not None:
            raise RunAlreadyActive(f"Chain {active.prompt_id!r} is still running.")
