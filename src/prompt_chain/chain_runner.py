"""Chain run lifecycle: ordering, fail-fast and cancellation."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Mapping

import anyio
from anyio.abc import TaskGroup

from prompt_chain.cancellation import CancellationToken
from prompt_chain.errors import InvalidTransition, ValidationError
from prompt_chain.generation import GenerationService
from prompt_chain.models.chain_prompt import ChainPrompt, utc_now
from prompt_chain.models.chain_step import ChainStep
from prompt_chain.models.run_context import RunContext
from prompt_chain.models.run_event import RunEvent, RunEventKind
from prompt_chain.models.run_result import RunResult, RunResultStep, RunStatus
from prompt_chain.step_executor import StepExecutor
from prompt_chain.templating import check_template, render


logger = logging.getLogger(__name__)

RunListener = Callable[[RunEvent], None]

ALLOWED_TRANSITIONS: dict[RunStatus, tuple[RunStatus, ...]] = {
    RunStatus.PENDING: (RunStatus.RUNNING,),
    RunStatus.RUNNING: (RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.ABORTED),
}


def resolve_variables(chain: ChainPrompt, supplied: Mapping[str, str]) -> dict[str, str]:
    """
    Bind every declared variable to the caller's value or its default.
    Raises ValidationError listing every declared variable left without a value.
    """
    resolved = {key: value for key, value in supplied.items() if value is not None}
    missing: list[str] = []
    for variable in chain.variables:
        if variable.key in resolved:
            continue
        if variable.default_value is not None:
            resolved[variable.key] = variable.default_value
        else:
            missing.append(variable.key)
    if missing:
        raise ValidationError(missing)
    return resolved


class RunHandle:
    """
    Live view of one run.

    Readers get whole snapshots taken under a single lock, never a mix of a new
    status with stale steps. Only the owning ChainRunner mutates the result.
    """

    def __init__(self, result: RunResult, cancel_token: CancellationToken) -> None:
        self._lock = threading.Lock()
        self._result: RunResult = result
        self._cancel_token: CancellationToken = cancel_token
        self._listeners: list[RunListener] = []
        self._finished = anyio.Event()

    @property
    def prompt_id(self) -> str:
        return self._result.prompt_id

    @property
    def status(self) -> RunStatus:
        with self._lock:
            return self._result.status

    @property
    def done(self) -> bool:
        return self.status.is_terminal

    def snapshot(self) -> RunResult:
        with self._lock:
            return self._result.model_copy(deep=True)

    def cancel(self, reason: str | None = None) -> None:
        if self.done:
            return
        if self._cancel_token.cancel(reason):
            logger.info("Cancellation requested for chain %r: %s", self.prompt_id, self._cancel_token.reason)

    async def wait(self) -> RunResult:
        await self._finished.wait()
        return self.snapshot()

    def subscribe(self, listener: RunListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, status: RunStatus) -> None:
        with self._lock:
            current = self._result.status
            if status not in ALLOWED_TRANSITIONS.get(current, ()):
                raise InvalidTransition(f"Cannot move run from {current.value} to {status.value}.")
            self._result.status = status
            if status is RunStatus.RUNNING:
                self._result.started_at = utc_now()
            else:
                self._result.current_step = None
                self._result.finished_at = utc_now()
        if status.is_terminal:
            self._emit("run_finished")
            self._finished.set()
        else:
            self._emit("run_started")

    def _begin_step(self, step_index: int) -> None:
        with self._lock:
            self._result.current_step = step_index
        self._emit("step_started", step_index)

    def _record_step(self, step: RunResultStep) -> None:
        with self._lock:
            if self._result.status is not RunStatus.RUNNING:
                raise InvalidTransition(f"Cannot record steps on a {self._result.status.value} run.")
            self._result.steps.append(step)
        self._emit("step_succeeded" if step.succeeded else "step_failed", step.step_index)

    def _abandon(self, status: RunStatus) -> None:
        if self.status is RunStatus.RUNNING:
            self._transition(status)

    def _emit(self, kind: RunEventKind, step_index: int | None = None) -> None:
        with self._lock:
            listeners = list(self._listeners)
            if not listeners:
                return
            snapshot = self._result.model_copy(deep=True)
        event = RunEvent(kind=kind, step_index=step_index, snapshot=snapshot)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Run listener failed on %s", kind)


class ChainRunner:
    def __init__(self, generation: GenerationService) -> None:
        self._executor: StepExecutor = StepExecutor(generation)

    def start(
        self,
        chain: ChainPrompt,
        variables: Mapping[str, str] | None = None,
        *,
        task_group: TaskGroup,
        cancel_token: CancellationToken | None = None,
    ) -> RunHandle:
        """
        Validate variables, then schedule the run on ``task_group`` and return at once.
        Raises ValidationError before any RunResult exists.
        """
        resolved = resolve_variables(chain, variables or {})
        return self._launch(chain, resolved, task_group, cancel_token)

    def _launch(
        self,
        chain: ChainPrompt,
        resolved: dict[str, str],
        task_group: TaskGroup,
        cancel_token: CancellationToken | None,
    ) -> RunHandle:
        token = cancel_token if cancel_token is not None else CancellationToken()
        token.claim()
        context = RunContext(prompt_id=chain.id, variables=resolved, cancel_token=token)
        handle = RunHandle(RunResult(prompt_id=chain.id, total_steps=len(chain.steps)), token)
        task_group.start_soon(self._drive, chain, context, handle, name=f"chain-run:{chain.id}")
        return handle

    async def run(
        self,
        chain: ChainPrompt,
        variables: Mapping[str, str] | None = None,
        *,
        cancel_token: CancellationToken | None = None,
        listener: RunListener | None = None,
    ) -> RunResult:
        # ValidationError must surface before the task group opens.
        resolved = resolve_variables(chain, variables or {})
        async with anyio.create_task_group() as task_group:
            handle = self._launch(chain, resolved, task_group, cancel_token)
            if listener is not None:
                handle.subscribe(listener)
        return handle.snapshot()

    async def _drive(self, chain: ChainPrompt, context: RunContext, handle: RunHandle) -> None:
        try:
            await self._run_steps(chain, context, handle)
        except anyio.get_cancelled_exc_class():
            handle._abandon(RunStatus.ABORTED)
            raise
        except Exception:
            logger.exception("Chain %r crashed", chain.id)
            handle._abandon(RunStatus.FAILED)
            raise

    async def _run_steps(self, chain: ChainPrompt, context: RunContext, handle: RunHandle) -> None:
        handle._transition(RunStatus.RUNNING)
        logger.info("Starting chain %r: %d steps", chain.id, len(chain.steps))
        token = context.cancel_token

        for index, step in enumerate(chain.steps):
            if token.cancelled:
                logger.info("Chain %r aborted before step %d: %s", chain.id, index, token.reason)
                handle._transition(RunStatus.ABORTED)
                return

            prompt = self._render_step(chain, step, index, context)
            handle._begin_step(index)
            logger.debug("Chain %r step %d/%d (%s)", chain.id, index + 1, len(chain.steps), step.id)
            outcome = await self._executor.execute(prompt, token)

            result_step = RunResultStep(
                step_index=index,
                step_id=step.id,
                step_name=step.display_name(index),
                input_prompt=prompt,
                output_text=outcome.output_text,
                error=outcome.error,
                error_kind=outcome.error_kind,
            )
            if outcome.output_text is not None:
                context.record_output(index, outcome.output_text)
                handle._record_step(result_step)
                continue

            handle._record_step(result_step)
            if outcome.is_aborted:
                logger.info("Chain %r aborted during step %d: %s", chain.id, index, outcome.error)
                handle._transition(RunStatus.ABORTED)
            else:
                logger.warning("Chain %r failed at step %d (%s): %s", chain.id, index, step.id, outcome.error)
                handle._transition(RunStatus.FAILED)
            return

        handle._transition(RunStatus.SUCCEEDED)
        logger.info("Chain %r succeeded", chain.id)

    def _render_step(self, chain: ChainPrompt, step: ChainStep, index: int, context: RunContext) -> str:
        check = check_template(step.prompt, context.variables, index)
        if not check.valid:
            logger.warning(
                "Chain %r step %d (%s): unresolved variables %s, invalid step references %s",
                chain.id,
                index,
                step.id,
                check.missing_variables,
                check.invalid_references,
            )
        return render(step.prompt, context.variables, context.prior_outputs())
