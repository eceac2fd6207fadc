"""Single step execution against the generation service."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

import anyio
from anyio.from_thread import BlockingPortal

from prompt_chain.cancellation import CancellationToken
from prompt_chain.errors import DEFAULT_ABORT_REASON, ErrorKind, GenerationError
from prompt_chain.generation import GenerationService


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepOutcome:
    output_text: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def succeeded(cls, output_text: str) -> "StepOutcome":
        return cls(output_text=output_text)

    @classmethod
    def failed(cls, error: str, kind: ErrorKind = ErrorKind.FAILED) -> "StepOutcome":
        return cls(error=error, error_kind=kind)

    @classmethod
    def aborted(cls, reason: str | None = None) -> "StepOutcome":
        return cls(error=reason or DEFAULT_ABORT_REASON, error_kind=ErrorKind.ABORTED)

    @property
    def ok(self) -> bool:
        return self.output_text is not None

    @property
    def is_aborted(self) -> bool:
        return self.error_kind is ErrorKind.ABORTED


async def _cancel_on_loop(scope: anyio.CancelScope) -> None:
    scope.cancel()


class StepExecutor:
    """
    Runs one rendered prompt through the generation service.

    The call is wrapped in a cancel scope bound to the run's token, so a cancel
    while the call is outstanding abandons it and reports an abort even if the
    service would have answered. Failures are reported, never retried.
    The token may be cancelled from any thread; the scope itself is only ever
    cancelled on the event loop thread running the step.
    """

    def __init__(self, generation: GenerationService) -> None:
        self._generation: GenerationService = generation

    async def execute(self, rendered_prompt: str, cancel_token: CancellationToken) -> StepOutcome:
        if cancel_token.cancelled:
            return StepOutcome.aborted(cancel_token.reason)

        output: str | None = None
        failure: StepOutcome | None = None
        loop_thread = threading.get_ident()
        async with BlockingPortal() as portal:
            with anyio.CancelScope() as scope:

                def cancel_scope(_reason: str) -> None:
                    if threading.get_ident() == loop_thread:
                        scope.cancel()
                    else:
                        portal.start_task_soon(_cancel_on_loop, scope)

                remove_callback = cancel_token.add_callback(cancel_scope)
                try:
                    output = await self._generation.generate(rendered_prompt, cancel_token)
                except GenerationError as exc:
                    failure = StepOutcome.failed(str(exc) or exc.kind.value, exc.kind)
                except Exception as exc:
                    logger.exception("Generation service raised an unexpected error")
                    failure = StepOutcome.failed(str(exc) or type(exc).__name__)
                finally:
                    remove_callback()

        if scope.cancel_called:
            return StepOutcome.aborted(cancel_token.reason)
        if failure is not None:
            if failure.is_aborted or cancel_token.cancelled:
                return StepOutcome.aborted(cancel_token.reason or failure.error)
            return failure
        if output is None:
            return StepOutcome.failed("Generation service returned no output", ErrorKind.EMPTY_RESPONSE)
        return StepOutcome.succeeded(output)
