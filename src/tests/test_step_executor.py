import threading

import anyio
import pytest

from prompt_chain.cancellation import CancellationToken
from prompt_chain.errors import Aborted, EmptyResponse, ErrorKind, Unavailable
from prompt_chain.step_executor import StepExecutor, StepOutcome


class EchoService:
    def __init__(self) -> None:
        self.prompts: list[str] = []

    async def generate(self, prompt_text: str, cancel_token: CancellationToken) -> str:
        self.prompts.append(prompt_text)
        return f"echo:{prompt_text}"


class RaisingService:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    async def generate(self, prompt_text: str, cancel_token: CancellationToken) -> str:
        raise self.exc


class BlockingService:
    def __init__(self, started: anyio.Event) -> None:
        self.started = started

    async def generate(self, prompt_text: str, cancel_token: CancellationToken) -> str:
        self.started.set()
        await anyio.sleep_forever()
        return "never"


class StubbornService:
    """Ignores cancellation and answers anyway."""

    def __init__(self, started: anyio.Event) -> None:
        self.started = started

    async def generate(self, prompt_text: str, cancel_token: CancellationToken) -> str:
        with anyio.CancelScope(shield=True):
            self.started.set()
            await anyio.sleep(0.05)
        return "late answer"


@pytest.mark.anyio
async def test_execute_returns_output() -> None:
    service = EchoService()
    outcome = await StepExecutor(service).execute("hi", CancellationToken())

    assert outcome == StepOutcome.succeeded("echo:hi")
    assert outcome.ok
    assert service.prompts == ["hi"]


@pytest.mark.anyio
async def test_execute_skips_call_when_already_cancelled() -> None:
    service = EchoService()
    token = CancellationToken()
    token.cancel("stopped")

    outcome = await StepExecutor(service).execute("hi", token)

    assert outcome.is_aborted
    assert outcome.error == "stopped"
    assert service.prompts == []


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (Unavailable("network down"), ErrorKind.UNAVAILABLE),
        (EmptyResponse(), ErrorKind.EMPTY_RESPONSE),
        (RuntimeError("malformed"), ErrorKind.FAILED),
    ],
)
@pytest.mark.anyio
async def test_execute_maps_service_errors_to_failures(exc: Exception, kind: ErrorKind) -> None:
    outcome = await StepExecutor(RaisingService(exc)).execute("hi", CancellationToken())

    assert not outcome.ok
    assert not outcome.is_aborted
    assert outcome.error_kind is kind
    assert outcome.error


@pytest.mark.anyio
async def test_execute_reports_aborted_raised_by_service() -> None:
    outcome = await StepExecutor(RaisingService(Aborted())).execute("hi", CancellationToken())

    assert outcome.is_aborted


@pytest.mark.anyio
async def test_cancel_in_flight_abandons_call() -> None:
    started = anyio.Event()
    token = CancellationToken()
    outcomes: list[StepOutcome] = []
    executor = StepExecutor(BlockingService(started))

    async def _execute() -> None:
        outcomes.append(await executor.execute("hi", token))

    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            tg.start_soon(_execute)
            await started.wait()
            token.cancel("user stop")

    assert outcomes == [StepOutcome.aborted("user stop")]


@pytest.mark.anyio
async def test_cancel_from_another_thread_abandons_call() -> None:
    started = anyio.Event()
    token = CancellationToken()
    outcomes: list[StepOutcome] = []
    executor = StepExecutor(BlockingService(started))

    async def _execute() -> None:
        outcomes.append(await executor.execute("hi", token))

    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            tg.start_soon(_execute)
            await started.wait()
            canceller = threading.Thread(target=token.cancel, args=("closed from ui",))
            canceller.start()
            canceller.join()

    assert outcomes == [StepOutcome.aborted("closed from ui")]


@pytest.mark.anyio
async def test_cancel_in_flight_wins_over_late_success() -> None:
    started = anyio.Event()
    token = CancellationToken()
    outcomes: list[StepOutcome] = []
    executor = StepExecutor(StubbornService(started))

    async def _execute() -> None:
        outcomes.append(await executor.execute("hi", token))

    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            tg.start_soon(_execute)
            await started.wait()
            token.cancel()

    assert len(outcomes) == 1
    assert outcomes[0].is_aborted
    assert outcomes[0].output_text is None


@pytest.mark.anyio
async def test_cancel_after_completion_does_not_change_outcome() -> None:
    token = CancellationToken()
    outcome = await StepExecutor(EchoService()).execute("hi", token)
    token.cancel()

    assert outcome.ok
