from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from prompt_chain.cancellation import CancellationToken
from prompt_chain.errors import ErrorKind
from prompt_chain.models import ChainPrompt
from prompt_chain.models import ChainStep
from prompt_chain.models import ChainVariable
from prompt_chain.models import RunContext
from prompt_chain.models import RunResult
from prompt_chain.models import RunResultStep
from prompt_chain.models import RunStatus


def test_chain_prompt_rejects_duplicate_variable_keys() -> None:
    with pytest.raises(PydanticValidationError):
        ChainPrompt(id="c", name="c", variables=[ChainVariable(key="a"), ChainVariable(key="a")])


def test_chain_prompt_rejects_duplicate_step_ids() -> None:
    with pytest.raises(PydanticValidationError):
        ChainPrompt(id="c", name="c", steps=[ChainStep(id="s", prompt="x"), ChainStep(id="s", prompt="y")])


def test_chain_prompt_rejects_empty_keys() -> None:
    with pytest.raises(PydanticValidationError):
        ChainVariable(key="")
    with pytest.raises(PydanticValidationError):
        ChainStep(id="", prompt="x")


def test_chain_prompt_allows_zero_steps() -> None:
    chain = ChainPrompt(id="empty", name="Empty")

    assert chain.steps == []


def test_updated_refreshes_updated_at_only() -> None:
    old = datetime(2024, 1, 1, tzinfo=timezone.utc)
    chain = ChainPrompt(id="c", name="before", created_at=old, updated_at=old)

    changed = chain.updated(name="after")

    assert changed.name == "after"
    assert changed.created_at == old
    assert changed.updated_at > old
    assert chain.name == "before"


def test_updated_revalidates() -> None:
    chain = ChainPrompt(id="c", name="c", variables=[ChainVariable(key="a")])

    with pytest.raises(PydanticValidationError):
        chain.updated(variables=[{"key": "a"}, {"key": "a"}])


def test_step_display_name_defaults_to_ordinal() -> None:
    assert ChainStep(id="s", prompt="x").display_name(0) == "Step 1"
    assert ChainStep(id="s", name="Draft", prompt="x").display_name(4) == "Draft"


def test_run_result_step_requires_exactly_one_outcome() -> None:
    with pytest.raises(PydanticValidationError):
        RunResultStep(step_index=0, step_id="s", input_prompt="p")
    with pytest.raises(PydanticValidationError):
        RunResultStep(step_index=0, step_id="s", input_prompt="p", output_text="o", error="e")

    failed = RunResultStep(step_index=0, step_id="s", input_prompt="p", error="e", error_kind=ErrorKind.FAILED)
    assert not failed.succeeded


def test_run_status_terminal_states() -> None:
    assert not RunStatus.PENDING.is_terminal
    assert not RunStatus.RUNNING.is_terminal
    assert RunStatus.SUCCEEDED.is_terminal
    assert RunStatus.FAILED.is_terminal
    assert RunStatus.ABORTED.is_terminal
    assert not RunResult(prompt_id="c").is_terminal


def test_run_context_outputs_are_append_only() -> None:
    context = RunContext(prompt_id="c", variables={}, cancel_token=CancellationToken())
    context.record_output(0, "zero")
    context.record_output(1, "one")

    assert context.prior_outputs() == ["zero", "one"]
    with pytest.raises(ValueError):
        context.record_output(1, "again")
