"""Per-run working state owned by the chain runner."""

from __future__ import annotations

from dataclasses import dataclass, field

from prompt_chain.cancellation import CancellationToken


@dataclass
class RunContext:
    prompt_id: str
    variables: dict[str, str]
    cancel_token: CancellationToken
    step_outputs: dict[int, str] = field(default_factory=dict)

    def record_output(self, step_index: int, output_text: str) -> None:
        if step_index in self.step_outputs:
            raise ValueError(f"Output for step {step_index} is already recorded.")
        self.step_outputs[step_index] = output_text

    def prior_outputs(self) -> list[str]:
        # Outputs are recorded in order, so the ordinals are contiguous from 0.
        return [self.step_outputs[index] for index in sorted(self.step_outputs)]
