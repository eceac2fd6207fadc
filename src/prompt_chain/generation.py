"""Text-generation collaborators used by the step executor."""

from __future__ import annotations

import os
from typing import Protocol

from pydantic_ai import Agent
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from prompt_chain.cancellation import CancellationToken
from prompt_chain.errors import Aborted, EmptyResponse, Unavailable
from prompt_chain.models.model_spec import ModelSpec


class GenerationService(Protocol):
    async def generate(self, prompt_text: str, cancel_token: CancellationToken) -> str:
        """
        Produce the reply for ``prompt_text``.
        Raises Unavailable, EmptyResponse or Aborted.
        """
        ...


class AgentGenerationService:
    def __init__(self, model_spec: ModelSpec, instructions: str | None = None) -> None:
        self._model_spec: ModelSpec = model_spec
        self._instructions: str | None = instructions or None
        self.model: OpenAIChatModel = build_model(model_spec)
        self.model_settings: ModelSettings = build_model_settings(model_spec)

    async def generate(self, prompt_text: str, cancel_token: CancellationToken) -> str:
        if cancel_token.cancelled:
            raise Aborted(cancel_token.reason or "Execution aborted")
        agent = Agent(
            self.model,
            instructions=self._instructions,
            output_type=str,
            model_settings=self.model_settings,
        )
        try:
            result = await agent.run(prompt_text)
        except AgentRunError as exc:
            raise Unavailable(f"{self._model_spec.model_name}: {exc}") from exc
        output = result.output.strip() if isinstance(result.output, str) else ""
        if not output:
            raise EmptyResponse()
        return output


def build_model(model_spec: ModelSpec) -> OpenAIChatModel:
    api_key = os.environ.get(model_spec.api_key_env, "noop")
    provider = OpenAIProvider(base_url=model_spec.base_url, api_key=api_key)
    return OpenAIChatModel(model_spec.model_name, provider=provider)


def build_model_settings(model_spec: ModelSpec) -> ModelSettings:
    return {"temperature": model_spec.temperature, "max_tokens": model_spec.max_tokens}
