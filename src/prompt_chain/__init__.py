"""Public package exports."""

from prompt_chain.cancellation import CancellationToken
from prompt_chain.chain_registry import ChainRegistry
from prompt_chain.chain_runner import ChainRunner
from prompt_chain.chain_runner import RunHandle
from prompt_chain.errors import ValidationError
from prompt_chain.generation import AgentGenerationService
from prompt_chain.generation import GenerationService
from prompt_chain.orchestrator import Orchestrator
from prompt_chain.step_executor import StepExecutor
from prompt_chain.templating import render

__all__ = [
    "AgentGenerationService",
    "CancellationToken",
    "ChainRegistry",
    "ChainRunner",
    "GenerationService",
    "Orchestrator",
    "RunHandle",
    "StepExecutor",
    "ValidationError",
    "render",
]
