"""Model types for chain definitions and runs."""

from prompt_chain.models.chain_file_spec import ChainFileSpec
from prompt_chain.models.chain_file_spec import ChainStepSpec
from prompt_chain.models.chain_prompt import ChainPrompt
from prompt_chain.models.chain_step import ChainStep
from prompt_chain.models.chain_variable import ChainVariable
from prompt_chain.models.loaded_chain_file import LoadedChainFile
from prompt_chain.models.model_spec import ModelSpec
from prompt_chain.models.run_context import RunContext
from prompt_chain.models.run_event import RunEvent
from prompt_chain.models.run_result import RunResult
from prompt_chain.models.run_result import RunResultStep
from prompt_chain.models.run_result import RunStatus

__all__ = [
    "ChainFileSpec",
    "ChainPrompt",
    "ChainStep",
    "ChainStepSpec",
    "ChainVariable",
    "LoadedChainFile",
    "ModelSpec",
    "RunContext",
    "RunEvent",
    "RunResult",
    "RunResultStep",
    "RunStatus",
]
