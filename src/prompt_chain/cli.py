"""CLI entrypoint."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import yaml

from prompt_chain.chain_registry import ChainRegistry
from prompt_chain.errors import ValidationError
from prompt_chain.models.chain_prompt import ChainPrompt
from prompt_chain.models.loaded_chain_file import render_chain_file
from prompt_chain.models.run_event import RunEvent
from prompt_chain.models.run_result import RunResult, RunStatus
from prompt_chain.orchestrator import Orchestrator
from prompt_chain.templating import check_template


def parse_var(raw: str) -> tuple[str, str]:
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise ValueError(f"Expected KEY=VALUE, got {raw!r}")
    return key.strip(), value


def load_variables_file(path: Path) -> dict[str, str]:
    raw: Any = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping of variable names to values.")
    return {str(key): "" if value is None else str(value) for key, value in raw.items()}


def collect_variables(vars_file: str | None, pairs: list[str]) -> dict[str, str]:
    variables: dict[str, str] = {}
    if vars_file:
        variables.update(load_variables_file(Path(vars_file)))
    for pair in pairs:
        key, value = parse_var(pair)
        variables[key] = value
    return variables


def lint_chain(chain: ChainPrompt) -> list[str]:
    declared = {variable.key: variable.default_value or "" for variable in chain.variables}
    problems: list[str] = []
    for index, step in enumerate(chain.steps):
        check = check_template(step.prompt, declared, index)
        label = step.display_name(index)
        for name in check.missing_variables:
            problems.append(f"{label}: undeclared variable {{{{{name}}}}}")
        for ref in check.invalid_references:
            problems.append(f"{label}: {{{{{ref}}}}} does not refer to an earlier step")
    return problems


def select_chains(registry: ChainRegistry, category: str | None, query: str | None) -> list[ChainPrompt]:
    chains = registry.by_category(category) if category else list(registry.iter_chains())
    if query:
        chains = [chain for chain in chains if chain.matches(query)]
    return chains


def format_catalog(chains: list[ChainPrompt]) -> list[str]:
    lines: list[str] = []
    for chain in chains:
        details = ", ".join(part for part in (chain.category, chain.difficulty, chain.estimated_time) if part)
        line = f"{chain.id}: {chain.name}"
        if details:
            line += f" ({details})"
        lines.append(line)
    return lines


def import_chain_file(registry: ChainRegistry, chain_id: str, name: str | None, chains_dir: Path) -> Path:
    chain = registry.import_chain(chain_id, name)
    target = chains_dir / f"{chain.id}.md"
    if target.exists():
        raise FileExistsError(f"Refusing to overwrite {target}")
    chains_dir.mkdir(parents=True, exist_ok=True)
    target.write_text(render_chain_file(chain), encoding="utf-8")
    return target


def report_progress(event: RunEvent) -> None:
    snapshot = event.snapshot
    if event.kind == "step_started" and event.step_index is not None:
        print(f"[{event.step_index + 1}/{snapshot.total_steps}] running", file=sys.stderr)
    elif event.kind in ("step_succeeded", "step_failed") and snapshot.steps:
        step = snapshot.steps[-1]
        outcome = "done" if step.succeeded else f"error: {step.error}"
        print(f"[{step.step_index + 1}/{snapshot.total_steps}] {step.step_name} {outcome}", file=sys.stderr)
    elif event.kind == "run_finished":
        print(f"run {snapshot.status.value}", file=sys.stderr)


async def run_chain(
    orch: Orchestrator,
    chain_id: str,
    variables: dict[str, str],
    timeout: float | None,
) -> RunResult:
    return await orch.run(chain_id, variables, listener=report_progress, timeout=timeout)


def main() -> None:
    parser = argparse.ArgumentParser(prog="prompt-chain")
    parser.add_argument("--chains-dir", type=str, default="chains")
    parser.add_argument("--chain", type=str, help="Id of the chain to run or check")
    parser.add_argument("--var", action="append", default=[], help="Variable binding KEY=VALUE (repeatable)")
    parser.add_argument("--vars-file", type=str, help="YAML mapping of variable bindings")
    parser.add_argument("--timeout", type=float, help="Abort the run after this many seconds")
    parser.add_argument("--output", type=str, help="Also write the run result JSON to this file")
    parser.add_argument("--check", action="store_true", help="Check the chain's templates without running it")
    parser.add_argument("--list", action="store_true", help="List available chains and templates")
    parser.add_argument("--category", type=str, help="With --list, only chains in this category")
    parser.add_argument("--search", type=str, help="With --list, only chains whose name, description or tags match")
    parser.add_argument("--import", dest="import_chain", type=str, help="Copy a chain or template into --chains-dir")
    parser.add_argument("--name", type=str, help="With --import, name for the copy")
    parser.add_argument("--log-level", type=str, default="WARNING")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    package_root = Path(__file__).resolve().parent
    chain_roots = [Path(args.chains_dir), package_root / "chains"]
    orch = Orchestrator(chain_roots)

    if args.list or args.category or args.search:
        for line in format_catalog(select_chains(orch.registry, args.category, args.search)):
            print(line)
        raise SystemExit(0)

    if args.import_chain:
        try:
            target = import_chain_file(orch.registry, args.import_chain, args.name, Path(args.chains_dir))
        except KeyError as exc:
            parser.error(str(exc.args[0]))
        except (FileExistsError, ValueError) as exc:
            parser.error(str(exc))
        print(target)
        raise SystemExit(0)

    if not args.chain:
        parser.error("--chain is required unless --list or --import is given")

    try:
        chain = orch.registry.get(args.chain)
    except KeyError as exc:
        parser.error(str(exc.args[0]))
    except ValueError as exc:
        parser.error(f"Chain {args.chain!r} is malformed: {exc}")

    if args.check:
        problems = lint_chain(chain)
        for problem in problems:
            print(problem)
        raise SystemExit(1 if problems else 0)

    try:
        variables = collect_variables(args.vars_file, args.var)
    except ValueError as exc:
        parser.error(str(exc))

    # Async entrypoint
    import anyio

    try:
        result = anyio.run(run_chain, orch, args.chain, variables, args.timeout)
    except ValidationError as exc:
        parser.error(str(exc))

    payload = result.model_dump_json(indent=2)
    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(payload, encoding="utf-8")
    print(payload)
    raise SystemExit(0 if result.status is RunStatus.SUCCEEDED else 1)
