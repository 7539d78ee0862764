"""
comet.stack.engine - Stack compile engine.

Finds the stack scripts, evaluates each one in its own context,
then emits manifests for the ones that evaluated cleanly.

    comet compile              # every stack under stacks_dir
    comet compile dev prod     # only these

A failing stack never stops the others: each result carries either
the evaluated stack (and written files) or the error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from comet.config import CometConfig
from comet.emit.manifest import ManifestEmitter
from comet.errors import CometError, DuplicateStackName, StackNotFound
from comet.secrets.registry import SecretResolver
from comet.stack.loader import evaluate_file, find_stack_files
from comet.stack.model import Stack

logger = logging.getLogger(__name__)


@dataclass
class StackResult:
    """Outcome of one stack script."""
    path: Path
    stack: Stack | None = None
    files: list[Path] = field(default_factory=list)
    error: CometError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def name(self) -> str:
        if self.stack is not None and self.stack.name:
            return self.stack.name
        if self.error is not None and self.error.stack:
            return self.error.stack
        return self.path.name


def evaluate_stacks(config: CometConfig, names: list[str] | None = None,
                    out=None) -> list[StackResult]:
    """Evaluate every stack script, each one isolated from the others.

    Args:
        config: Project config
        names: Only return these stacks (default: all)
        out: Stream for script print() output (default: stdout)

    Returns:
        One StackResult per stack, in path order. Failed scripts carry
        the error instead of a stack.

    Raises:
        StackNotFound: A requested name matches no stack
        FileNotFoundError: Stacks directory not found
    """
    results: list[StackResult] = []
    seen: dict[str, Path] = {}

    for path in find_stack_files(config.stacks_path):
        result = StackResult(path=path)
        try:
            stack = evaluate_file(
                path,
                resolver=SecretResolver(config.secrets_default_provider,
                                        config.secrets_default_path),
                state_store=config.state_store(),
                out=out,
            )
        except CometError as e:
            logger.debug("stack script %s failed: %s", path, e)
            result.error = e
            results.append(result)
            continue

        if not stack.valid:
            logger.debug("skipping %s: no stack name or no components", path)
            continue

        result.stack = stack
        if stack.name in seen:
            result.error = DuplicateStackName(
                f"Stack '{stack.name}' already defined in {seen[stack.name]}"
            ).annotate(stack.name, str(path))
        else:
            seen[stack.name] = path
        results.append(result)

    if names:
        return _select(results, names)
    return results


def compile_stacks(config: CometConfig, names: list[str] | None = None,
                   out_dir: str | Path | None = None, out=None) -> list[StackResult]:
    """Evaluate stacks and write manifests for every clean one.

    Args:
        config: Project config
        names: Only compile these stacks (default: all)
        out_dir: Output root (default: config out_dir)
        out: Stream for script print() output

    Returns:
        StackResults with the written files, or the error of each
        stack that failed to evaluate or render
    """
    target = Path(out_dir) if out_dir else config.out_path
    results = evaluate_stacks(config, names, out=out)

    for result in results:
        if not result.ok:
            continue
        try:
            result.files = ManifestEmitter(result.stack).write(target)
        except CometError as e:
            result.error = e
    return results


def _select(results: list[StackResult], names: list[str]) -> list[StackResult]:
    selected: list[StackResult] = []
    for name in names:
        matches = [r for r in results if r.name == name]
        if not matches:
            available = sorted({r.name for r in results if r.stack is not None})
            raise StackNotFound(f"Stack not found: '{name}'. Available: {available}")
        selected.extend(r for r in matches if r not in selected)
    return selected
