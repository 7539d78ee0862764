"""
comet.stack.loader - Finds and evaluates stack scripts.

Stack scripts are `*.stack.py` files anywhere under the stacks
directory. Directories starting with an underscore (generated
output, vendored modules, examples) are skipped.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from comet.stack.context import EvaluationContext
from comet.stack.model import Stack

logger = logging.getLogger(__name__)

STACK_SUFFIX = ".stack.py"


def find_stack_files(directory: str | Path) -> list[Path]:
    """All stack scripts under directory, sorted by path."""
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Stacks directory not found: {root}")

    files = []
    for p in sorted(root.rglob(f"*{STACK_SUFFIX}")):
        rel = p.relative_to(root)
        if any(part.startswith("_") for part in rel.parts[:-1]):
            continue
        files.append(p)
    return files


def evaluate_file(path: str | Path, **context_args: Any) -> Stack:
    """Evaluate one script in a fresh context.

    Args:
        path: Path to a *.stack.py file
        **context_args: Passed to EvaluationContext (resolver,
            state_store, environ, out)

    Returns:
        The evaluated Stack

    Raises:
        CometError: The script failed or declared something invalid
        FileNotFoundError: File not found
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Stack file not found: {p}")

    with open(p) as f:
        source = f.read()

    logger.debug("evaluating %s", p)
    ctx = EvaluationContext(str(p), **context_args)
    return ctx.evaluate(source)
