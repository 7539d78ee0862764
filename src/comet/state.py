"""
comet.state - Persisted outputs of already applied stacks.

state("db", "host") in a stack script reads an output that a
previous apply produced. Lookups are eager: a missing value
fails the evaluation with StateNotFound.

Two stores:

  FileStateStore     <dir>/<scope>.json, as written by
                     `tofu output -json > <scope>.json`
  CommandStateStore  runs `<tf_command> -chdir=<work_dir>/<scope> output -json`
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any

from comet.errors import StateNotFound

logger = logging.getLogger(__name__)


class StateStore:
    """Read contract for persisted outputs."""

    def lookup(self, scope: str, output: str) -> Any:
        outputs = self.outputs(scope)
        if output not in outputs:
            raise StateNotFound(
                f"No output '{output}' in state of '{scope}'. "
                f"Available: {list(outputs)}"
            )
        return outputs[output]

    def outputs(self, scope: str) -> dict[str, Any]:
        raise NotImplementedError(f"{self.__class__.__name__}.outputs()")


class MemoryStateStore(StateStore):
    """Outputs held in a dict: {scope: {output: value}}."""

    def __init__(self, data: dict[str, dict[str, Any]] | None = None):
        self.data = data or {}

    def outputs(self, scope: str) -> dict[str, Any]:
        if scope not in self.data:
            raise StateNotFound(f"No state for '{scope}'. Has it been applied?")
        return self.data[scope]


class FileStateStore(StateStore):
    """Outputs stored as JSON files, one per scope."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._cache: dict[str, dict[str, Any]] = {}

    def outputs(self, scope: str) -> dict[str, Any]:
        if scope in self._cache:
            return self._cache[scope]

        p = self.directory / f"{scope}.json"
        if not p.exists():
            raise StateNotFound(f"No state for '{scope}' ({p} not found). Has it been applied?")
        with open(p) as f:
            try:
                data = json.load(f)
            except ValueError as e:
                raise StateNotFound(f"State file {p} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise StateNotFound(f"State file {p} must contain a JSON object")

        outputs = unwrap_outputs(data)
        self._cache[scope] = outputs
        return outputs


class CommandStateStore(StateStore):
    """Reads outputs through the terraform/tofu CLI."""

    def __init__(self, command: str = "tofu", work_dir: str | Path = "."):
        self.command = command
        self.work_dir = Path(work_dir)
        self._cache: dict[str, dict[str, Any]] = {}

    def outputs(self, scope: str) -> dict[str, Any]:
        if scope in self._cache:
            return self._cache[scope]

        chdir = self.work_dir / scope
        if not chdir.is_dir():
            raise StateNotFound(f"No state for '{scope}' ({chdir} not found)")

        logger.debug("reading outputs of %s with %s", scope, self.command)
        try:
            result = subprocess.run(
                [self.command, f"-chdir={chdir}", "output", "-json"],
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            raise StateNotFound(f"'{self.command}' not found, cannot read state of '{scope}'")

        if result.returncode != 0:
            raise StateNotFound(f"Cannot read state of '{scope}': {result.stderr.strip()}")

        try:
            data = json.loads(result.stdout or "{}")
        except ValueError as e:
            raise StateNotFound(f"Unexpected output for '{scope}': {e}") from e
        if not data:
            raise StateNotFound(f"Empty state for '{scope}'")

        outputs = unwrap_outputs(data)
        self._cache[scope] = outputs
        return outputs


def unwrap_outputs(data: dict[str, Any]) -> dict[str, Any]:
    """Accept both `output -json` shape and plain mappings.

    >>> unwrap_outputs({"host": {"value": "db.local", "sensitive": False}})
    {'host': 'db.local'}
    >>> unwrap_outputs({"host": "db.local"})
    {'host': 'db.local'}
    """
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict) and "value" in value and set(value) <= {"value", "type", "sensitive"}:
            result[key] = value["value"]
        else:
            result[key] = value
    return result
