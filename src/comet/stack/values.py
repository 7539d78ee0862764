"""
comet.stack.values - Typed values inside component configs.

A config tree is made of dicts, lists and scalars plus two variants:

  OutputRef    deferred pointer to another component's output,
               rendered as the reference expression ${component.output}
  SecretValue  a resolved secret; behaves as str, masks its repr

Reference expressions use the same syntax everywhere:

    ${vpc.id}
    ${network.subnets.0}
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterator

# Names of stacks, components and append file types. They end up in
# file paths and in reference expressions, so no dots or slashes.
NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

# ${component_name.output} or ${component_name.nested.output}
REF_PATTERN = re.compile(r"\$\{([a-zA-Z0-9_-]+)\.([a-zA-Z0-9_.-]+)\}")


@dataclass(frozen=True)
class OutputRef:
    """Deferred reference to `component`'s output `output`."""
    component: str
    output: str

    @property
    def expression(self) -> str:
        return "${%s.%s}" % (self.component, self.output)

    def __getattr__(self, name: str) -> "OutputRef":
        if name.startswith("_"):
            raise AttributeError(name)
        return OutputRef(self.component, f"{self.output}.{name}")

    def __getitem__(self, key: Any) -> "OutputRef":
        return OutputRef(self.component, f"{self.output}.{key}")

    # Outputs only exist after apply, there is nothing to iterate or search.
    def __iter__(self):
        raise TypeError(f"output {self.expression} is not iterable during evaluation")

    def __contains__(self, item: Any) -> bool:
        raise TypeError(f"output {self.expression} cannot be searched during evaluation")

    def __str__(self) -> str:
        return self.expression

    def __add__(self, other: Any) -> str:
        return self.expression + str(other)

    def __radd__(self, other: Any) -> str:
        return str(other) + self.expression


class SecretValue(str):
    """A resolved secret string that never shows up in repr() output."""

    def __new__(cls, value: str, ref: Any = None):
        obj = super().__new__(cls, value)
        obj.ref = ref
        return obj

    def __repr__(self) -> str:
        return "SecretValue('***')"


def is_valid_name(name: Any) -> bool:
    return isinstance(name, str) and NAME_PATTERN.match(name) is not None


def parse_refs(text: str) -> list[OutputRef]:
    """Return every reference expression embedded in a string.

    >>> parse_refs("postgres://${db.host}:${db.port}")
    [OutputRef(component='db', output='host'), OutputRef(component='db', output='port')]
    """
    return [OutputRef(m.group(1), m.group(2)) for m in REF_PATTERN.finditer(text)]


def iter_refs(value: Any) -> Iterator[OutputRef]:
    """Yield all references in a config tree, in document order."""
    if isinstance(value, OutputRef):
        yield value
    elif isinstance(value, str):
        yield from parse_refs(value)
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_refs(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_refs(item)


def to_plain(value: Any) -> Any:
    """Strip the typed variants out of a tree.

    OutputRef becomes its expression, SecretValue a plain str,
    tuples become lists. Everything else is kept as-is.
    """
    if isinstance(value, OutputRef):
        return value.expression
    if isinstance(value, SecretValue):
        return str.__str__(value)
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value
