"""
comet.stack.graph - Component declarations and their references.

component() returns a ComponentProxy. Reading any attribute off the
proxy gives an OutputRef instead of a value, so components can point
at outputs that only exist once the referenced module is applied:

    vpc = component("vpc", "modules/vpc", {"cidr": "10.0.0.0/16"})
    gke = component("gke", "modules/gke", {
        "network": vpc.id,                      # OutputRef("vpc", "id")
        "endpoint": f"https://{vpc.ip}:443",    # "https://${vpc.ip}:443"
    })

The graph keeps declaration order; dependencies are derived from the
references found in each config.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from comet.errors import DependencyCycle, DuplicateComponentName, InvalidComponentName
from comet.stack.values import OutputRef, is_valid_name, iter_refs

logger = logging.getLogger(__name__)


@dataclass
class Component:
    """A single Terraform/OpenTofu module instantiation."""
    name: str
    source: str
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def providers(self) -> dict[str, Any]:
        providers = self.config.get("providers")
        return providers if isinstance(providers, dict) else {}

    @property
    def inputs(self) -> dict[str, Any]:
        """Module variables: the `inputs` map, or the config root without providers."""
        inputs = self.config.get("inputs")
        if isinstance(inputs, dict):
            return inputs
        return {k: v for k, v in self.config.items() if k != "providers"}


class ComponentProxy:
    """Handle returned to the script for a declared component."""

    __slots__ = ("_component",)

    def __init__(self, component: Component):
        object.__setattr__(self, "_component", component)

    def __getattr__(self, name: str) -> OutputRef:
        if name.startswith("_"):
            raise AttributeError(name)
        return OutputRef(self._component.name, name)

    def __getitem__(self, key: Any) -> OutputRef:
        return OutputRef(self._component.name, str(key))

    def __iter__(self):
        raise TypeError(f"component '{self._component.name}' is not iterable, read an output instead")

    def __contains__(self, item: Any) -> bool:
        raise TypeError(f"component '{self._component.name}' outputs cannot be searched during evaluation")

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"component '{self._component.name}' is read-only")

    def __repr__(self) -> str:
        return f"<component {self._component.name} ({self._component.source})>"


class ComponentGraph:
    """Declared components of one stack, in declaration order."""

    def __init__(self):
        self._components: dict[str, Component] = {}

    def __len__(self) -> int:
        return len(self._components)

    def __iter__(self):
        return iter(self._components.values())

    def __contains__(self, name: object) -> bool:
        return name in self._components

    @property
    def names(self) -> list[str]:
        return list(self._components)

    def get(self, name: str) -> Component | None:
        return self._components.get(name)

    def declare(self, name: str, source: str,
                config: dict[str, Any] | None = None) -> ComponentProxy:
        """Register a component and return its proxy."""
        if not is_valid_name(name):
            raise InvalidComponentName(
                f"Invalid component name {name!r}: use letters, digits, '_' and '-'"
            )
        if name in self._components:
            raise DuplicateComponentName(f"Duplicate component name: '{name}'")

        comp = Component(name=name, source=source, config=dict(config or {}))
        self._components[name] = comp
        logger.debug("declared component %s (source=%s)", name, source)
        return ComponentProxy(comp)

    def dependencies(self, name: str) -> list[str]:
        """Declared components referenced from `name`'s config."""
        comp = self._components[name]
        deps: list[str] = []
        for ref in iter_refs(comp.config):
            if ref.component in self._components and ref.component != name \
                    and ref.component not in deps:
                deps.append(ref.component)
        return deps

    def order(self) -> list[Component]:
        """Components sorted so dependencies come first.

        Ties keep declaration order. Raises DependencyCycle.
        """
        ordered: list[Component] = []
        state: dict[str, str] = {}

        def visit(name: str, trail: list[str]) -> None:
            mark = state.get(name)
            if mark == "done":
                return
            if mark == "visiting":
                cycle = trail[trail.index(name):] + [name]
                raise DependencyCycle(f"Component dependency cycle: {' -> '.join(cycle)}")
            state[name] = "visiting"
            for dep in self.dependencies(name):
                visit(dep, trail + [name])
            state[name] = "done"
            ordered.append(self._components[name])

        for name in self._components:
            visit(name, [])
        return ordered
