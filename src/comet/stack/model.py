"""
comet.stack.model - The in-memory stack model.

One Stack is built per evaluated script. The evaluation context
owns and mutates it; once the context closes the stack is only
read by the manifest emitter.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from comet.errors import InvalidKubeconfigEntry
from comet.stack.graph import ComponentGraph

DEFAULT_EXEC_API_VERSION = "client.authentication.k8s.io/v1beta1"


@dataclass
class Backend:
    """Terraform backend: type plus provider specific settings."""
    type: str
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class Metadata:
    """Descriptive stack metadata."""
    description: str = ""
    owner: str = ""
    tags: list[str] = field(default_factory=list)
    custom: dict[str, Any] = field(default_factory=dict)

    def merge(self, meta: dict[str, Any]) -> None:
        """Merge new keys in. Later keys win, custom merges shallowly."""
        if "description" in meta:
            self.description = str(meta["description"])
        if "owner" in meta:
            self.owner = str(meta["owner"])
        if "tags" in meta:
            tags = meta["tags"]
            if isinstance(tags, str):
                tags = [tags]
            self.tags = [str(t) for t in tags]
        custom = meta.get("custom")
        if isinstance(custom, dict):
            self.custom.update(custom)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.description:
            data["description"] = self.description
        if self.owner:
            data["owner"] = self.owner
        if self.tags:
            data["tags"] = list(self.tags)
        if self.custom:
            data["custom"] = dict(self.custom)
        return data


@dataclass
class ClusterEntry:
    """One kubeconfig cluster with its credentials."""
    context: str
    host: str
    cert: str = ""
    token: str | None = None
    exec_command: str | None = None
    exec_args: list[str] = field(default_factory=list)
    exec_apiversion: str = DEFAULT_EXEC_API_VERSION

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int = 0) -> "ClusterEntry":
        if not isinstance(data, dict):
            raise InvalidKubeconfigEntry(f"clusters[{index}] must be a mapping")

        for key in ("context", "host"):
            if not data.get(key):
                raise InvalidKubeconfigEntry(f"clusters[{index}].{key} is required")

        token = data.get("token") or None
        exec_command = data.get("exec_command") or None
        if token and exec_command:
            raise InvalidKubeconfigEntry(
                f"clusters[{index}] ({data['context']}): 'token' and 'exec_command' "
                f"are mutually exclusive"
            )
        if not token and not exec_command:
            raise InvalidKubeconfigEntry(
                f"clusters[{index}] ({data['context']}): one of 'token' or "
                f"'exec_command' is required"
            )
        if token and data.get("exec_args"):
            raise InvalidKubeconfigEntry(
                f"clusters[{index}] ({data['context']}): 'exec_args' requires 'exec_command'"
            )

        return cls(
            context=data["context"],
            host=data["host"],
            cert=data.get("cert", "") or "",
            token=token,
            exec_command=exec_command,
            exec_args=normalize_exec_args(data.get("exec_args")),
            exec_apiversion=data.get("exec_apiversion") or DEFAULT_EXEC_API_VERSION,
        )


@dataclass
class Kubeconfig:
    """Clusters the stack gives access to."""
    current: int = 0
    clusters: list[ClusterEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, spec: dict[str, Any]) -> "Kubeconfig":
        if not isinstance(spec, dict):
            raise InvalidKubeconfigEntry("kubeconfig spec must be a mapping")
        raw = spec.get("clusters") or []
        if not isinstance(raw, (list, tuple)):
            raise InvalidKubeconfigEntry("kubeconfig clusters must be a list")

        clusters = [ClusterEntry.from_dict(c, i) for i, c in enumerate(raw)]
        current = spec.get("current", 0)
        if not isinstance(current, int) or current < 0 or current >= len(clusters):
            current = 0
        return cls(current=current, clusters=clusters)


def normalize_exec_args(args: Any) -> list[str]:
    """Exec args as a list of strings.

    >>> normalize_exec_args('["a", "b"]')
    ['a', 'b']
    >>> normalize_exec_args("single")
    ['single']
    """
    if args is None:
        return []
    if isinstance(args, (list, tuple)):
        return [str(a) for a in args]
    if isinstance(args, str):
        try:
            parsed = json.loads(args)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return [str(a) for a in parsed]
        return [args] if args else []
    return [str(args)]


@dataclass
class Stack:
    """Everything one stack script declared."""
    path: str = ""
    name: str = ""
    options: dict[str, Any] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    metadata: Metadata = field(default_factory=Metadata)
    backend: Backend | None = None
    graph: ComponentGraph = field(default_factory=ComponentGraph)
    appends: dict[str, list[str]] = field(default_factory=dict)
    kubeconfig: Kubeconfig | None = None
    envs: dict[str, str] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return bool(self.name) and len(self.graph) > 0

    @property
    def components(self) -> list:
        return list(self.graph)
