"""
comet.emit.manifest - Stack → manifest bundles.

Works like a renderer over the frozen stack model. Every document
is rendered in memory first; files are only written once the whole
stack rendered cleanly.

Layout under <out_dir>/<stack>/:

    stack.yaml                          index: metadata, backend type, components
    kubeconfig.yaml                     only when kubeconfig() declared clusters
    <component>/backend.tf.json         {"terraform": {"backend": {<type>: {...}}}}
    <component>/<stack>-<component>.tfvars.json
    <component>/providers.tf.json       only when the component has providers
    <component>/<file_type>_gen.tf      one per append() file type

Placeholders are rendered per component, so the shared backend
config can use {{ .component }} (e.g. in a state prefix). Output
references are written as ${component.output} expressions.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from comet.emit.kubeconfig import kubeconfig_yaml
from comet.errors import BackendNotConfigured, CometError, ManifestError
from comet.stack.graph import Component
from comet.stack.model import Stack
from comet.stack.template import build_context, render_tree
from comet.stack.values import is_valid_name, to_plain

logger = logging.getLogger(__name__)

INDEX_FILE = "stack.yaml"
KUBECONFIG_FILE = "kubeconfig.yaml"
BACKEND_FILE = "backend.tf.json"
PROVIDERS_FILE = "providers.tf.json"
VARS_FILE_FMT = "{stack}-{component}.tfvars.json"
APPEND_FILE_FMT = "{file_type}_gen.tf"


class ManifestEmitter:
    """Renders the manifest documents of one evaluated stack."""

    def __init__(self, stack: Stack):
        self.stack = stack

    def context(self, component: str | None = None) -> dict[str, Any]:
        return build_context(self.stack.name, self.stack.settings,
                             self.stack.options, component)

    def documents(self) -> dict[str, str]:
        """All documents as {relative path: content}, in a stable order."""
        if self.stack.backend is None:
            raise BackendNotConfigured(
                "No backend configured, call backend(type, config) in the stack script"
            ).annotate(self.stack.name or None, self.stack.path)

        try:
            docs: dict[str, str] = {INDEX_FILE: self.index_yaml()}
        except CometError as e:
            raise e.annotate(self.stack.name, self.stack.path)

        if self.stack.kubeconfig is not None:
            try:
                kc = kubeconfig_yaml(self.stack.kubeconfig, self.context())
            except CometError as e:
                raise e.annotate(self.stack.name, self.stack.path, "kubeconfig")
            if kc:
                docs[KUBECONFIG_FILE] = kc

        for comp in self.stack.graph:
            try:
                rendered = self.component_documents(comp)
            except CometError as e:
                raise e.annotate(self.stack.name, self.stack.path, f"component '{comp.name}'")
            for name, content in rendered.items():
                docs[f"{comp.name}/{name}"] = content
        return docs

    def component_documents(self, comp: Component) -> dict[str, str]:
        ctx = self.context(comp.name)
        backend = self.stack.backend

        docs: dict[str, str] = {}
        docs[BACKEND_FILE] = _json({
            "terraform": {
                "backend": {backend.type: render_tree(backend.config, ctx)},
            },
        }, comp.name, BACKEND_FILE)

        vars_file = VARS_FILE_FMT.format(stack=self.stack.name, component=comp.name)
        docs[vars_file] = _json(render_tree(comp.inputs, ctx), comp.name, vars_file)

        if comp.providers:
            docs[PROVIDERS_FILE] = _json(
                {"provider": render_tree(comp.providers, ctx)}, comp.name, PROVIDERS_FILE
            )

        for file_type, lines in self.stack.appends.items():
            rendered = [render_tree(line, ctx) for line in lines]
            docs[APPEND_FILE_FMT.format(file_type=file_type)] = "\n".join(rendered) + "\n"

        return docs

    def index(self) -> dict[str, Any]:
        """Stack summary written to stack.yaml."""
        graph = self.stack.graph
        data: dict[str, Any] = {"name": self.stack.name}

        meta = self.stack.metadata.to_dict()
        if meta:
            data["metadata"] = to_plain(meta)

        data["backend"] = self.stack.backend.type
        data["components"] = []
        for comp in graph:
            entry: dict[str, Any] = {"name": comp.name, "source": comp.source}
            deps = graph.dependencies(comp.name)
            if deps:
                entry["depends_on"] = deps
            data["components"].append(entry)
        data["order"] = [c.name for c in graph.order()]
        return data

    def index_yaml(self) -> str:
        return yaml.dump(self.index(), default_flow_style=False,
                         sort_keys=False, allow_unicode=True)

    def write(self, out_dir: str | Path) -> list[Path]:
        """Render everything, then write the bundle.

        Args:
            out_dir: Output root; files go under <out_dir>/<stack>/

        Returns:
            Written file paths, in document order

        Raises:
            CometError: A document failed to render. Nothing is written.
        """
        if not is_valid_name(self.stack.name):
            raise ManifestError(f"Invalid stack name {self.stack.name!r}")
        docs = self.documents()
        root = Path(out_dir) / self.stack.name

        written: list[Path] = []
        for rel, content in docs.items():
            p = root / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            with open(p, "w") as f:
                f.write(content)
            written.append(p)

        logger.debug("wrote %d manifest files for %s to %s", len(written), self.stack.name, root)
        return written


def _json(data: Any, component: str, file_name: str) -> str:
    try:
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    except (TypeError, ValueError) as e:
        raise ManifestError(f"{component}/{file_name}: {e}") from e
