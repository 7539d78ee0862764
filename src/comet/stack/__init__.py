"""comet.stack - Stack model, references and placeholders."""

from comet.stack.values import OutputRef, SecretValue, parse_refs
from comet.stack.template import is_placeholder, render, render_tree
from comet.stack.graph import Component, ComponentGraph, ComponentProxy
from comet.stack.model import Backend, ClusterEntry, Kubeconfig, Metadata, Stack

__all__ = [
    "OutputRef",
    "SecretValue",
    "parse_refs",
    "is_placeholder",
    "render",
    "render_tree",
    "Component",
    "ComponentGraph",
    "ComponentProxy",
    "Backend",
    "ClusterEntry",
    "Kubeconfig",
    "Metadata",
    "Stack",
]
