"""
comet - Stack definitions for Terraform/OpenTofu.

Stack scripts declare a backend, components and secrets; comet
evaluates them in a sandbox and compiles manifest bundles for
each component.
"""

from comet.errors import CometError
from comet.stack.context import EvaluationContext
from comet.stack.loader import evaluate_file
from comet.emit.manifest import ManifestEmitter

__version__ = "0.1.0"

__all__ = [
    "CometError",
    "EvaluationContext",
    "evaluate_file",
    "ManifestEmitter",
]
