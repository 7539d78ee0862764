"""
comet.stack.template - Deferred {{ .path }} placeholders.

Strings in a stack script may carry placeholders that are only
filled in when manifests are emitted:

    backend("gcs", {
        "bucket": "acme-state",
        "prefix": "{{ .stack }}/{{ .component }}",
    })
    component("api", "modules/api", {
        "domain": "api.{{ .settings.domain_name }}",
    })

Recognized roots: stack, settings (alias opts), component and any
other key of the stack options. The rendering context changes per
destination component, so one value may render differently in
each bundle.
"""

from __future__ import annotations

import json
import re
from typing import Any

from comet.errors import TemplateError
from comet.stack.values import OutputRef, SecretValue

# {{ .settings.domain_name }}
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*\.([a-zA-Z0-9_.-]+)\s*\}\}")


def is_placeholder(value: Any) -> bool:
    """True if value is a string carrying at least one placeholder."""
    return isinstance(value, str) and PLACEHOLDER_PATTERN.search(value) is not None


def build_context(stack_name: str, settings: dict[str, Any],
                  options: dict[str, Any] | None = None,
                  component: str | None = None) -> dict[str, Any]:
    """Rendering context for one destination."""
    ctx: dict[str, Any] = dict(options or {})
    ctx["stack"] = stack_name
    ctx["settings"] = settings
    ctx["opts"] = settings
    if component is not None:
        ctx["component"] = component
    return ctx


def render(text: str, context: dict[str, Any]) -> str:
    """Replace every placeholder in text with its value from context."""

    def replacer(match: re.Match) -> str:
        return _format(_lookup(context, match.group(1)))

    return PLACEHOLDER_PATTERN.sub(replacer, text)


def render_tree(value: Any, context: dict[str, Any]) -> Any:
    """Render all strings in a config tree.

    OutputRef values become reference expressions and secrets
    become plain strings, so the result is ready to serialize.
    """
    if isinstance(value, OutputRef):
        return value.expression
    if isinstance(value, SecretValue):
        return str(value)
    if isinstance(value, str):
        return render(value, context)
    if isinstance(value, dict):
        return {k: render_tree(v, context) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [render_tree(v, context) for v in value]
    return value


def _lookup(context: dict[str, Any], path: str) -> Any:
    current: Any = context
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            raise TemplateError(
                f"Cannot render '{{{{ .{path} }}}}': '{part}' not found. "
                f"Available keys: {_keys(current)}"
            )
    return current


def _keys(value: Any) -> list[str]:
    if isinstance(value, dict):
        return list(value.keys())
    return []


def _format(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
