"""
comet.stack.context - Sandboxed evaluation of one stack script.

A stack script is plain Python that only sees a fixed API:

    stack("dev", {"settings": {"domain_name": "dev.acme.io"}})
    backend("gcs", {"bucket": "acme-state", "prefix": "{{ .stack }}/{{ .component }}"})

    vpc = component("vpc", "modules/vpc", {"cidr": "10.0.0.0/16"})
    component("gke", "modules/gke", {
        "network": vpc.id,
        "token": secret("gke/token"),
    })

Everything the script does flows through an EvaluationContext. The
context starts open, executes the script with the API table as its
only globals, then closes and hands the frozen Stack to the emitter.
"""

from __future__ import annotations

import ast
import builtins
import functools
import logging
import os
import sys
import time
from typing import Any, Callable, Mapping, TextIO

from comet.errors import (
    CometError,
    EvaluationClosed,
    InvalidFileType,
    InvalidStackName,
    ScriptError,
    StackAlreadyDefined,
    StateNotFound,
)
from comet.secrets.registry import SecretResolver
from comet.stack.graph import ComponentProxy
from comet.stack.model import Backend, Kubeconfig, Stack
from comet.stack.values import SecretValue, is_valid_name
from comet.state import StateStore

logger = logging.getLogger(__name__)

# Builtins a declarative script may use. No import, no open, no eval.
SAFE_BUILTINS: dict[str, Any] = {
    name: getattr(builtins, name)
    for name in (
        "abs", "all", "any", "bool", "dict", "enumerate", "filter", "float",
        "format", "frozenset", "int", "isinstance", "len", "list", "map",
        "max", "min", "range", "repr", "reversed", "round", "set", "sorted",
        "str", "sum", "tuple", "zip",
        "Exception", "KeyError", "TypeError", "ValueError",
    )
}

# Frame and code object attributes. They lead back to the module
# globals of whoever is running the script.
BLOCKED_ATTRIBUTES = frozenset({
    "gi_frame", "gi_code", "gi_yieldfrom",
    "cr_frame", "cr_code", "cr_await",
    "ag_frame", "ag_code", "ag_await",
    "f_back", "f_builtins", "f_code", "f_globals", "f_locals",
    "tb_frame", "tb_next",
})


def check_script(tree: ast.AST, path: str = "<stack>") -> None:
    """Reject scripts that reach outside the API table.

    Imports, names and attributes starting with an underscore
    (``print.__globals__``, ``().__class__``) and string subscripts
    like ``x["__builtins__"]`` are refused before anything runs.

    Raises:
        ScriptError: first offending node, with its line number
    """
    for node in ast.walk(tree):
        problem = None
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            problem = "import is not available in stack scripts"
        elif isinstance(node, ast.Attribute) and (
                node.attr.startswith("_") or node.attr in BLOCKED_ATTRIBUTES):
            problem = f"access to attribute '{node.attr}' is not allowed"
        elif isinstance(node, ast.Name) and node.id.startswith("__"):
            problem = f"name '{node.id}' is not allowed"
        elif isinstance(node, ast.Subscript) and isinstance(node.slice, ast.Constant) \
                and isinstance(node.slice.value, str) and node.slice.value.startswith("__"):
            problem = f"key '{node.slice.value}' is not allowed"
        if problem:
            raise ScriptError(f"line {node.lineno}: {problem}").annotate(path=path)


class EnvVars:
    """Environment seen by one evaluation.

    Reads fall back to the base environment (os.environ by default);
    writes go to an overlay that later reads see immediately.
    """

    def __init__(self, base: Mapping[str, str] | None = None):
        self._base = os.environ if base is None else base
        self.overrides: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        if key in self.overrides:
            return self.overrides[key]
        return self._base.get(key)

    def set(self, key: str, value: Any) -> str:
        self.overrides[str(key)] = str(value)
        return self.overrides[str(key)]

    def update(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            if value is not None:
                self.set(key, value)


class EnvProxy:
    """`env.HOME` / `env["HOME"]` inside scripts. Unset reads as ""."""

    __slots__ = ("_envs",)

    def __init__(self, envs: EnvVars):
        object.__setattr__(self, "_envs", envs)

    def __getattr__(self, name: str) -> str:
        if name.startswith("_"):
            raise AttributeError(name)
        return self._envs.get(name) or ""

    def __getitem__(self, name: str) -> str:
        return self._envs.get(name) or ""

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("env is read-only, use envs(key, value)")


def api(name: str) -> Callable:
    """Mark a method as script API function `name`.

    The wrapper refuses calls once the context is closed and
    annotates raised CometErrors with stack, path and call.
    """

    def decorator(method: Callable) -> Callable:
        @functools.wraps(method)
        def wrapper(self: "EvaluationContext", *args: Any, **kwargs: Any) -> Any:
            call = _describe(name, args)
            if self.closed:
                raise EvaluationClosed(
                    f"{name}() called after evaluation finished"
                ).annotate(self.stack.name or None, self.stack.path, call)
            try:
                return method(self, *args, **kwargs)
            except CometError as e:
                raise e.annotate(self.stack.name or None, self.stack.path, call)

        wrapper.api_name = name
        return wrapper

    return decorator


class EvaluationContext:
    """Runs one stack script and collects what it declares."""

    def __init__(
        self,
        path: str = "<stack>",
        resolver: SecretResolver | None = None,
        state_store: StateStore | None = None,
        environ: Mapping[str, str] | None = None,
        out: TextIO | None = None,
    ):
        self.stack = Stack(path=str(path))
        self.resolver = resolver or SecretResolver()
        self.state_store = state_store
        self.envs = EnvVars(environ)
        self.out = out
        self.closed = False
        self._stack_defined = False

    # ── lifecycle ──────────────────────────────

    def namespace(self) -> dict[str, Any]:
        """Globals for the script: safe builtins plus the API table."""
        ns: dict[str, Any] = {
            "__builtins__": dict(SAFE_BUILTINS),
            "__name__": "__stack__",
            "__file__": self.stack.path,
        }
        for attr in dir(type(self)):
            fn = getattr(self, attr)
            api_name = getattr(fn, "api_name", None)
            if api_name:
                ns[api_name] = fn
        ns["env"] = EnvProxy(self.envs)
        return ns

    def evaluate(self, source: str) -> Stack:
        """Execute the script and return the frozen stack.

        Args:
            source: Stack script source

        Returns:
            The Stack declared by the script

        Raises:
            ScriptError: Syntax error, disallowed construct, or a Python
                exception raised by the script
            EvaluationClosed: The context was already evaluated
            CometError: Any API call failed
        """
        if self.closed:
            raise EvaluationClosed("context already evaluated").annotate(path=self.stack.path)

        try:
            tree = ast.parse(source, self.stack.path)
        except SyntaxError as e:
            raise ScriptError(f"Syntax error at line {e.lineno}: {e.msg}").annotate(
                path=self.stack.path) from e
        check_script(tree, self.stack.path)
        code = compile(tree, self.stack.path, "exec")

        start = time.monotonic()
        try:
            exec(code, self.namespace())
        except CometError:
            raise
        except Exception as e:
            raise ScriptError(f"{type(e).__name__}: {e}").annotate(
                self.stack.name or None, self.stack.path) from e
        finally:
            logger.debug("script %s executed in %.3fs", self.stack.path, time.monotonic() - start)

        return self.close()

    def close(self) -> Stack:
        self.closed = True
        self.stack.envs = dict(self.envs.overrides)
        return self.stack

    # ── API ────────────────────────────────────

    @api("stack")
    def stack_(self, name: Any, opts: dict[str, Any] | None = None, **kwargs: Any) -> str:
        if isinstance(name, dict):
            opts, name = dict(name), name.get("name", "")
            opts.pop("name", None)
        if self._stack_defined:
            raise StackAlreadyDefined(
                f"stack() already called as '{self.stack.name}', a script defines one stack"
            )
        if not is_valid_name(name):
            raise InvalidStackName(
                f"Invalid stack name {name!r}: use letters, digits, '_' and '-'"
            )

        options = _copy_tree({**(opts or {}), **kwargs})
        settings = options.get("settings", options.get("opts", options))

        self.stack.name = name
        self.stack.options = options
        self.stack.settings = settings if isinstance(settings, dict) else {}
        self._stack_defined = True
        logger.debug("register stack %s", name)
        return name

    @api("metadata")
    def metadata(self, meta: dict[str, Any] | None = None, **kwargs: Any) -> None:
        self.stack.metadata.merge(_copy_tree({**(meta or {}), **kwargs}))
        logger.debug("register metadata for %s", self.stack.name)

    @api("backend")
    def backend(self, type: str, config: dict[str, Any] | None = None, **kwargs: Any) -> None:
        if self.stack.backend is not None:
            logger.debug("backend %s replaces %s", type, self.stack.backend.type)
        self.stack.backend = Backend(type=type, config=_copy_tree({**(config or {}), **kwargs}))

    @api("component")
    def component(self, name: str, source: str,
                  config: dict[str, Any] | None = None, **kwargs: Any) -> ComponentProxy:
        return self.stack.graph.declare(name, source, _copy_tree({**(config or {}), **kwargs}))

    @api("secrets")
    def secrets(self, ref: str) -> Any:
        return self.resolver.resolve_uri(ref)

    @api("secret")
    def secret(self, path: str) -> Any:
        return self.resolver.resolve_shorthand(path)

    @api("secretsConfig")
    def secrets_config(self, config: dict[str, Any] | None = None, **kwargs: Any) -> None:
        config = {**(config or {}), **kwargs}
        self.resolver.configure(
            default_provider=config.get("defaultProvider", config.get("default_provider")),
            default_path=config.get("defaultPath", config.get("default_path")),
        )

    @api("envs")
    def envs_(self, *args: Any) -> Any:
        if not args:
            return None
        if len(args) == 1 and isinstance(args[0], Mapping):
            self.envs.update(args[0])
            return None
        if len(args) == 1:
            return self.envs.get(str(args[0]))
        return self.envs.set(args[0], args[1])

    @api("append")
    def append(self, file_type: str, lines: Any) -> None:
        if not is_valid_name(file_type):
            raise InvalidFileType(
                f"Invalid file type {file_type!r}: use letters, digits, '_' and '-'"
            )
        if isinstance(lines, str):
            lines = [lines]
        self.stack.appends.setdefault(file_type, []).extend(
            line if isinstance(line, SecretValue) else str(line) for line in lines
        )

    @api("kubeconfig")
    def kubeconfig(self, spec: dict[str, Any] | None = None, **kwargs: Any) -> None:
        kc = Kubeconfig.from_dict(_copy_tree({**(spec or {}), **kwargs}))
        if self.stack.kubeconfig is not None:
            logger.debug("kubeconfig for %s replaced", self.stack.name)
        self.stack.kubeconfig = kc

    @api("state")
    def state(self, scope: str, output: str) -> Any:
        if self.state_store is None:
            raise StateNotFound(f"No state store configured, cannot read '{scope}'")
        return self.state_store.lookup(scope, output)

    @api("print")
    def print_(self, *args: Any, sep: str = " ", end: str = "\n") -> None:
        out = self.out or sys.stdout
        out.write(sep.join(str(a) for a in args) + end)


def _copy_tree(value: Any) -> Any:
    """Copy dicts and lists so later script mutations don't leak in."""
    if isinstance(value, ComponentProxy):
        raise ScriptError(
            f"cannot use component {value._component.name!r} as a value, "
            f"reference one of its outputs instead (e.g. {value._component.name}.id)"
        )
    if isinstance(value, Mapping):
        return {k: _copy_tree(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_copy_tree(v) for v in value]
    return value


def _describe(name: str, args: tuple) -> str:
    if name in ("secret", "secrets", "component", "backend", "state", "append") and args:
        shown = ", ".join(repr(a) for a in args[:2] if isinstance(a, str))
        return f"{name}({shown})"
    return f"{name}()"
