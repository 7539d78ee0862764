"""
comet.errors - Error taxonomy.

Every error aborts the stack evaluation it was raised in. The
evaluation context annotates errors with the stack name, script
path and the API call that failed before they propagate.
"""

from __future__ import annotations


class CometError(Exception):
    """Base class for all comet errors."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message
        self.stack: str | None = None
        self.path: str | None = None
        self.call: str | None = None

    def annotate(self, stack: str | None = None, path: str | None = None,
                 call: str | None = None) -> "CometError":
        """Attach evaluation context. Existing values are kept."""
        self.stack = self.stack or stack
        self.path = self.path or path
        self.call = self.call or call
        return self

    def __str__(self) -> str:
        where = []
        if self.path:
            where.append(self.path)
        if self.stack:
            where.append(f"stack '{self.stack}'")
        if self.call:
            where.append(self.call)
        if where:
            return f"{': '.join(where)}: {self.message}"
        return self.message


class ConfigError(CometError):
    """comet.yaml could not be read."""


class ScriptError(CometError):
    """The stack script itself raised an exception."""


class EvaluationClosed(CometError):
    """An API call was made after the evaluation finished."""


class StackAlreadyDefined(CometError):
    """stack() was called more than once in one script."""


class DuplicateStackName(CometError):
    """Two scripts declare the same stack name."""


class DuplicateComponentName(CometError):
    """A component name was declared twice in one stack."""


class InvalidComponentName(CometError):
    """A component name is not a plain identifier (letters, digits, _ and -)."""


class InvalidStackName(CometError):
    """A stack name is not a plain identifier."""


class InvalidFileType(CometError):
    """An append() file type is not a plain identifier."""


class DependencyCycle(CometError):
    """Components reference each other in a cycle."""


class TemplateError(CometError):
    """A {{ .path }} placeholder could not be rendered."""


class MissingSecretsDefault(CometError):
    """secret() shorthand used without a default provider and path."""


class SecretNotFound(CometError):
    """The secret reference does not point to a value."""


class ProviderUnavailable(CometError):
    """No provider handles the scheme, or its tool is missing."""


class DecryptionFailed(CometError):
    """The provider could not decrypt the secret document."""


class StateNotFound(CometError):
    """No persisted output exists for the requested scope/output."""


class InvalidKubeconfigEntry(CometError):
    """A kubeconfig cluster entry is malformed."""


class BackendNotConfigured(CometError):
    """Manifests were requested for a stack without backend()."""


class ManifestError(CometError):
    """A rendered value cannot be written to a manifest."""


class StackNotFound(CometError):
    """A stack requested by name does not exist."""
