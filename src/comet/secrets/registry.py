"""
comet.secrets.registry - Secret providers and reference resolution.

A secret reference names its provider by URI scheme:

    sops://secrets.enc.yaml#/datadog/api_key
    op://vault/item/field

Providers are looked up in a runtime registry. The built-in sops
and op providers are registered on first lookup; tests and plugins
can register their own with register_provider().

Shorthand references skip the scheme and document path:

    secretsConfig({"defaultProvider": "sops", "defaultPath": "secrets.enc.yaml"})
    secret("datadog/api_key")   # same as
    secret("datadog.api_key")   # sops://secrets.enc.yaml#/datadog/api_key
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, ClassVar

from comet.errors import MissingSecretsDefault, ProviderUnavailable, SecretNotFound
from comet.stack.values import SecretValue

logger = logging.getLogger(__name__)

SCHEME_SEPARATOR = "://"


class SecretProvider:
    """Base class for secret providers.

    Subclasses set ``scheme`` and implement either ``fetch`` (plain
    value lookup) or, with ``structured = True``, ``decrypt_document``
    returning the whole decrypted document as a mapping.
    """

    scheme: ClassVar[str] = ""
    structured: ClassVar[bool] = False

    def fetch(self, locator: str) -> Any:
        raise NotImplementedError(f"{self.__class__.__name__}.fetch()")

    def decrypt_document(self, path: str) -> Any:
        raise NotImplementedError(f"{self.__class__.__name__}.decrypt_document()")


# Runtime registry
_registry: dict[str, type[SecretProvider]] = {}
_builtins_loaded = False


def _load_builtins() -> None:
    global _builtins_loaded
    if _builtins_loaded:
        return
    _builtins_loaded = True

    from comet.secrets.op import OnePasswordProvider
    from comet.secrets.sops import SopsProvider

    for cls in (SopsProvider, OnePasswordProvider):
        _registry.setdefault(cls.scheme, cls)


def register_provider(provider_cls: type[SecretProvider]) -> None:
    """Register a provider class under its scheme."""
    _load_builtins()
    _registry[provider_cls.scheme] = provider_cls


def get_provider(scheme: str) -> SecretProvider:
    """Create a provider instance for a scheme."""
    _load_builtins()
    cls = _registry.get(scheme)
    if cls is None:
        raise ProviderUnavailable(
            f"No secret provider for scheme '{scheme}'. "
            f"Available: {sorted(_registry)}"
        )
    return cls()


def list_providers() -> dict[str, type[SecretProvider]]:
    _load_builtins()
    return dict(_registry)


def reset_registry() -> None:
    """Reset the registry. For testing."""
    global _builtins_loaded
    _registry.clear()
    _builtins_loaded = False


@dataclass(frozen=True)
class SecretRef:
    """provider://locator#fragment"""
    provider: str
    locator: str
    fragment: str = ""

    @property
    def uri(self) -> str:
        uri = f"{self.provider}{SCHEME_SEPARATOR}{self.locator}"
        if self.fragment:
            uri += f"#{self.fragment}"
        return uri

    @property
    def path(self) -> list[str]:
        """Fragment split into keys: '/a/b' -> ['a', 'b']."""
        return [p for p in self.fragment.split("/") if p]

    def __str__(self) -> str:
        return self.uri


def is_full_ref(value: str) -> bool:
    scheme, sep, _ = value.partition(SCHEME_SEPARATOR)
    return bool(sep) and scheme.isidentifier()


def parse_ref(ref: str) -> SecretRef:
    """Parse a full secret reference.

    >>> parse_ref("sops://secrets.enc.yaml#/db/password")
    SecretRef(provider='sops', locator='secrets.enc.yaml', fragment='/db/password')
    """
    if not isinstance(ref, str) or not is_full_ref(ref):
        raise SecretNotFound(
            f"Invalid secret reference {ref!r}, expected provider://locator[#/path]"
        )
    scheme, _, rest = ref.partition(SCHEME_SEPARATOR)
    locator, _, fragment = rest.partition("#")
    if not locator:
        raise SecretNotFound(f"Secret reference {ref!r} has no locator")
    return SecretRef(provider=scheme, locator=locator, fragment=fragment)


class SecretResolver:
    """Resolves secret references for one stack evaluation.

    Values are cached per reference and decrypted documents per
    path, so reading the same secret twice returns the same value
    and decrypts once.
    """

    def __init__(self, default_provider: str | None = None,
                 default_path: str | None = None):
        self.default_provider = default_provider
        self.default_path = default_path
        self._values: dict[SecretRef, Any] = {}
        self._documents: dict[tuple[str, str], Any] = {}
        self._providers: dict[str, SecretProvider] = {}

    def configure(self, default_provider: str | None = None,
                  default_path: str | None = None) -> None:
        """Set shorthand defaults. Later calls overwrite."""
        if default_provider:
            self.default_provider = default_provider
        if default_path:
            self.default_path = default_path

    def shorthand_ref(self, path: str) -> SecretRef:
        """SecretRef for a shorthand path like 'datadog/api_key' or 'datadog.api_key'."""
        if not self.default_provider or not self.default_path:
            raise MissingSecretsDefault(
                f"secret({path!r}) needs a default provider and path. "
                f"Call secretsConfig({{'defaultProvider': ..., 'defaultPath': ...}}) first"
            )
        keys = [p for p in path.replace(".", "/").split("/") if p]
        if not keys:
            raise SecretNotFound(f"Empty secret path {path!r}")
        return SecretRef(
            provider=self.default_provider,
            locator=self.default_path,
            fragment="/" + "/".join(keys),
        )

    def resolve_shorthand(self, path: str) -> Any:
        if is_full_ref(path):
            return self.resolve(parse_ref(path))
        return self.resolve(self.shorthand_ref(path))

    def resolve_uri(self, ref: str) -> Any:
        return self.resolve(parse_ref(ref))

    def resolve(self, ref: SecretRef) -> Any:
        """Resolve a reference to its value.

        Args:
            ref: Parsed secret reference

        Returns:
            SecretValue for string secrets, the raw value otherwise
            (numbers, or mappings when the fragment points at a subtree)

        Raises:
            ProviderUnavailable: No provider for the scheme, or its CLI is missing
            SecretNotFound: Document or key not found
            DecryptionFailed: The provider could not decrypt the document
        """
        if ref in self._values:
            return self._values[ref]

        logger.debug("resolving secret %s", ref.uri)
        provider = self._provider(ref.provider)
        if provider.structured:
            document = self._document(provider, ref)
            value = _project(document, ref)
        else:
            value = provider.fetch(ref.locator if not ref.fragment
                                   else f"{ref.locator}#{ref.fragment}")

        if isinstance(value, str):
            value = SecretValue(value, ref)
        self._values[ref] = value
        return value

    def _provider(self, scheme: str) -> SecretProvider:
        if scheme not in self._providers:
            self._providers[scheme] = get_provider(scheme)
        return self._providers[scheme]

    def _document(self, provider: SecretProvider, ref: SecretRef) -> Any:
        key = (ref.provider, ref.locator)
        if key not in self._documents:
            self._documents[key] = provider.decrypt_document(ref.locator)
        return self._documents[key]


def _project(document: Any, ref: SecretRef) -> Any:
    """Walk the fragment path into a decrypted document."""
    current = document
    for part in ref.path:
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            raise SecretNotFound(f"Secret '{ref.uri}' not found: no key '{part}'")
    if current is None:
        raise SecretNotFound(f"Secret '{ref.uri}' is empty")
    return current
