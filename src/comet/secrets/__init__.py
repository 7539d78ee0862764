"""comet.secrets - Pluggable secret providers."""

from comet.secrets.registry import (
    SecretProvider,
    SecretRef,
    SecretResolver,
    parse_ref,
    register_provider,
    get_provider,
    list_providers,
    reset_registry,
)

__all__ = [
    "SecretProvider",
    "SecretRef",
    "SecretResolver",
    "parse_ref",
    "register_provider",
    "get_provider",
    "list_providers",
    "reset_registry",
]
