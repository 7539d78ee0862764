"""
comet.secrets.sops - SOPS encrypted documents.

    sops://secrets.enc.yaml#/datadog/api_key

Decryption is delegated to the `sops` CLI; key material (age,
PGP, cloud KMS) is whatever sops finds in the environment, e.g.
SOPS_AGE_KEY or SOPS_AGE_KEY_FILE.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any

import yaml

from comet.errors import DecryptionFailed, ProviderUnavailable, SecretNotFound
from comet.secrets.registry import SecretProvider

_MISSING_KEY_HINTS = (
    "no age identity",
    "0 successful groups required",
    "failed to get the data key",
)


class SopsProvider(SecretProvider):
    """Decrypts whole YAML/JSON documents with sops."""

    scheme = "sops"
    structured = True
    command = "sops"
    timeout = 30

    def decrypt_document(self, path: str) -> Any:
        p = Path(path)
        if not p.exists():
            raise SecretNotFound(f"SOPS file not found: {p}")

        try:
            result = subprocess.run(
                [self.command, "--decrypt", str(p)],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            raise ProviderUnavailable(f"'{self.command}' not found. Install sops to read {p}")
        except subprocess.TimeoutExpired:
            raise DecryptionFailed(f"Timeout decrypting {p}")

        if result.returncode != 0:
            message = result.stderr.strip()
            if any(hint in message for hint in _MISSING_KEY_HINTS):
                raise DecryptionFailed(
                    f"Failed to decrypt SOPS file {p}: {message}\n"
                    f"Hint: the age key might be missing. Set SOPS_AGE_KEY "
                    f"or SOPS_AGE_KEY_FILE."
                )
            raise DecryptionFailed(f"Failed to decrypt SOPS file {p}: {message}")

        return parse_document(result.stdout, p)


def parse_document(text: str, path: Path) -> Any:
    """Parse decrypted output. JSON is valid YAML, so one loader covers both."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DecryptionFailed(f"Decrypted {path} is not valid YAML/JSON: {e}") from e
    if data is None:
        return {}
    return data
