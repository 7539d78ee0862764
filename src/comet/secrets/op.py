"""
comet.secrets.op - 1Password secret references.

    op://vault/item/field

Delegates to the 1Password CLI (`op read`), which authenticates
with OP_SERVICE_ACCOUNT_TOKEN or an interactive session.
"""

from __future__ import annotations

import subprocess

from comet.errors import ProviderUnavailable, SecretNotFound
from comet.secrets.registry import SecretProvider


class OnePasswordProvider(SecretProvider):
    scheme = "op"
    command = "op"
    timeout = 30

    def fetch(self, locator: str) -> str:
        ref = f"{self.scheme}://{locator}"
        try:
            result = subprocess.run(
                [self.command, "read", "--no-newline", ref],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            raise ProviderUnavailable(f"'{self.command}' not found. Install the 1Password CLI")
        except subprocess.TimeoutExpired:
            raise ProviderUnavailable(f"Timeout reading {ref}")

        if result.returncode != 0:
            raise SecretNotFound(f"Cannot read {ref}: {result.stderr.strip()}")
        return result.stdout
