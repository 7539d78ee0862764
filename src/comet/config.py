"""
comet.config - Project config.

comet.yaml (project root):

    log_level: INFO
    tf_command: tofu
    stacks_dir: stacks
    out_dir: stacks/_manifests
    work_dir: stacks/_components
    state_dir: .comet/state        # optional, JSON outputs per scope
    secrets:
      default_provider: sops
      default_path: secrets.enc.yaml

Every key is optional. COMET_<KEY> environment variables override
the file (COMET_LOG_LEVEL, COMET_TF_COMMAND, COMET_STACKS_DIR,
COMET_OUT_DIR, COMET_WORK_DIR, COMET_STATE_DIR).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from comet.errors import ConfigError
from comet.state import CommandStateStore, FileStateStore, StateStore

CONFIG_FILE = "comet.yaml"

_ENV_KEYS = ("log_level", "tf_command", "stacks_dir", "out_dir", "work_dir", "state_dir")


@dataclass
class CometConfig:
    """Project settings."""
    root: Path = Path(".")
    log_level: str = "INFO"
    tf_command: str = "tofu"
    stacks_dir: str = "stacks"
    out_dir: str = "stacks/_manifests"
    work_dir: str = "stacks/_components"
    state_dir: str | None = None
    secrets_default_provider: str | None = None
    secrets_default_path: str | None = None

    def path(self, value: str) -> Path:
        """Resolve a configured path against the project root."""
        p = Path(value)
        return p if p.is_absolute() else self.root / p

    @property
    def stacks_path(self) -> Path:
        return self.path(self.stacks_dir)

    @property
    def out_path(self) -> Path:
        return self.path(self.out_dir)

    def state_store(self) -> StateStore:
        if self.state_dir:
            return FileStateStore(self.path(self.state_dir))
        return CommandStateStore(self.tf_command, self.path(self.work_dir))


def load_config(root: str | Path | None = None) -> CometConfig:
    """Read comet.yaml and apply COMET_* env overrides.

    Args:
        root: Project directory (default: cwd). A missing comet.yaml
            means defaults.

    Returns:
        CometConfig with paths relative to root

    Raises:
        ConfigError: comet.yaml is not valid YAML or not a mapping
    """
    root_path = Path(root or ".").resolve()
    cfg = CometConfig(root=root_path)

    cp = root_path / CONFIG_FILE
    if cp.exists():
        with open(cp) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid {cp}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{cp} must be a YAML mapping")
        _apply(cfg, data)

    for key in _ENV_KEYS:
        value = os.environ.get(f"COMET_{key.upper()}")
        if value:
            setattr(cfg, key, value)

    return cfg


def _apply(cfg: CometConfig, data: dict[str, Any]) -> None:
    for key in _ENV_KEYS:
        if key in data and data[key] is not None:
            setattr(cfg, key, str(data[key]))

    secrets = data.get("secrets", {}) or {}
    if not isinstance(secrets, dict):
        raise ConfigError("secrets must be a mapping")
    cfg.secrets_default_provider = secrets.get("default_provider")
    cfg.secrets_default_path = secrets.get("default_path")
