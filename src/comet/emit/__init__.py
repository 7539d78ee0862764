"""comet.emit - Manifest and kubeconfig output."""

from comet.emit.manifest import ManifestEmitter
from comet.emit.kubeconfig import kubeconfig_dict, kubeconfig_yaml

__all__ = [
    "ManifestEmitter",
    "kubeconfig_dict",
    "kubeconfig_yaml",
]
