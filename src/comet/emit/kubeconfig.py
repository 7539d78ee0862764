"""
comet.emit.kubeconfig - Kubeconfig document for a stack.

Each cluster entry becomes a context, a cluster and a user of the
same name. Users authenticate with either a static token or an
exec credential plugin.
"""

from __future__ import annotations

from typing import Any

import yaml

from comet.stack.model import Kubeconfig
from comet.stack.template import render_tree


def kubeconfig_dict(kc: Kubeconfig, context: dict[str, Any]) -> dict[str, Any] | None:
    """Build the kubeconfig mapping, rendering placeholders with context."""
    if not kc.clusters:
        return None

    clusters = [render_tree(_entry(c), context) for c in kc.clusters]
    current = clusters[kc.current]["context"]

    doc: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": current,
        "contexts": [],
        "clusters": [],
        "users": [],
    }
    for c in clusters:
        name = c["context"]
        doc["contexts"].append({
            "name": name,
            "context": {"cluster": name, "user": name},
        })

        cluster: dict[str, Any] = {"server": c["host"]}
        if c["cert"]:
            cluster["certificate-authority-data"] = c["cert"]
        doc["clusters"].append({"name": name, "cluster": cluster})

        if c["token"]:
            user: dict[str, Any] = {"token": c["token"]}
        else:
            exec_: dict[str, Any] = {
                "apiVersion": c["exec_apiversion"],
                "command": c["exec_command"],
            }
            if c["exec_args"]:
                exec_["args"] = c["exec_args"]
            user = {"exec": exec_}
        doc["users"].append({"name": name, "user": user})

    return doc


def kubeconfig_yaml(kc: Kubeconfig, context: dict[str, Any]) -> str:
    doc = kubeconfig_dict(kc, context)
    if doc is None:
        return ""
    return yaml.dump(doc, default_flow_style=False, sort_keys=False, allow_unicode=True)


def _entry(c: Any) -> dict[str, Any]:
    return {
        "context": c.context,
        "host": c.host,
        "cert": c.cert,
        "token": c.token,
        "exec_command": c.exec_command,
        "exec_args": list(c.exec_args),
        "exec_apiversion": c.exec_apiversion,
    }
