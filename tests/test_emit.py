"""
tests/test_emit.py - Manifest emitter tests.

Stacks are built by evaluating small scripts, then rendered with
ManifestEmitter and inspected as parsed JSON/YAML.
"""

import io
import json
import os
import sys
import textwrap

import pytest
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from comet.emit import ManifestEmitter, kubeconfig_dict
from comet.errors import BackendNotConfigured, DependencyCycle, ManifestError, TemplateError
from comet.secrets import SecretProvider, register_provider, reset_registry
from comet.stack.context import EvaluationContext


class FakeSops(SecretProvider):
    scheme = "sops"
    structured = True

    def decrypt_document(self, path):
        return {"gke": {"token": "gke-token"}, "raw": {"banner": "# {{ .nope }}"}}


@pytest.fixture(autouse=True)
def clean():
    reset_registry()
    register_provider(FakeSops)
    yield
    reset_registry()


DEV = """
stack("dev", {"settings": {"domain_name": "dev.acme.io", "replicas": 2}})
metadata({"description": "Development", "owner": "platform"})
backend("gcs", {"bucket": "acme-state", "prefix": "{{ .stack }}/{{ .component }}"})
secretsConfig({"defaultProvider": "sops", "defaultPath": "secrets.enc.yaml"})

vpc = component("vpc", "modules/vpc", {"cidr": "10.0.0.0/16", "name": "{{ .stack }}-vpc"})
component("gke", "modules/gke", {
    "inputs": {
        "network": vpc.id,
        "endpoint": "https://" + vpc.ip,
        "domain": "api.{{ .settings.domain_name }}",
        "replicas": 3,
        "token": secret("gke/token"),
    },
    "providers": {"google": {"project": "acme-{{ .stack }}", "region": "europe-west1"}},
})

append("providers", ['# {{ .component }} in {{ .stack }}'])
"""


def evaluate(source):
    ctx = EvaluationContext("dev.stack.py", environ={}, out=io.StringIO())
    return ctx.evaluate(textwrap.dedent(source))


@pytest.fixture
def dev():
    return evaluate(DEV)


# ─────────────────────────────────────────────
# DOCUMENTS
# ─────────────────────────────────────────────
class TestDocuments:
    def test_layout(self, dev):
        assert list(ManifestEmitter(dev).documents()) == [
            "stack.yaml",
            "vpc/backend.tf.json",
            "vpc/dev-vpc.tfvars.json",
            "vpc/providers_gen.tf",
            "gke/backend.tf.json",
            "gke/dev-gke.tfvars.json",
            "gke/providers.tf.json",
            "gke/providers_gen.tf",
        ]

    def test_backend_rendered_per_component(self, dev):
        docs = ManifestEmitter(dev).documents()
        vpc = json.loads(docs["vpc/backend.tf.json"])
        gke = json.loads(docs["gke/backend.tf.json"])
        assert vpc == {"terraform": {"backend": {"gcs": {"bucket": "acme-state", "prefix": "dev/vpc"}}}}
        assert gke["terraform"]["backend"]["gcs"]["prefix"] == "dev/gke"

    def test_tfvars(self, dev):
        docs = ManifestEmitter(dev).documents()
        assert json.loads(docs["vpc/dev-vpc.tfvars.json"]) == {
            "cidr": "10.0.0.0/16",
            "name": "dev-vpc",
        }
        assert json.loads(docs["gke/dev-gke.tfvars.json"]) == {
            "network": "${vpc.id}",
            "endpoint": "https://${vpc.ip}",
            "domain": "api.dev.acme.io",
            "replicas": 3,
            "token": "gke-token",
        }

    def test_providers(self, dev):
        docs = ManifestEmitter(dev).documents()
        assert json.loads(docs["gke/providers.tf.json"]) == {
            "provider": {"google": {"project": "acme-dev", "region": "europe-west1"}},
        }
        assert "vpc/providers.tf.json" not in docs

    def test_append_rendered_per_component(self, dev):
        docs = ManifestEmitter(dev).documents()
        assert docs["vpc/providers_gen.tf"] == "# vpc in dev\n"
        assert docs["gke/providers_gen.tf"] == "# gke in dev\n"

    def test_deterministic(self, dev):
        first = ManifestEmitter(dev).documents()
        second = ManifestEmitter(evaluate(DEV)).documents()
        assert first == second

    def test_literals_roundtrip(self):
        stack = evaluate("""
            stack("dev")
            backend("local", {"path": "state.tfstate"})
            component("x", "modules/x", {
                "n": 1, "f": 1.5, "b": False, "none": None,
                "list": [1, "two", {"three": 3}], "map": {"k": "v"},
                "unicode": "héllo",
            })
        """)
        docs = ManifestEmitter(stack).documents()
        assert json.loads(docs["x/dev-x.tfvars.json"]) == {
            "n": 1, "f": 1.5, "b": False, "none": None,
            "list": [1, "two", {"three": 3}], "map": {"k": "v"},
            "unicode": "héllo",
        }
        assert "héllo" in docs["x/dev-x.tfvars.json"]


class TestIndex:
    def test_index(self, dev):
        index = yaml.safe_load(ManifestEmitter(dev).documents()["stack.yaml"])
        assert index == {
            "name": "dev",
            "metadata": {"description": "Development", "owner": "platform"},
            "backend": "gcs",
            "components": [
                {"name": "vpc", "source": "modules/vpc"},
                {"name": "gke", "source": "modules/gke", "depends_on": ["vpc"]},
            ],
            "order": ["vpc", "gke"],
        }

    def test_order_follows_dependencies(self):
        stack = evaluate("""
            stack("dev")
            backend("local", {})
            component("app", "modules/app", {"db": "${db.host}"})
            component("db", "modules/db")
        """)
        assert ManifestEmitter(stack).index()["order"] == ["db", "app"]

    def test_cycle_fails_emission(self):
        stack = evaluate("""
            stack("dev")
            backend("local", {})
            component("a", "modules/a", {"x": "${b.out}"})
            component("b", "modules/b", {"x": "${a.out}"})
        """)
        with pytest.raises(DependencyCycle) as exc:
            ManifestEmitter(stack).documents()
        assert exc.value.stack == "dev"


# ─────────────────────────────────────────────
# ERRORS
# ─────────────────────────────────────────────
class TestErrors:
    def test_no_backend(self):
        stack = evaluate("""
            stack("dev")
            component("vpc", "modules/vpc")
        """)
        with pytest.raises(BackendNotConfigured) as exc:
            ManifestEmitter(stack).documents()
        assert "stack 'dev'" in str(exc.value)

    def test_unknown_placeholder_annotated(self):
        stack = evaluate("""
            stack("dev")
            backend("local", {})
            component("vpc", "modules/vpc", {"name": "{{ .settings.missing }}"})
        """)
        with pytest.raises(TemplateError) as exc:
            ManifestEmitter(stack).documents()
        message = str(exc.value)
        assert "component 'vpc'" in message
        assert "missing" in message

    def test_nothing_written_on_error(self, tmp_path):
        stack = evaluate("""
            stack("dev")
            backend("local", {})
            component("a", "modules/a")
            component("b", "modules/b", {"name": "{{ .nope }}"})
        """)
        with pytest.raises(TemplateError):
            ManifestEmitter(stack).write(tmp_path)
        assert not (tmp_path / "dev").exists()


# ─────────────────────────────────────────────
# KUBECONFIG
# ─────────────────────────────────────────────
class TestKubeconfig:
    SOURCE = """
        stack("dev")
        backend("local", {})
        component("gke", "modules/gke")
        kubeconfig({
            "current": 1,
            "clusters": [
                {"context": "{{ .stack }}-a", "host": "https://a", "token": "t0k"},
                {"context": "{{ .stack }}-b", "host": "https://b", "cert": "Q0E=",
                 "exec_command": "gke-gcloud-auth-plugin", "exec_args": ["--x"]},
            ],
        })
    """

    def test_document(self):
        docs = ManifestEmitter(evaluate(self.SOURCE)).documents()
        kc = yaml.safe_load(docs["kubeconfig.yaml"])
        assert kc["apiVersion"] == "v1"
        assert kc["kind"] == "Config"
        assert kc["current-context"] == "dev-b"
        assert [c["name"] for c in kc["contexts"]] == ["dev-a", "dev-b"]
        assert kc["clusters"][0] == {"name": "dev-a", "cluster": {"server": "https://a"}}
        assert kc["clusters"][1]["cluster"]["certificate-authority-data"] == "Q0E="
        assert kc["users"][0] == {"name": "dev-a", "user": {"token": "t0k"}}
        assert kc["users"][1]["user"]["exec"] == {
            "apiVersion": "client.authentication.k8s.io/v1beta1",
            "command": "gke-gcloud-auth-plugin",
            "args": ["--x"],
        }

    def test_absent_without_clusters(self, dev):
        assert "kubeconfig.yaml" not in ManifestEmitter(dev).documents()
        stack = evaluate("""
            stack("dev")
            backend("local", {})
            component("gke", "modules/gke")
            kubeconfig({"clusters": []})
        """)
        assert kubeconfig_dict(stack.kubeconfig, {}) is None
        assert "kubeconfig.yaml" not in ManifestEmitter(stack).documents()


# ─────────────────────────────────────────────
# WRITE
# ─────────────────────────────────────────────
class TestWrite:
    def test_writes_bundle(self, dev, tmp_path):
        files = ManifestEmitter(dev).write(tmp_path)
        root = tmp_path / "dev"
        assert root / "stack.yaml" in files
        assert (root / "gke" / "dev-gke.tfvars.json").exists()
        data = json.loads((root / "gke" / "dev-gke.tfvars.json").read_text())
        assert data["network"] == "${vpc.id}"

    def test_rewrite_identical(self, dev, tmp_path):
        ManifestEmitter(dev).write(tmp_path / "a")
        ManifestEmitter(evaluate(DEV)).write(tmp_path / "b")
        for rel in ManifestEmitter(dev).documents():
            assert (tmp_path / "a" / "dev" / rel).read_bytes() == \
                (tmp_path / "b" / "dev" / rel).read_bytes()

    def test_last_backend_written(self, tmp_path):
        stack = evaluate("""
            stack("dev")
            backend("gcs", {"bucket": "old-state"})
            backend("local", {"path": "{{ .stack }}/{{ .component }}.tfstate"})
            component("vpc", "modules/vpc")
        """)
        ManifestEmitter(stack).write(tmp_path)
        data = json.loads((tmp_path / "dev" / "vpc" / "backend.tf.json").read_text())
        assert data == {"terraform": {"backend": {"local": {"path": "dev/vpc.tfstate"}}}}

    def test_secret_append_line_written_verbatim(self, tmp_path):
        stack = evaluate("""
            stack("dev")
            backend("local", {})
            secretsConfig({"defaultProvider": "sops", "defaultPath": "s.yaml"})
            component("vpc", "modules/vpc")
            append("providers", [secret("raw/banner"), "# {{ .component }}"])
        """)
        ManifestEmitter(stack).write(tmp_path)
        content = (tmp_path / "dev" / "vpc" / "providers_gen.tf").read_text()
        assert content == "# {{ .nope }}\n# vpc\n"

    @pytest.mark.parametrize("name", ["../outside", "a/b", "a.b"])
    def test_unsafe_stack_name_refused(self, dev, tmp_path, name):
        dev.name = name
        with pytest.raises(ManifestError, match="Invalid stack name"):
            ManifestEmitter(dev).write(tmp_path / "out")
        assert not (tmp_path / "outside").exists()
        assert not (tmp_path / "out").exists()
