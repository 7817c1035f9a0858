import yaml

from infra_stack.kubernetes.manifests import dump_manifests, manifest_filename, write_manifests
from infra_stack.kubernetes.namespace import build_namespace

SCALED_OBJECT = {
    "apiVersion": "keda.sh/v1alpha1",
    "kind": "ScaledObject",
    "metadata": {"name": "orders-scaler", "namespace": "orders"},
    "spec": {"triggers": [{"type": "cpu", "metadata": {"value": "80"}}]},
}


def test_dump_manifests_is_multi_document():
    text = dump_manifests([build_namespace("orders"), SCALED_OBJECT])
    documents = list(yaml.safe_load_all(text))

    assert [d["kind"] for d in documents] == ["Namespace", "ScaledObject"]
    assert text.startswith("---")


def test_dump_keeps_string_values_quoted():
    text = dump_manifests([SCALED_OBJECT])
    assert "value: '80'" in text
    assert list(yaml.safe_load_all(text))[0]["spec"]["triggers"][0]["metadata"]["value"] == "80"


def test_dump_keeps_key_order():
    text = dump_manifests([SCALED_OBJECT])
    assert text.index("apiVersion") < text.index("kind") < text.index("metadata") < text.index("spec")


def test_manifest_filename():
    assert manifest_filename(3, SCALED_OBJECT) == "03-scaledobject-orders-scaler.yaml"


def test_write_manifests(tmp_path):
    out_dir = tmp_path / "rendered"
    paths = write_manifests([build_namespace("orders"), SCALED_OBJECT], out_dir)

    assert [p.name for p in paths] == ["01-namespace-orders.yaml", "02-scaledobject-orders-scaler.yaml"]
    with open(paths[1]) as f:
        assert yaml.safe_load(f) == SCALED_OBJECT
