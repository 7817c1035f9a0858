import pytest

from infra_stack.exceptions import ValidationError
from infra_stack.kubernetes.namespace import build_namespace


def test_build_namespace():
    manifest = build_namespace("orders")

    assert manifest == {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {
            "name": "orders",
            "labels": {"app.kubernetes.io/managed-by": "infra-stack"},
        },
    }


def test_labels_and_annotations_are_merged():
    manifest = build_namespace("orders", labels={"team": "payments"}, annotations={"owner": "ops"})

    assert manifest["metadata"]["labels"]["team"] == "payments"
    assert manifest["metadata"]["labels"]["app.kubernetes.io/managed-by"] == "infra-stack"
    assert manifest["metadata"]["annotations"] == {"owner": "ops"}


def test_empty_annotations_are_omitted():
    assert "annotations" not in build_namespace("orders", annotations={})["metadata"]


@pytest.mark.parametrize("name", ["", "Orders", "orders_prod", "-orders", "orders-", "a" * 64])
def test_invalid_names_are_rejected(name):
    with pytest.raises(ValidationError):
        build_namespace(name)
