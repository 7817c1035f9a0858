import pytest
from pydantic import ValidationError as PydanticValidationError

from infra_stack.exceptions import ValidationError
from infra_stack.scaling.policy import COOLDOWN_PERIOD_SECONDS, ScalingPolicy
from tests.consts import TEST_NAMESPACE, TEST_PREFIX, TEST_QUEUE_URL, TEST_WORKLOAD

QUEUE_TRIGGER = {"type": "aws-sqs-queue", "queueURL": TEST_QUEUE_URL, "queueLength": 5}
CPU_TRIGGER = {"type": "cpu", "metricType": "Utilization", "value": 70}


def build_policy(triggers=None, **overrides):
    kwargs = dict(
        prefix=TEST_PREFIX,
        namespace=TEST_NAMESPACE,
        target_workload_name=TEST_WORKLOAD,
        triggers=triggers if triggers is not None else [QUEUE_TRIGGER, CPU_TRIGGER],
        min_replica_count=1,
        max_replica_count=5,
    )
    kwargs.update(overrides)
    return ScalingPolicy.build(**kwargs)


def test_scaled_object_manifest():
    manifest = build_policy(polling_interval=15).scaled_object_manifest()

    assert manifest["apiVersion"] == "keda.sh/v1alpha1"
    assert manifest["kind"] == "ScaledObject"
    assert manifest["metadata"] == {"name": f"{TEST_PREFIX}-scaler", "namespace": TEST_NAMESPACE}

    spec = manifest["spec"]
    assert spec["scaleTargetRef"] == {"name": TEST_WORKLOAD}
    assert spec["pollingInterval"] == 15
    assert spec["cooldownPeriod"] == COOLDOWN_PERIOD_SECONDS == 300
    assert spec["minReplicaCount"] == 1
    assert spec["maxReplicaCount"] == 5
    assert "idleReplicaCount" not in spec
    assert [t["type"] for t in spec["triggers"]] == ["aws-sqs-queue", "cpu"]


def test_target_is_explicit_not_derived_from_prefix():
    policy = build_policy(prefix="team.orders", target_workload_name="consumer")
    assert policy.scaled_object_manifest()["spec"]["scaleTargetRef"]["name"] == "consumer"


def test_idle_replica_count_is_rendered_when_set():
    spec = build_policy(idle_replica_count=0).scaled_object_manifest()["spec"]
    assert spec["idleReplicaCount"] == 0


def test_trigger_authentication_for_queue_triggers():
    policy = build_policy()
    auth = policy.trigger_authentication_manifest()

    assert policy.requires_trigger_authentication
    assert auth["kind"] == "TriggerAuthentication"
    assert auth["metadata"]["name"] == f"{TEST_PREFIX}-trigger-auth"
    assert auth["spec"] == {"podIdentity": {"provider": "aws"}}

    queue = policy.scaled_object_manifest()["spec"]["triggers"][0]
    assert queue["authenticationRef"]["name"] == auth["metadata"]["name"]


def test_no_trigger_authentication_without_queue_triggers():
    policy = build_policy(triggers=[CPU_TRIGGER])

    assert not policy.requires_trigger_authentication
    assert policy.trigger_authentication_manifest() is None
    assert [m["kind"] for m in policy.manifests()] == ["ScaledObject"]


def test_manifests_put_authentication_first():
    assert [m["kind"] for m in build_policy().manifests()] == ["TriggerAuthentication", "ScaledObject"]


def test_policy_is_immutable():
    policy = build_policy()
    with pytest.raises(PydanticValidationError):
        policy.max_replica_count = 10


def test_manifest_copies_do_not_share_triggers():
    policy = build_policy()
    manifest = policy.scaled_object_manifest()
    manifest["spec"]["triggers"][0]["metadata"]["queueLength"] = "999"

    assert policy.scaled_object_manifest()["spec"]["triggers"][0]["metadata"]["queueLength"] == "5"


def test_cooldown_is_fixed():
    assert build_policy().cooldown_period == 300


def test_custom_queue_region_flows_into_triggers():
    policy = build_policy(default_region="eu-central-1")
    assert policy.triggers[0]["metadata"]["awsRegion"] == "eu-central-1"


@pytest.mark.parametrize("overrides", [
    {"min_replica_count": 6, "max_replica_count": 5},
    {"max_replica_count": 0},
    {"min_replica_count": -1},
    {"polling_interval": 0},
    {"idle_replica_count": 1, "min_replica_count": 1},
    {"target_workload_name": ""},
    {"triggers": []},
])
def test_invalid_policies_are_rejected(overrides):
    with pytest.raises(ValidationError):
        build_policy(**overrides)


def test_bad_trigger_is_reported_as_validation_error():
    with pytest.raises(ValidationError, match="unknown type"):
        build_policy(triggers=[{"type": "prometheus"}])


def test_changing_returned_triggers_does_not_change_the_policy():
    policy = build_policy(triggers=[CPU_TRIGGER])
    policy.triggers[0]["metadata"]["value"] = "1"
    triggers = policy.triggers
    triggers[0]["metadata"]["value"] = "1"
    triggers.append({"type": "memory"})

    assert policy.triggers == [{"type": "cpu", "metricType": "Utilization", "metadata": {"value": "70"}}]
    assert policy.scaled_object_manifest()["spec"]["triggers"][0]["metadata"]["value"] == "70"


def test_changing_input_triggers_after_build_does_not_change_the_policy():
    trigger = {"type": "cpu", "metricType": "Utilization", "value": 70}
    policy = build_policy(triggers=[trigger])
    trigger["value"] = 10

    assert policy.scaled_object_manifest()["spec"]["triggers"][0]["metadata"]["value"] == "70"
