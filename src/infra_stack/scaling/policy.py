"""
Scaling policy and KEDA manifests.

A ScalingPolicy is built once per request from caller configuration and
never mutated; reconfiguring means building a new one. It renders the
ScaledObject and, when any queue trigger is present, the
TriggerAuthentication those triggers reference.
"""
import copy
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from infra_stack.config.settings import DEFAULT_QUEUE_TRIGGER_REGION
from infra_stack.exceptions import ValidationError
from infra_stack.scaling.triggers import TriggerKind, compose, trigger_auth_name

logger = logging.getLogger(__name__)

KEDA_API_VERSION = "keda.sh/v1alpha1"
COOLDOWN_PERIOD_SECONDS = 300
DEFAULT_POLLING_INTERVAL = 30


class ScalingPolicy(BaseModel):
    """Immutable autoscaling policy for one workload."""

    model_config = ConfigDict(frozen=True)

    prefix: str = Field(..., min_length=1)
    namespace: str = Field(..., min_length=1)
    target_workload_name: str = Field(..., min_length=1, description="Deployment the policy scales")
    polling_interval: int = Field(DEFAULT_POLLING_INTERVAL, ge=1)
    idle_replica_count: Optional[int] = Field(None, ge=0)
    min_replica_count: int = Field(0, ge=0)
    max_replica_count: int = Field(1, ge=1)

    _triggers: Tuple[Dict[str, Any], ...] = PrivateAttr(default=())

    @model_validator(mode='after')
    def check_replica_bounds(self):
        if self.min_replica_count > self.max_replica_count:
            raise ValueError(
                f"min_replica_count ({self.min_replica_count}) exceeds "
                f"max_replica_count ({self.max_replica_count})"
            )
        if self.idle_replica_count is not None and self.idle_replica_count >= self.min_replica_count:
            raise ValueError(
                f"idle_replica_count ({self.idle_replica_count}) must be lower than "
                f"min_replica_count ({self.min_replica_count})"
            )
        return self

    @property
    def triggers(self) -> List[Dict[str, Any]]:
        """Composed triggers; a fresh copy on every access."""
        return copy.deepcopy(list(self._triggers))

    @property
    def cooldown_period(self) -> int:
        return COOLDOWN_PERIOD_SECONDS

    @property
    def scaled_object_name(self) -> str:
        return f"{self.prefix}-scaler"

    @property
    def trigger_authentication_name(self) -> str:
        return trigger_auth_name(self.prefix)

    @property
    def requires_trigger_authentication(self) -> bool:
        return any(t["type"] == TriggerKind.QUEUE_DEPTH.value for t in self._triggers)

    @classmethod
    def build(
        cls,
        prefix: str,
        namespace: str,
        target_workload_name: str,
        triggers: Sequence[Mapping[str, Any]],
        min_replica_count: int = 0,
        max_replica_count: int = 1,
        polling_interval: int = DEFAULT_POLLING_INTERVAL,
        idle_replica_count: Optional[int] = None,
        default_region: str = DEFAULT_QUEUE_TRIGGER_REGION,
    ) -> "ScalingPolicy":
        """Compose the triggers and validate the replica bounds.

        Raises:
            ValidationError: On a bad trigger or inconsistent bounds.
        """
        composed = compose(triggers, prefix, default_region=default_region)
        if not composed:
            raise ValidationError(f"Scaling policy for {prefix} needs at least one trigger")
        try:
            policy = cls(
                prefix=prefix,
                namespace=namespace,
                target_workload_name=target_workload_name,
                polling_interval=polling_interval,
                idle_replica_count=idle_replica_count,
                min_replica_count=min_replica_count,
                max_replica_count=max_replica_count,
            )
        except ValueError as e:
            # pydantic.ValidationError subclasses ValueError
            raise ValidationError(f"Invalid scaling policy for {prefix}: {e}") from e
        policy._triggers = tuple(copy.deepcopy(composed))

        logger.info(
            f"Built scaling policy {policy.scaled_object_name} -> {target_workload_name} "
            f"({min_replica_count}-{max_replica_count} replicas, {len(composed)} trigger(s))"
        )
        return policy

    def scaled_object_manifest(self) -> Dict[str, Any]:
        spec = {
            "scaleTargetRef": {"name": self.target_workload_name},
            "pollingInterval": self.polling_interval,
            "cooldownPeriod": self.cooldown_period,
        }
        if self.idle_replica_count is not None:
            spec["idleReplicaCount"] = self.idle_replica_count
        spec["minReplicaCount"] = self.min_replica_count
        spec["maxReplicaCount"] = self.max_replica_count
        spec["triggers"] = self.triggers

        return {
            "apiVersion": KEDA_API_VERSION,
            "kind": "ScaledObject",
            "metadata": {
                "name": self.scaled_object_name,
                "namespace": self.namespace,
            },
            "spec": spec,
        }

    def trigger_authentication_manifest(self) -> Optional[Dict[str, Any]]:
        """Pod-identity TriggerAuthentication, or None without queue triggers."""
        if not self.requires_trigger_authentication:
            return None
        return {
            "apiVersion": KEDA_API_VERSION,
            "kind": "TriggerAuthentication",
            "metadata": {
                "name": self.trigger_authentication_name,
                "namespace": self.namespace,
            },
            "spec": {
                "podIdentity": {"provider": "aws"},
            },
        }

    def manifests(self) -> List[Dict[str, Any]]:
        """Manifests in apply order: authentication first, then the scaler."""
        manifests = []
        auth = self.trigger_authentication_manifest()
        if auth is not None:
            manifests.append(auth)
        manifests.append(self.scaled_object_manifest())
        return manifests
