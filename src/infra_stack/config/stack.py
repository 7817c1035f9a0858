"""
Stack file models.

A stack file is YAML describing one namespace worth of infrastructure:

    prefix: orders
    namespace: orders
    workloads:
      - name: worker
        image: ghcr.io/acme/worker:1.4.2
    scaling:
      target_workload_name: worker
      max_replica_count: 5
      triggers:
        - type: aws-sqs-queue
          queueURL: https://sqs.eu-west-1.amazonaws.com/123456789012/orders
          queueLength: 5
    database:
      database_name: orders
    function:
      function_name: orders-webhook
      handler: app.handler
      package_path: ./webhook

The namespace is filled in for workloads and the database when they omit it.
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from infra_stack.aws.function import FunctionConfig
from infra_stack.config.settings import Settings, get_settings
from infra_stack.exceptions import ValidationError
from infra_stack.kubernetes.database import DatabaseConfig, build_database
from infra_stack.kubernetes.names import validate_name
from infra_stack.kubernetes.namespace import build_namespace
from infra_stack.kubernetes.workload import WorkloadConfig, build_workload
from infra_stack.scaling.policy import ScalingPolicy

logger = logging.getLogger(__name__)


class ScalingConfig(BaseModel):
    """Scaling block of a stack file; triggers stay raw until composed."""
    target_workload_name: str = Field(..., min_length=1)
    min_replica_count: int = 0
    max_replica_count: int = 1
    idle_replica_count: Optional[int] = None
    polling_interval: Optional[int] = None
    queue_region: Optional[str] = Field(None, description="Overrides settings.queue_trigger_region")
    triggers: List[Dict[str, Any]] = Field(..., min_length=1)


class StackConfig(BaseModel):
    prefix: str = Field(..., min_length=1)
    namespace: str
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    workloads: List[WorkloadConfig] = Field(default_factory=list)
    scaling: Optional[ScalingConfig] = None
    database: Optional[DatabaseConfig] = None
    function: Optional[FunctionConfig] = None

    @field_validator('namespace')
    @classmethod
    def check_namespace(cls, v):
        return validate_name(v, "Namespace")

    @model_validator(mode='before')
    @classmethod
    def inherit_namespace(cls, data):
        if not isinstance(data, dict) or 'namespace' not in data:
            return data
        data = dict(data)
        namespace = data['namespace']
        data['workloads'] = [
            {'namespace': namespace, **w} if isinstance(w, dict) else w
            for w in data.get('workloads') or []
        ]
        if isinstance(data.get('database'), dict):
            data['database'] = {'namespace': namespace, **data['database']}
        return data

    @model_validator(mode='after')
    def check_scaling_target(self):
        if self.scaling is not None and self.workloads:
            names = [w.name for w in self.workloads]
            if self.scaling.target_workload_name not in names:
                raise ValueError(
                    f"scaling target {self.scaling.target_workload_name!r} is not one of "
                    f"the declared workloads {names}"
                )
        return self


def parse_stack(data: Dict[str, Any]) -> StackConfig:
    try:
        return StackConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid stack configuration: {e}") from e


def load_stack(path: Union[str, Path]) -> StackConfig:
    """Read and validate a YAML stack file."""
    stack_path = Path(path)
    if not stack_path.exists():
        raise ValidationError(f"Stack file not found: {stack_path}")

    with open(stack_path, 'r') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValidationError(f"Stack file {stack_path} is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError(f"Stack file {stack_path} must contain a mapping")

    stack = parse_stack(data)
    logger.info(f"Loaded stack {stack.prefix} from {stack_path}")
    return stack


def build_scaling_policy(stack: StackConfig, settings: Optional[Settings] = None) -> Optional[ScalingPolicy]:
    if stack.scaling is None:
        return None
    settings = settings or get_settings()
    scaling = stack.scaling

    return ScalingPolicy.build(
        prefix=stack.prefix,
        namespace=stack.namespace,
        target_workload_name=scaling.target_workload_name,
        triggers=scaling.triggers,
        min_replica_count=scaling.min_replica_count,
        max_replica_count=scaling.max_replica_count,
        polling_interval=(scaling.polling_interval if scaling.polling_interval is not None
                          else settings.default_polling_interval),
        idle_replica_count=scaling.idle_replica_count,
        default_region=(scaling.queue_region if scaling.queue_region is not None
                        else settings.queue_trigger_region),
    )


def render_stack(stack: StackConfig, settings: Optional[Settings] = None,
                 password: Optional[str] = None) -> List[Dict[str, Any]]:
    """All Kubernetes manifests of a stack, in apply order.

    Order: namespace, database, workloads, trigger authentication, scaled
    object. The function block is AWS-side and not rendered here.
    """
    # Compose first so a bad trigger fails before anything else is built
    policy = build_scaling_policy(stack, settings)

    manifests = [build_namespace(stack.namespace, stack.labels, stack.annotations)]
    if stack.database is not None:
        manifests.extend(build_database(stack.database, password=password).manifests())
    for workload in stack.workloads:
        manifests.extend(build_workload(workload))
    if policy is not None:
        manifests.extend(policy.manifests())

    logger.info(f"Rendered {len(manifests)} manifest(s) for stack {stack.prefix}")
    return manifests
