"""
KEDA trigger composition.

Turns trigger descriptors (queue depth, CPU utilization, memory utilization)
into the trigger specifications a KEDA ScaledObject expects. Every descriptor
is validated before anything is composed, so a bad entry anywhere in the list
produces no output at all.

Queue-depth triggers reference a TriggerAuthentication named
``{prefix}-trigger-auth``. This module only references that name; the
caller is responsible for declaring the resource (see scaling.policy).
"""
import logging
import math
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from infra_stack.config.settings import DEFAULT_QUEUE_TRIGGER_REGION
from infra_stack.exceptions import ValidationError

logger = logging.getLogger(__name__)

IDENTITY_OWNER = "pod"
TRIGGER_AUTH_SUFFIX = "trigger-auth"

MetricValue = Union[StrictInt, StrictFloat, StrictStr]

# Kubernetes quantities are int64
MIN_METRIC_INT = -(2 ** 63)
MAX_METRIC_INT = 2 ** 63 - 1


class TriggerKind(str, Enum):
    """Trigger kinds understood by the composer."""
    QUEUE_DEPTH = "aws-sqs-queue"
    CPU = "cpu"
    MEMORY = "memory"


def trigger_auth_name(prefix: str) -> str:
    """Name of the TriggerAuthentication that queue triggers point at."""
    return f"{prefix}-{TRIGGER_AUTH_SUFFIX}"


def format_metric_value(value: MetricValue) -> str:
    """Render a numeric or string metric value the way KEDA expects it.

    Integers (and integral floats) render without a decimal point. Other
    floats use the shortest repr that round-trips, so nothing is rounded.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Boolean is not a valid metric value: {value!r}")
    if isinstance(value, int):
        if not MIN_METRIC_INT <= value <= MAX_METRIC_INT:
            raise ValidationError("Metric value must fit in a signed 64-bit integer")
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"Metric value must be finite, got {value!r}")
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if not value.strip():
        raise ValidationError("Metric value must not be blank")
    return value.strip()


def _format_flag(flag: bool) -> str:
    return "true" if flag else "false"


def _check_metric_value(v):
    if isinstance(v, str):
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()
    if isinstance(v, int) and not MIN_METRIC_INT <= v <= MAX_METRIC_INT:
        raise ValueError("must fit in a signed 64-bit integer")
    if isinstance(v, float) and not math.isfinite(v):
        raise ValueError("must be a finite number")
    return v


class _Descriptor(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class QueueDepthTrigger(_Descriptor):
    """Scale on the number of messages waiting in an SQS queue."""
    type: Literal["aws-sqs-queue"] = "aws-sqs-queue"
    queue_url: StrictStr = Field(..., alias="queueURL", min_length=1)
    queue_length: MetricValue = Field(..., alias="queueLength")
    region: Optional[StrictStr] = Field(None, alias="awsRegion", min_length=1)
    activation_queue_length: Optional[MetricValue] = Field(None, alias="activationQueueLength")
    scale_on_in_flight: Optional[StrictBool] = Field(None, alias="scaleOnInFlight")
    scale_on_delayed: Optional[StrictBool] = Field(None, alias="scaleOnDelayed")

    @field_validator('queue_length', 'activation_queue_length')
    @classmethod
    def check_metric_value(cls, v):
        return _check_metric_value(v)

    def compose(self, prefix: str, default_region: str) -> Dict[str, Any]:
        metadata = {
            "queueURL": self.queue_url,
            "queueLength": format_metric_value(self.queue_length),
            "awsRegion": self.region or default_region,
            "identityOwner": IDENTITY_OWNER,
        }
        if self.activation_queue_length is not None:
            metadata["activationQueueLength"] = format_metric_value(self.activation_queue_length)
        if self.scale_on_in_flight is not None:
            metadata["scaleOnInFlight"] = _format_flag(self.scale_on_in_flight)
        if self.scale_on_delayed is not None:
            metadata["scaleOnDelayed"] = _format_flag(self.scale_on_delayed)

        return {
            "type": self.type,
            "authenticationRef": {"name": trigger_auth_name(prefix)},
            "metadata": metadata,
        }


class _ResourceTrigger(_Descriptor):
    metric_type: Literal["Utilization", "AverageValue"] = Field(..., alias="metricType")
    value: MetricValue

    @field_validator('value')
    @classmethod
    def check_value(cls, v):
        return _check_metric_value(v)

    def compose(self, prefix: str, default_region: str) -> Dict[str, Any]:
        return {
            "type": self.type,
            "metricType": self.metric_type,
            "metadata": {"value": format_metric_value(self.value)},
        }


class CpuTrigger(_ResourceTrigger):
    """Scale on container CPU usage."""
    type: Literal["cpu"] = "cpu"


class MemoryTrigger(_ResourceTrigger):
    """Scale on container memory usage."""
    type: Literal["memory"] = "memory"


TriggerDescriptor = Annotated[
    Union[QueueDepthTrigger, CpuTrigger, MemoryTrigger],
    Field(discriminator="type"),
]

_descriptor_adapter = TypeAdapter(TriggerDescriptor)

_KNOWN_KINDS = [kind.value for kind in TriggerKind]


def parse_trigger(raw: Union[Mapping[str, Any], BaseModel], position: int = 0):
    """Validate one descriptor and return its typed model."""
    if isinstance(raw, (QueueDepthTrigger, CpuTrigger, MemoryTrigger)):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError(
            f"Trigger #{position} must be a mapping, got {type(raw).__name__}"
        )

    kind = raw.get("type")
    if kind not in _KNOWN_KINDS:
        raise ValidationError(
            f"Trigger #{position} has unknown type {kind!r}; expected one of {_KNOWN_KINDS}"
        )

    try:
        return _descriptor_adapter.validate_python(dict(raw))
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or 'trigger'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Trigger #{position} ({kind}) is invalid: {problems}") from e


def parse_triggers(triggers: Sequence[Union[Mapping[str, Any], BaseModel]]) -> List[Any]:
    """Validate all descriptors, failing on the first bad one."""
    if isinstance(triggers, (str, bytes, Mapping)):
        raise ValidationError("Triggers must be a sequence of descriptors")
    return [parse_trigger(raw, position) for position, raw in enumerate(triggers)]


def compose(
    triggers: Sequence[Union[Mapping[str, Any], BaseModel]],
    prefix: str,
    default_region: str = DEFAULT_QUEUE_TRIGGER_REGION,
) -> List[Dict[str, Any]]:
    """Compose KEDA trigger specifications from descriptors.

    Args:
        triggers: Ordered descriptors, as mappings keyed by KEDA field names
            (``queueURL``, ``metricType`` ...) or as descriptor models.
        prefix: Naming prefix; queue triggers reference ``{prefix}-trigger-auth``.
        default_region: ``awsRegion`` for queue triggers that do not set one.

    Returns:
        Composed triggers, positionally aligned with ``triggers``.

    Raises:
        ValidationError: If any descriptor has an unknown type or is missing
            (or carries foreign) fields. Raised before anything is composed.
    """
    if not isinstance(prefix, str) or not prefix.strip():
        raise ValidationError("Trigger prefix must be a non-empty string")
    if not default_region:
        raise ValidationError("Default queue region must be a non-empty string")

    parsed = parse_triggers(triggers)
    composed = [descriptor.compose(prefix, default_region) for descriptor in parsed]

    logger.debug(f"Composed {len(composed)} trigger(s) for prefix {prefix}")
    return composed
