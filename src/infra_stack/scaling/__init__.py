"""
Autoscaling components.

Composes KEDA trigger specifications from trigger descriptors and wraps them
in an immutable scaling policy that renders ScaledObject manifests.
"""
from infra_stack.scaling.triggers import compose, TriggerKind
from infra_stack.scaling.policy import ScalingPolicy

__all__ = ["compose", "TriggerKind", "ScalingPolicy"]
