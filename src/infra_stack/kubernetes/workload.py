"""
Deployment and Service wiring for a containerised workload.

Each optional input maps to one optional block of the manifest; when the
input is absent the block is left out entirely.
"""
import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from infra_stack.kubernetes.names import standard_labels, validate_name

logger = logging.getLogger(__name__)


class ResourceRequirements(BaseModel):
    """Container resource requests and limits, e.g. {"cpu": "250m"}."""
    requests: Dict[str, str] = Field(default_factory=dict)
    limits: Dict[str, str] = Field(default_factory=dict)

    def to_manifest(self) -> Dict[str, Dict[str, str]]:
        manifest = {}
        if self.requests:
            manifest["requests"] = dict(self.requests)
        if self.limits:
            manifest["limits"] = dict(self.limits)
        return manifest


class WorkloadConfig(BaseModel):
    """Inputs for one Deployment and its optional Service."""
    name: str = Field(..., description="Deployment and Service name")
    namespace: str
    image: str = Field(..., min_length=1)
    replicas: int = Field(1, ge=0)
    container_port: Optional[int] = Field(None, ge=1, le=65535)
    service_port: Optional[int] = Field(None, ge=1, le=65535, description="Defaults to container_port")
    service_type: Literal["ClusterIP", "NodePort", "LoadBalancer"] = "ClusterIP"
    env: Dict[str, str] = Field(default_factory=dict)
    env_from_secrets: List[str] = Field(default_factory=list)
    resources: Optional[ResourceRequirements] = None
    service_account_name: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    image_pull_policy: Literal["Always", "IfNotPresent", "Never"] = "IfNotPresent"
    command: Optional[List[str]] = None
    args: Optional[List[str]] = None

    @field_validator('name', 'namespace')
    @classmethod
    def check_dns_label(cls, v):
        return validate_name(v)

    @field_validator('env', mode='before')
    @classmethod
    def stringify_env(cls, v):
        # YAML turns `PORT: 8080` into an int
        if isinstance(v, dict):
            return {str(k): str(val) for k, val in v.items()}
        return v


def _selector_labels(config: WorkloadConfig) -> Dict[str, str]:
    return {"app": config.name}


def _container(config: WorkloadConfig) -> Dict[str, Any]:
    container: Dict[str, Any] = {
        "name": config.name,
        "image": config.image,
        "imagePullPolicy": config.image_pull_policy,
    }
    if config.command:
        container["command"] = list(config.command)
    if config.args:
        container["args"] = list(config.args)
    if config.container_port is not None:
        container["ports"] = [{"name": "http", "containerPort": config.container_port}]
    if config.env:
        container["env"] = [{"name": k, "value": v} for k, v in config.env.items()]
    if config.env_from_secrets:
        container["envFrom"] = [{"secretRef": {"name": s}} for s in config.env_from_secrets]
    if config.resources is not None:
        resources = config.resources.to_manifest()
        if resources:
            container["resources"] = resources
    return container


def build_deployment(config: WorkloadConfig) -> Dict[str, Any]:
    """Build an apps/v1 Deployment manifest."""
    selector = _selector_labels(config)
    labels = {**standard_labels(config.name, config.labels), **selector}

    pod_spec: Dict[str, Any] = {"containers": [_container(config)]}
    if config.service_account_name:
        pod_spec["serviceAccountName"] = config.service_account_name

    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": config.name,
            "namespace": config.namespace,
            "labels": labels,
        },
        "spec": {
            "replicas": config.replicas,
            "selector": {"matchLabels": selector},
            "template": {
                "metadata": {"labels": labels},
                "spec": pod_spec,
            },
        },
    }


def build_service(config: WorkloadConfig) -> Optional[Dict[str, Any]]:
    """Build a v1 Service, or None when the workload exposes no port."""
    if config.container_port is None:
        return None

    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": config.name,
            "namespace": config.namespace,
            "labels": standard_labels(config.name, config.labels),
        },
        "spec": {
            "type": config.service_type,
            "selector": _selector_labels(config),
            "ports": [{
                "name": "http",
                "port": config.service_port or config.container_port,
                "targetPort": "http",
            }],
        },
    }


def build_workload(config: WorkloadConfig) -> List[Dict[str, Any]]:
    """Deployment followed by its Service, if any."""
    manifests = [build_deployment(config)]
    service = build_service(config)
    if service is not None:
        manifests.append(service)

    logger.debug(f"Built workload {config.namespace}/{config.name} ({len(manifests)} manifest(s))")
    return manifests
