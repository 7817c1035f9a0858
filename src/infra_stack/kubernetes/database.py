"""
In-cluster PostgreSQL.

Renders the credentials Secret, a single-replica StatefulSet with a
persistent volume claim template, and a headless Service. The password is
generated when the caller does not supply one.
"""
import base64
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pydantic import BaseModel, Field, field_validator

from infra_stack.exceptions import ValidationError
from infra_stack.kubernetes.names import standard_labels, validate_name
from infra_stack.kubernetes.workload import ResourceRequirements

logger = logging.getLogger(__name__)

PASSWORD_ALPHABET = string.ascii_letters + string.digits
MIN_PASSWORD_LENGTH = 16
DATA_MOUNT_PATH = "/var/lib/postgresql/data"


class DatabaseConfig(BaseModel):
    """Inputs for the in-cluster database."""
    name: str = "postgres"
    namespace: str
    image: str = "postgres:16-alpine"
    database_name: str = Field("app", min_length=1)
    username: str = Field("app", min_length=1)
    password: Optional[str] = Field(None, min_length=MIN_PASSWORD_LENGTH)
    port: int = Field(5432, ge=1, le=65535)
    storage_size: str = "1Gi"
    storage_class: Optional[str] = None
    resources: Optional[ResourceRequirements] = None

    @field_validator('name', 'namespace')
    @classmethod
    def check_dns_label(cls, v):
        return validate_name(v)

    @property
    def secret_name(self) -> str:
        return f"{self.name}-credentials"

    @property
    def host(self) -> str:
        return f"{self.name}.{self.namespace}.svc.cluster.local"


@dataclass
class DatabaseResources:
    """Rendered database manifests plus the connection URL for clients."""
    secret: Dict[str, Any]
    statefulset: Dict[str, Any]
    service: Dict[str, Any]
    connection_url: str

    def manifests(self) -> List[Dict[str, Any]]:
        return [self.secret, self.statefulset, self.service]


def generate_password(length: int = 24) -> str:
    """Generate an alphanumeric password with the secrets module."""
    if length < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password length must be at least {MIN_PASSWORD_LENGTH}")
    return ''.join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def build_connection_url(config: DatabaseConfig, password: str) -> str:
    user = quote(config.username, safe="")
    pw = quote(password, safe="")
    return f"postgresql://{user}:{pw}@{config.host}:{config.port}/{config.database_name}"


def build_secret(config: DatabaseConfig, password: str) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "Opaque",
        "metadata": {
            "name": config.secret_name,
            "namespace": config.namespace,
            "labels": standard_labels(config.name),
        },
        "data": {
            "POSTGRES_DB": _b64(config.database_name),
            "POSTGRES_USER": _b64(config.username),
            "POSTGRES_PASSWORD": _b64(password),
            "DATABASE_URL": _b64(build_connection_url(config, password)),
        },
    }


def build_statefulset(config: DatabaseConfig) -> Dict[str, Any]:
    selector = {"app": config.name}
    labels = {**standard_labels(config.name), **selector}

    container: Dict[str, Any] = {
        "name": "postgres",
        "image": config.image,
        "ports": [{"name": "postgres", "containerPort": config.port}],
        "env": [{"name": "PGDATA", "value": f"{DATA_MOUNT_PATH}/pgdata"}],
        "envFrom": [{"secretRef": {"name": config.secret_name}}],
        "volumeMounts": [{"name": "data", "mountPath": DATA_MOUNT_PATH}],
        "readinessProbe": {
            "exec": {"command": ["pg_isready", "-U", config.username, "-d", config.database_name]},
            "periodSeconds": 10,
        },
    }
    if config.port != 5432:
        container["env"].append({"name": "PGPORT", "value": str(config.port)})
    if config.resources is not None:
        resources = config.resources.to_manifest()
        if resources:
            container["resources"] = resources

    claim_spec: Dict[str, Any] = {
        "accessModes": ["ReadWriteOnce"],
        "resources": {"requests": {"storage": config.storage_size}},
    }
    if config.storage_class:
        claim_spec["storageClassName"] = config.storage_class

    return {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": {
            "name": config.name,
            "namespace": config.namespace,
            "labels": labels,
        },
        "spec": {
            "serviceName": config.name,
            "replicas": 1,
            "selector": {"matchLabels": selector},
            "template": {
                "metadata": {"labels": labels},
                "spec": {"containers": [container]},
            },
            "volumeClaimTemplates": [{
                "metadata": {"name": "data"},
                "spec": claim_spec,
            }],
        },
    }


def build_headless_service(config: DatabaseConfig) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": config.name,
            "namespace": config.namespace,
            "labels": standard_labels(config.name),
        },
        "spec": {
            "clusterIP": "None",
            "selector": {"app": config.name},
            "ports": [{"name": "postgres", "port": config.port, "targetPort": "postgres"}],
        },
    }


def build_database(config: DatabaseConfig, password: Optional[str] = None) -> DatabaseResources:
    """Build all database manifests.

    Password precedence: the ``password`` argument, then ``config.password``,
    then a freshly generated one.
    """
    if password is not None and len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Database password must be at least {MIN_PASSWORD_LENGTH} characters")

    resolved = password or config.password
    if resolved is None:
        resolved = generate_password()
        logger.info(f"Generated password for database {config.namespace}/{config.name}")

    return DatabaseResources(
        secret=build_secret(config, resolved),
        statefulset=build_statefulset(config),
        service=build_headless_service(config),
        connection_url=build_connection_url(config, resolved),
    )
