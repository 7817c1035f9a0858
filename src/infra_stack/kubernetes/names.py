"""Kubernetes naming and labelling helpers shared by the manifest builders."""
import re
from typing import Dict, Optional

from infra_stack.exceptions import ValidationError

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "infra-stack"
NAME_LABEL = "app.kubernetes.io/name"

# RFC 1123 label: lowercase alphanumerics and '-', alphanumeric at both ends
_DNS_LABEL_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_DNS_LABEL_MAX = 63


def validate_name(name: str, what: str = "resource") -> str:
    """Check that ``name`` is a valid RFC 1123 label and return it."""
    if not isinstance(name, str) or not name:
        raise ValidationError(f"{what} name must be a non-empty string")
    if len(name) > _DNS_LABEL_MAX:
        raise ValidationError(f"{what} name {name!r} is longer than {_DNS_LABEL_MAX} characters")
    if not _DNS_LABEL_RE.match(name):
        raise ValidationError(
            f"{what} name {name!r} must consist of lowercase alphanumerics or '-' "
            f"and start and end with an alphanumeric"
        )
    return name


def standard_labels(name: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    labels = {NAME_LABEL: name, MANAGED_BY_LABEL: MANAGED_BY_VALUE}
    if extra:
        labels.update(extra)
    return labels
