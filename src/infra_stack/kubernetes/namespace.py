"""Namespace provisioning."""
import logging
from typing import Any, Dict, Optional

from infra_stack.kubernetes.names import MANAGED_BY_LABEL, MANAGED_BY_VALUE, validate_name

logger = logging.getLogger(__name__)


def build_namespace(
    name: str,
    labels: Optional[Dict[str, str]] = None,
    annotations: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Build a v1 Namespace manifest.

    Caller labels are merged over the managed-by label; annotations are only
    emitted when given.
    """
    validate_name(name, "Namespace")

    metadata: Dict[str, Any] = {
        "name": name,
        "labels": {MANAGED_BY_LABEL: MANAGED_BY_VALUE, **(labels or {})},
    }
    if annotations:
        metadata["annotations"] = dict(annotations)

    logger.debug(f"Built namespace manifest: {name}")
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": metadata,
    }
