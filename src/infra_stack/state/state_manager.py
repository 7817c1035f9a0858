"""
Deployment state management.

Records the AWS resources a deploy created so a later destroy knows what to
remove, and so repeated deploys stay idempotent.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateManager:
    """Manages deployment state for idempotent AWS operations."""

    def __init__(self, state_file: str = ".deployment_state.json"):
        self.state_file = state_file
        self.state = self._load_state()

    def _empty_state(self) -> Dict[str, Any]:
        return {
            "deployment_id": None,
            "created_at": None,
            "last_updated": None,
            "resources": {},
            "status": "not_deployed"
        }

    def _load_state(self) -> Dict[str, Any]:
        """Load deployment state from file."""
        if os.path.exists(self.state_file):
            try:
                with open(self.state_file, 'r') as f:
                    return json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Ignoring unreadable state file {self.state_file}: {e}")

        return self._empty_state()

    def save_state(self):
        """Save current state to file."""
        self.state["last_updated"] = _now()

        try:
            with open(self.state_file, 'w') as f:
                json.dump(self.state, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save state file: {e}")

    def start_deployment(self, deployment_id: str):
        """Start a new deployment, keeping resources recorded by earlier ones."""
        self.state.update({
            "deployment_id": deployment_id,
            "created_at": self.state.get("created_at") or _now(),
            "status": "deploying",
        })
        self.state.setdefault("resources", {})
        self.state.pop("error", None)
        self.save_state()

    def record_resource(self, resource_type: str, resource_id: str,
                        resource_data: Optional[Dict[str, Any]] = None):
        """Record a created AWS resource."""
        resources = self.state.setdefault("resources", {})
        existing = resources.setdefault(resource_type, {}).get(resource_id, {})

        resources[resource_type][resource_id] = {
            **(resource_data or {}),
            "created_at": existing.get("created_at", _now())
        }
        self.save_state()

    def remove_resource(self, resource_type: str, resource_id: str):
        """Forget a resource after it has been deleted."""
        resources = self.state.get("resources", {})
        if resource_id in resources.get(resource_type, {}):
            del resources[resource_type][resource_id]
            if not resources[resource_type]:
                del resources[resource_type]
            self.save_state()

    def get_resource(self, resource_type: str, resource_id: str) -> Optional[Dict[str, Any]]:
        """Get information about a recorded resource."""
        return (self.state.get("resources", {})
                .get(resource_type, {})
                .get(resource_id))

    def list_resources(self, resource_type: Optional[str] = None) -> Dict[str, Any]:
        """List all recorded resources, optionally filtered by type."""
        resources = self.state.get("resources", {})
        if resource_type:
            return resources.get(resource_type, {})
        return resources

    def find_resources(self, resource_type: str, **attributes) -> Dict[str, Dict[str, Any]]:
        """Recorded resources of one type whose data matches every given attribute."""
        return {
            resource_id: data
            for resource_id, data in self.list_resources(resource_type).items()
            if all(data.get(key) == value for key, value in attributes.items())
        }

    def mark_deployment_complete(self):
        """Mark deployment as complete."""
        self.state["status"] = "deployed"
        self.save_state()

    def mark_deployment_failed(self, error: str):
        """Mark deployment as failed."""
        self.state["status"] = "failed"
        self.state["error"] = error
        self.save_state()

    def clear_state(self):
        """Clear all deployment state."""
        self.state = self._empty_state()
        if os.path.exists(self.state_file):
            os.remove(self.state_file)
