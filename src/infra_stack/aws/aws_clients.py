"""
boto3 client access for the deployer.

One session per process, built from settings: an SSO profile session when
AWS_PROFILE is set in aws-prod mode, otherwise explicit credentials with the
local endpoint override in local-dev/aws-mock modes.
"""
import os
import logging
from typing import Any, Dict, Optional, Tuple

import boto3

from infra_stack.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def client_kwargs(settings: Settings, region: Optional[str] = None) -> Dict[str, Any]:
    """Keyword arguments for ``session.client`` derived from settings."""
    kwargs: Dict[str, Any] = {'region_name': region or settings.aws_region}
    if settings.is_local:
        if settings.aws_endpoint_url:
            kwargs['endpoint_url'] = settings.aws_endpoint_url
        kwargs['aws_access_key_id'] = settings.aws_access_key_id
        kwargs['aws_secret_access_key'] = settings.aws_secret_access_key
    elif settings.aws_access_key_id and settings.aws_secret_access_key:
        kwargs['aws_access_key_id'] = settings.aws_access_key_id
        kwargs['aws_secret_access_key'] = settings.aws_secret_access_key
    return kwargs


class AWSClientManager:
    """Process-wide cache of boto3 clients keyed by service and region."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._setup(get_settings())
            cls._instance = instance
        return cls._instance

    def _setup(self, settings: Settings):
        self.settings = settings
        self._clients: Dict[Tuple[str, str], Any] = {}

        profile = os.environ.get('AWS_PROFILE')
        self.profile = profile if profile and settings.deployment_mode == 'aws-prod' else None
        self.session = boto3.Session(profile_name=self.profile) if self.profile else boto3.Session()

        logger.info(
            f"AWS clients: mode={settings.deployment_mode} region={settings.aws_region} "
            f"endpoint={settings.aws_endpoint_url if settings.is_local else 'default'} "
            f"profile={self.profile or 'none'}"
        )

    def get_client(self, service_name: str, region: Optional[str] = None) -> Any:
        key = (service_name, region or self.settings.aws_region)
        if key not in self._clients:
            if self.profile:
                kwargs = {'region_name': key[1]}
            else:
                kwargs = client_kwargs(self.settings, region)
            self._clients[key] = self.session.client(service_name, **kwargs)
            logger.debug(f"Created {service_name} client for {key[1]}")
        return self._clients[key]

    @classmethod
    def reset(cls):
        """Forget the session and cached clients; the next use re-reads settings."""
        if cls._instance is not None:
            cls._instance._clients.clear()
        cls._instance = None


def get_iam_client():
    return AWSClientManager().get_client('iam')


def get_lambda_client(region: Optional[str] = None):
    return AWSClientManager().get_client('lambda', region)
