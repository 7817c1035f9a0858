# src/infra_stack/config/settings.py
from typing import Optional, Dict, Any
from pydantic import Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


DEFAULT_QUEUE_TRIGGER_REGION = "elasticmq"


class Settings(BaseSettings):
    """
    Single source of truth for process-level settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    What gets provisioned lives in the stack file (see config.stack);
    these settings only describe where and how.

    Usage:
        from infra_stack.config.settings import get_settings
        settings = get_settings()
        region = settings.aws_region
    """

    # Deployment Mode
    deployment_mode: str = Field(
        default="local-dev",
        description="Deployment mode: local-dev, aws-mock, or aws-prod"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    # Autoscaling defaults
    queue_trigger_region: str = Field(
        default=DEFAULT_QUEUE_TRIGGER_REGION,
        description="awsRegion used by queue triggers that do not set one"
    )

    default_polling_interval: int = Field(
        default=30,
        ge=1,
        description="KEDA polling interval in seconds when the stack omits it"
    )

    # Deployer behaviour
    state_file: str = Field(
        default=".deployment_state.json",
        description="Where created AWS resources are recorded"
    )

    role_propagation_attempts: int = Field(
        default=6,
        ge=1,
        description="Attempts to create a function while its new role propagates"
    )

    role_propagation_delay: float = Field(
        default=5.0,
        ge=0,
        description="Initial delay between those attempts in seconds"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator('deployment_mode', mode='before')
    @classmethod
    def normalize_deployment_mode(cls, v):
        """Normalize deployment mode values for backwards compatibility."""
        if v:
            mode_mapping = {
                "local-mock": "local-dev",
                "cloud": "aws-prod",
            }
            return mode_mapping.get(v, v)
        return v

    @field_validator('deployment_mode')
    @classmethod
    def validate_deployment_mode(cls, v):
        """Validate deployment mode is one of the allowed values."""
        valid_modes = ["local-dev", "aws-mock", "aws-prod"]
        if v not in valid_modes:
            raise ValueError(f"Invalid deployment_mode: {v}. Must be one of {valid_modes}")
        return v

    @field_validator('aws_endpoint_url')
    @classmethod
    def set_endpoint_url_based_on_mode(cls, v, info: ValidationInfo):
        """Auto-set endpoint URL based on deployment mode if not explicitly provided."""
        if v is None and info.data.get('deployment_mode') in ["local-dev", "aws-mock"]:
            return "http://localhost:5000"
        return v

    @field_validator('aws_access_key_id', 'aws_secret_access_key')
    @classmethod
    def set_mock_credentials_for_local_modes(cls, v, info: ValidationInfo):
        """Auto-set mock credentials for local modes if not provided."""
        if v is None and info.data.get('deployment_mode') in ["local-dev", "aws-mock"]:
            return "mock"
        return v

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper()

    @property
    def is_local(self) -> bool:
        return self.deployment_mode in ["local-dev", "aws-mock"]

    def summary(self) -> Dict[str, Any]:
        """Settings safe to print: credentials are masked."""
        return {
            'deployment_mode': self.deployment_mode,
            'aws_region': self.aws_region,
            'aws_endpoint_url': self.aws_endpoint_url,
            'aws_access_key_id': '***' if self.aws_access_key_id else None,
            'queue_trigger_region': self.queue_trigger_region,
            'default_polling_interval': self.default_polling_interval,
            'state_file': self.state_file,
            'log_level': self.log_level,
        }

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        validate_default=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
