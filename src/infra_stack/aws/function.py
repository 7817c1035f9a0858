"""
Serverless function definition with IAM wiring.

Pure request builders: each function returns the keyword arguments of one
boto3 call, or None when the corresponding optional resource is not
configured. FunctionDeployer (function_deploy.py) sends them.

Conditional resources:
- execution role: created unless ``role_arn`` is given
- inline policy: only when ``policy_statements`` is non-empty
- function URL: only when ``function_url`` is set
- public invoke permission: only for a URL with auth type NONE
"""
import io
import json
import logging
import zipfile
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from infra_stack.exceptions import ValidationError

logger = logging.getLogger(__name__)

BASIC_EXECUTION_POLICY_ARN = "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole"
PUBLIC_URL_STATEMENT_ID = "FunctionURLAllowPublicAccess"


class CorsConfig(BaseModel):
    allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    allow_methods: List[str] = Field(default_factory=lambda: ["*"])
    allow_headers: List[str] = Field(default_factory=list)
    expose_headers: List[str] = Field(default_factory=list)
    allow_credentials: bool = False
    max_age: Optional[int] = Field(None, ge=0, le=86400)


class FunctionUrlConfig(BaseModel):
    auth_type: Literal["NONE", "AWS_IAM"] = "AWS_IAM"
    cors: Optional[CorsConfig] = None


class PolicyStatement(BaseModel):
    """One IAM policy statement; ``resources`` defaults to every resource."""
    effect: Literal["Allow", "Deny"] = "Allow"
    actions: List[str] = Field(..., min_length=1)
    resources: List[str] = Field(default_factory=lambda: ["*"])
    sid: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        statement = {
            "Effect": self.effect,
            "Action": list(self.actions),
            "Resource": list(self.resources),
        }
        if self.sid:
            statement = {"Sid": self.sid, **statement}
        return statement


class FunctionConfig(BaseModel):
    """Inputs for one Lambda function and its IAM wiring."""
    function_name: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    description: str = ""
    runtime: str = "python3.12"
    handler: Optional[str] = None
    package_path: Optional[str] = Field(None, description="Directory or .zip with the function code")
    image_uri: Optional[str] = None
    memory_size: int = Field(128, ge=128, le=10240)
    timeout: int = Field(30, ge=1, le=900)
    architectures: List[Literal["x86_64", "arm64"]] = Field(default_factory=lambda: ["x86_64"])
    environment: Dict[str, str] = Field(default_factory=dict)
    role_arn: Optional[str] = Field(None, description="Existing execution role; a role is created when absent")
    managed_policy_arns: List[str] = Field(default_factory=list)
    policy_statements: List[PolicyStatement] = Field(default_factory=list)
    function_url: Optional[FunctionUrlConfig] = None
    tags: Dict[str, str] = Field(default_factory=dict)

    @field_validator('environment', mode='before')
    @classmethod
    def stringify_environment(cls, v):
        if isinstance(v, dict):
            return {str(k): str(val) for k, val in v.items()}
        return v

    @model_validator(mode='after')
    def check_code_source(self):
        if bool(self.package_path) == bool(self.image_uri):
            raise ValueError("Exactly one of package_path or image_uri must be set")
        if self.package_path and not self.handler:
            raise ValueError("handler is required for zip packages")
        return self

    @property
    def creates_role(self) -> bool:
        return self.role_arn is None

    @property
    def role_name(self) -> str:
        """Name of the execution role, whether created here or supplied."""
        if self.role_arn:
            return self.role_arn.rsplit("/", 1)[-1]
        return f"{self.function_name}-role"

    @property
    def inline_policy_name(self) -> str:
        return f"{self.function_name}-policy"


@dataclass
class FunctionPlan:
    """What a deploy of this config will create or attach."""
    function_name: str
    package_type: str
    role_name: str
    create_role: bool
    attached_policy_arns: List[str] = field(default_factory=list)
    inline_policy: Optional[str] = None
    function_url: bool = False
    public_url: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_trust_policy() -> Dict[str, Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": "lambda.amazonaws.com"},
                "Action": "sts:AssumeRole"
            }
        ]
    }


def attached_policy_arns(config: FunctionConfig) -> List[str]:
    """Managed policies to attach; created roles always get basic execution."""
    arns = list(config.managed_policy_arns)
    if config.creates_role and BASIC_EXECUTION_POLICY_ARN not in arns:
        arns.insert(0, BASIC_EXECUTION_POLICY_ARN)
    return arns


def build_role_request(config: FunctionConfig) -> Optional[Dict[str, Any]]:
    """``iam.create_role`` kwargs, or None when an existing role is used."""
    if not config.creates_role:
        return None

    request = {
        "RoleName": config.role_name,
        "AssumeRolePolicyDocument": json.dumps(build_trust_policy()),
        "Description": f"Execution role for Lambda function {config.function_name}",
    }
    if config.tags:
        request["Tags"] = [{"Key": k, "Value": v} for k, v in config.tags.items()]
    return request


def build_inline_policy_request(config: FunctionConfig) -> Optional[Dict[str, Any]]:
    """``iam.put_role_policy`` kwargs, or None when no statements are configured."""
    if not config.policy_statements:
        return None

    document = {
        "Version": "2012-10-17",
        "Statement": [s.to_document() for s in config.policy_statements],
    }
    return {
        "RoleName": config.role_name,
        "PolicyName": config.inline_policy_name,
        "PolicyDocument": json.dumps(document),
    }


def build_function_request(config: FunctionConfig, role_arn: str,
                           zip_bytes: Optional[bytes] = None) -> Dict[str, Any]:
    """``lambda.create_function`` kwargs."""
    request: Dict[str, Any] = {
        "FunctionName": config.function_name,
        "Role": role_arn,
        "Description": config.description,
        "Timeout": config.timeout,
        "MemorySize": config.memory_size,
        "Architectures": list(config.architectures),
        "Publish": False,
    }

    if config.image_uri:
        request["PackageType"] = "Image"
        request["Code"] = {"ImageUri": config.image_uri}
    else:
        if zip_bytes is None:
            raise ValidationError(f"Function {config.function_name} needs a zip package")
        request["PackageType"] = "Zip"
        request["Runtime"] = config.runtime
        request["Handler"] = config.handler
        request["Code"] = {"ZipFile": zip_bytes}

    if config.environment:
        request["Environment"] = {"Variables": dict(config.environment)}
    if config.tags:
        request["Tags"] = dict(config.tags)
    return request


def build_configuration_update(config: FunctionConfig, role_arn: str) -> Dict[str, Any]:
    """``lambda.update_function_configuration`` kwargs for an existing function."""
    request: Dict[str, Any] = {
        "FunctionName": config.function_name,
        "Role": role_arn,
        "Description": config.description,
        "Timeout": config.timeout,
        "MemorySize": config.memory_size,
        "Environment": {"Variables": dict(config.environment)},
    }
    if not config.image_uri:
        request["Runtime"] = config.runtime
        request["Handler"] = config.handler
    return request


def build_function_url_request(config: FunctionConfig) -> Optional[Dict[str, Any]]:
    """``lambda.create_function_url_config`` kwargs, or None without a URL."""
    if config.function_url is None:
        return None

    request: Dict[str, Any] = {
        "FunctionName": config.function_name,
        "AuthType": config.function_url.auth_type,
    }
    cors = config.function_url.cors
    if cors is not None:
        cors_request: Dict[str, Any] = {
            "AllowCredentials": cors.allow_credentials,
            "AllowOrigins": list(cors.allow_origins),
            "AllowMethods": list(cors.allow_methods),
        }
        if cors.allow_headers:
            cors_request["AllowHeaders"] = list(cors.allow_headers)
        if cors.expose_headers:
            cors_request["ExposeHeaders"] = list(cors.expose_headers)
        if cors.max_age is not None:
            cors_request["MaxAge"] = cors.max_age
        request["Cors"] = cors_request
    return request


def build_public_url_permission(config: FunctionConfig) -> Optional[Dict[str, Any]]:
    """``lambda.add_permission`` kwargs letting anyone invoke a NONE-auth URL."""
    if config.function_url is None or config.function_url.auth_type != "NONE":
        return None
    return {
        "FunctionName": config.function_name,
        "StatementId": PUBLIC_URL_STATEMENT_ID,
        "Action": "lambda:InvokeFunctionUrl",
        "Principal": "*",
        "FunctionUrlAuthType": "NONE",
    }


def build_package(package_path: str) -> bytes:
    """Return zip bytes for a directory (zipped in memory) or an existing .zip."""
    path = Path(package_path)
    if not path.exists():
        raise ValidationError(f"Function package not found: {package_path}")

    if path.is_file():
        if path.suffix != ".zip":
            raise ValidationError(f"Function package must be a directory or .zip file: {package_path}")
        return path.read_bytes()

    zip_buffer = io.BytesIO()
    with zipfile.ZipFile(zip_buffer, 'w', zipfile.ZIP_DEFLATED) as zip_file:
        for file_path in sorted(path.rglob('*')):
            if file_path.is_dir() or '__pycache__' in file_path.parts:
                continue
            zip_file.write(file_path, file_path.relative_to(path).as_posix())

    zip_buffer.seek(0)
    return zip_buffer.read()


def plan_function(config: FunctionConfig) -> FunctionPlan:
    inline = build_inline_policy_request(config)
    return FunctionPlan(
        function_name=config.function_name,
        package_type="Image" if config.image_uri else "Zip",
        role_name=config.role_name,
        create_role=config.creates_role,
        attached_policy_arns=attached_policy_arns(config),
        inline_policy=inline["PolicyName"] if inline else None,
        function_url=config.function_url is not None,
        public_url=build_public_url_permission(config) is not None,
    )
