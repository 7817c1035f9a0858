"""
Lambda function deployment.

Applies the requests built in aws/function.py with create-or-update
semantics, records what it created in the state file, and tears those
resources down again in reverse order.
"""

import logging
import time
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from infra_stack.aws.aws_clients import get_iam_client, get_lambda_client
from infra_stack.aws.function import (
    FunctionConfig,
    attached_policy_arns,
    build_configuration_update,
    build_function_request,
    build_function_url_request,
    build_inline_policy_request,
    build_package,
    build_public_url_permission,
    build_role_request,
)
from infra_stack.config.settings import Settings, get_settings
from infra_stack.exceptions import DeploymentError
from infra_stack.state.state_manager import StateManager
from infra_stack.utils.decorators import error_code, log_execution_time, retry_on_aws_error

logger = logging.getLogger(__name__)

ROLE = "iam_role"
POLICY_ATTACHMENT = "iam_policy_attachment"
INLINE_POLICY = "iam_inline_policy"
FUNCTION = "lambda_function"
FUNCTION_URL = "lambda_function_url"
PERMISSION = "lambda_permission"

# Destroy order: the reverse of creation
TEARDOWN_ORDER = [PERMISSION, FUNCTION_URL, FUNCTION, INLINE_POLICY, POLICY_ATTACHMENT, ROLE]

_NOT_FOUND_CODES = ("ResourceNotFoundException", "NoSuchEntity")
UPDATE_POLL_ATTEMPTS = 30
UPDATE_POLL_INTERVAL = 2


class FunctionDeployer:
    """Deploy one Lambda function together with its IAM role and URL."""

    def __init__(self, config: FunctionConfig, lambda_client=None, iam_client=None,
                 state: Optional[StateManager] = None, settings: Optional[Settings] = None):
        self.config = config
        self.settings = settings or get_settings()
        self.lambda_client = lambda_client or get_lambda_client()
        self.iam_client = iam_client or get_iam_client()
        self.state = state or StateManager(self.settings.state_file)

        logger.info(f"Function deployer initialized for: {config.function_name}")

    # ------------------------------------------------------------------
    # state helpers

    def _record(self, resource_type: str, resource_id: str, **data):
        self.state.record_resource(
            resource_type, resource_id,
            {"function_name": self.config.function_name, **data}
        )

    def _owned(self, resource_type: str) -> Dict[str, Dict[str, Any]]:
        """Recorded resources of one type that belong to this function."""
        return self.state.find_resources(resource_type, function_name=self.config.function_name)

    # ------------------------------------------------------------------
    # IAM

    def ensure_role(self) -> str:
        """Return the execution role ARN, creating the role when configured to."""
        role_name = self.config.role_name

        if not self.config.creates_role:
            response = self.iam_client.get_role(RoleName=role_name)
            logger.info(f"Using existing IAM role: {role_name}")
            return response['Role']['Arn']

        try:
            response = self.iam_client.get_role(RoleName=role_name)
            logger.info(f"Using existing Lambda role: {role_name}")
            return response['Role']['Arn']
        except ClientError as e:
            if error_code(e) != 'NoSuchEntity':
                raise

        response = self.iam_client.create_role(**build_role_request(self.config))
        role_arn = response['Role']['Arn']
        self._record(ROLE, role_name, arn=role_arn)
        logger.info(f"Created Lambda role: {role_name}")
        return role_arn

    def attach_policies(self) -> None:
        """Attach managed policies and sync the inline policy."""
        role_name = self.config.role_name

        response = self.iam_client.list_attached_role_policies(RoleName=role_name)
        already_attached = {p['PolicyArn'] for p in response.get('AttachedPolicies', [])}

        for policy_arn in attached_policy_arns(self.config):
            if policy_arn in already_attached:
                continue
            self.iam_client.attach_role_policy(RoleName=role_name, PolicyArn=policy_arn)
            self._record(POLICY_ATTACHMENT, f"{role_name}:{policy_arn}",
                         role_name=role_name, policy_arn=policy_arn)
            logger.info(f"Attached {policy_arn} to {role_name}")

        inline_request = build_inline_policy_request(self.config)
        if inline_request is not None:
            self.iam_client.put_role_policy(**inline_request)
            self._record(INLINE_POLICY, inline_request['PolicyName'], role_name=role_name)
            logger.info(f"Put inline policy {inline_request['PolicyName']} on {role_name}")
        else:
            # statements were removed since the last deploy
            for policy_name, data in self._owned(INLINE_POLICY).items():
                self._delete_inline_policy(policy_name, data)

    # ------------------------------------------------------------------
    # Lambda

    def _wait_until_updated(self) -> None:
        """Poll until Lambda accepts further updates to the function."""
        for _ in range(UPDATE_POLL_ATTEMPTS):
            response = self.lambda_client.get_function_configuration(
                FunctionName=self.config.function_name
            )
            status = response.get('LastUpdateStatus', 'Successful')
            if status == 'Successful':
                return
            if status == 'Failed':
                raise DeploymentError(
                    f"Update of {self.config.function_name} failed: "
                    f"{response.get('LastUpdateStatusReason', 'unknown reason')}",
                    resource=self.config.function_name,
                )
            time.sleep(UPDATE_POLL_INTERVAL)

        raise DeploymentError(
            f"Timed out waiting for {self.config.function_name} to finish updating",
            resource=self.config.function_name,
        )

    def _function_exists(self) -> bool:
        try:
            self.lambda_client.get_function(FunctionName=self.config.function_name)
            return True
        except ClientError as e:
            if error_code(e) != 'ResourceNotFoundException':
                raise
            return False

    def deploy_function(self, role_arn: str, zip_bytes: Optional[bytes] = None) -> Dict[str, Any]:
        """Create the function, or update code and configuration if it exists."""
        function_name = self.config.function_name
        with_propagation_retry = retry_on_aws_error(
            codes=['InvalidParameterValueException'],
            message_contains='role',
            max_attempts=self.settings.role_propagation_attempts,
            delay=self.settings.role_propagation_delay,
        )

        if self._function_exists():
            logger.info(f"Updating existing Lambda function: {function_name}")
            if self.config.image_uri:
                self.lambda_client.update_function_code(
                    FunctionName=function_name, ImageUri=self.config.image_uri
                )
            else:
                self.lambda_client.update_function_code(
                    FunctionName=function_name, ZipFile=zip_bytes
                )
            self._wait_until_updated()
            response = with_propagation_retry(self.lambda_client.update_function_configuration)(
                **build_configuration_update(self.config, role_arn)
            )
        else:
            logger.info(f"Creating new Lambda function: {function_name}")
            request = build_function_request(self.config, role_arn, zip_bytes)
            response = with_propagation_retry(self.lambda_client.create_function)(**request)

        self._record(FUNCTION, function_name, arn=response['FunctionArn'])
        logger.info(f"Lambda function deployed: {function_name}")
        return {
            'function_name': function_name,
            'function_arn': response['FunctionArn'],
        }

    def configure_function_url(self) -> Optional[str]:
        """Create or update the function URL; remove it when no longer configured."""
        function_name = self.config.function_name
        url_request = build_function_url_request(self.config)

        if url_request is None:
            for resource_id, data in self._owned(PERMISSION).items():
                self._remove_permission(resource_id, data)
            for resource_id, data in self._owned(FUNCTION_URL).items():
                self._delete_function_url(resource_id, data)
            return None

        try:
            response = self.lambda_client.create_function_url_config(**url_request)
            logger.info(f"Created function URL for {function_name}")
        except ClientError as e:
            if error_code(e) != 'ResourceConflictException':
                raise
            response = self.lambda_client.update_function_url_config(**url_request)
            logger.info(f"Updated function URL for {function_name}")

        function_url = response['FunctionUrl']
        self._record(FUNCTION_URL, function_name, url=function_url)

        permission = build_public_url_permission(self.config)
        if permission is not None:
            try:
                self.lambda_client.add_permission(**permission)
                logger.info(f"Allowed public invocation of {function_name} URL")
            except ClientError as e:
                if error_code(e) != 'ResourceConflictException':
                    raise
            self._record(PERMISSION, f"{function_name}:{permission['StatementId']}",
                         statement_id=permission['StatementId'])
        else:
            for resource_id, data in self._owned(PERMISSION).items():
                self._remove_permission(resource_id, data)

        return function_url

    @log_execution_time
    def deploy(self) -> Dict[str, Any]:
        """Deploy role, policies, function and URL.

        Returns:
            Dict with role_arn, function_name, function_arn and function_url
            (None when no URL is configured).

        Raises:
            DeploymentError: When any AWS call fails.
        """
        function_name = self.config.function_name
        zip_bytes = None
        if self.config.package_path:
            zip_bytes = build_package(self.config.package_path)

        self.state.start_deployment(f"{function_name}-{int(time.time())}")
        try:
            role_arn = self.ensure_role()
            self.attach_policies()
            result = self.deploy_function(role_arn, zip_bytes)
            function_url = self.configure_function_url()
        except ClientError as e:
            logger.error(f"Failed to deploy Lambda function {function_name}: {e}")
            self.state.mark_deployment_failed(str(e))
            raise DeploymentError(f"Failed to deploy {function_name}: {e}", resource=function_name) from e
        except Exception as e:
            logger.error(f"Deployment of {function_name} stopped: {e}")
            self.state.mark_deployment_failed(str(e) or type(e).__name__)
            raise

        self.state.mark_deployment_complete()
        return {
            'role_arn': role_arn,
            **result,
            'function_url': function_url,
        }

    # ------------------------------------------------------------------
    # teardown

    def _ignore_missing(self, action, description: str) -> None:
        try:
            action()
            logger.info(f"Deleted {description}")
        except ClientError as e:
            if error_code(e) not in _NOT_FOUND_CODES:
                raise
            logger.info(f"{description} already gone")

    def _remove_permission(self, resource_id: str, data: Dict[str, Any]) -> None:
        self._ignore_missing(
            lambda: self.lambda_client.remove_permission(
                FunctionName=self.config.function_name, StatementId=data['statement_id']
            ),
            f"permission {data['statement_id']}",
        )
        self.state.remove_resource(PERMISSION, resource_id)

    def _delete_function_url(self, resource_id: str, data: Dict[str, Any]) -> None:
        self._ignore_missing(
            lambda: self.lambda_client.delete_function_url_config(FunctionName=resource_id),
            f"function URL for {resource_id}",
        )
        self.state.remove_resource(FUNCTION_URL, resource_id)

    def _delete_function(self, resource_id: str, data: Dict[str, Any]) -> None:
        self._ignore_missing(
            lambda: self.lambda_client.delete_function(FunctionName=resource_id),
            f"Lambda function {resource_id}",
        )
        self.state.remove_resource(FUNCTION, resource_id)

    def _delete_inline_policy(self, resource_id: str, data: Dict[str, Any]) -> None:
        self._ignore_missing(
            lambda: self.iam_client.delete_role_policy(
                RoleName=data['role_name'], PolicyName=resource_id
            ),
            f"inline policy {resource_id}",
        )
        self.state.remove_resource(INLINE_POLICY, resource_id)

    def _detach_policy(self, resource_id: str, data: Dict[str, Any]) -> None:
        self._ignore_missing(
            lambda: self.iam_client.detach_role_policy(
                RoleName=data['role_name'], PolicyArn=data['policy_arn']
            ),
            f"attachment of {data['policy_arn']}",
        )
        self.state.remove_resource(POLICY_ATTACHMENT, resource_id)

    def _delete_role(self, resource_id: str, data: Dict[str, Any]) -> None:
        self._ignore_missing(
            lambda: self.iam_client.delete_role(RoleName=resource_id),
            f"IAM role {resource_id}",
        )
        self.state.remove_resource(ROLE, resource_id)

    @log_execution_time
    def destroy(self) -> Dict[str, int]:
        """Delete every recorded resource of this function, newest kind first.

        Returns:
            Count of deleted resources per resource type.
        """
        handlers = {
            PERMISSION: self._remove_permission,
            FUNCTION_URL: self._delete_function_url,
            FUNCTION: self._delete_function,
            INLINE_POLICY: self._delete_inline_policy,
            POLICY_ATTACHMENT: self._detach_policy,
            ROLE: self._delete_role,
        }

        deleted = {}
        try:
            for resource_type in TEARDOWN_ORDER:
                owned = self._owned(resource_type)
                for resource_id, data in owned.items():
                    handlers[resource_type](resource_id, data)
                if owned:
                    deleted[resource_type] = len(owned)
        except ClientError as e:
            logger.error(f"Failed to destroy {self.config.function_name}: {e}")
            raise DeploymentError(
                f"Failed to destroy {self.config.function_name}: {e}",
                resource=self.config.function_name,
            ) from e

        if not self.state.list_resources():
            self.state.clear_state()
        logger.info(f"Destroyed {sum(deleted.values())} resource(s) for {self.config.function_name}")
        return deleted
