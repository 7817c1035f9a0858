import os

import boto3
import pytest
from moto import mock_aws

from infra_stack.aws.aws_clients import AWSClientManager
from infra_stack.config.settings import Settings, get_settings
from infra_stack.state.state_manager import StateManager
from tests.consts import TEST_REGION

# AWS managed policies (AWSLambdaBasicExecutionRole) are opt-in with moto
os.environ.setdefault("MOTO_IAM_LOAD_MANAGED_POLICIES", "true")


@pytest.fixture(autouse=True)
def reset_cached_settings():
    get_settings.cache_clear()
    AWSClientManager.reset()
    yield
    get_settings.cache_clear()
    AWSClientManager.reset()


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches for real ones."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture
def mocked_aws(aws_credentials):
    with mock_aws():
        yield


@pytest.fixture
def iam_client(mocked_aws):
    return boto3.client("iam", region_name=TEST_REGION)


@pytest.fixture
def lambda_client(mocked_aws):
    return boto3.client("lambda", region_name=TEST_REGION)


@pytest.fixture
def state_file(tmp_path):
    return str(tmp_path / "state.json")


@pytest.fixture
def state(state_file):
    return StateManager(state_file)


@pytest.fixture
def settings(state_file):
    return Settings(
        deployment_mode="aws-prod",
        aws_region=TEST_REGION,
        state_file=state_file,
        role_propagation_attempts=3,
        role_propagation_delay=0,
    )


@pytest.fixture
def function_package(tmp_path):
    package_dir = tmp_path / "webhook"
    package_dir.mkdir()
    (package_dir / "app.py").write_text("def handler(event, context):\n    return {'statusCode': 200}\n")
    return str(package_dir)
