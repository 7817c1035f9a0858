import io
import json
import zipfile

import pytest
from pydantic import ValidationError as PydanticValidationError

from infra_stack.aws.function import (
    BASIC_EXECUTION_POLICY_ARN,
    FunctionConfig,
    attached_policy_arns,
    build_configuration_update,
    build_function_request,
    build_function_url_request,
    build_inline_policy_request,
    build_package,
    build_public_url_permission,
    build_role_request,
    plan_function,
)
from infra_stack.exceptions import ValidationError
from tests.consts import TEST_FUNCTION_NAME

ROLE_ARN = "arn:aws:iam::123456789012:role/existing-role"
QUEUE_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonSQSFullAccess"


def make_config(**overrides):
    values = dict(function_name=TEST_FUNCTION_NAME, handler="app.handler", package_path="./webhook")
    values.update(overrides)
    return FunctionConfig(**values)


def test_exactly_one_code_source_is_required():
    with pytest.raises(PydanticValidationError, match="Exactly one"):
        FunctionConfig(function_name=TEST_FUNCTION_NAME, handler="app.handler")
    with pytest.raises(PydanticValidationError, match="Exactly one"):
        make_config(image_uri="123456789012.dkr.ecr.us-east-1.amazonaws.com/webhook:1")


def test_zip_package_needs_handler():
    with pytest.raises(PydanticValidationError, match="handler"):
        make_config(handler=None)


@pytest.mark.parametrize("overrides", [
    {"function_name": "bad name"},
    {"memory_size": 64},
    {"timeout": 901},
    {"architectures": ["sparc"]},
])
def test_invalid_function_config(overrides):
    with pytest.raises(PydanticValidationError):
        make_config(**overrides)


def test_role_name():
    assert make_config().role_name == f"{TEST_FUNCTION_NAME}-role"
    assert make_config(role_arn=ROLE_ARN).role_name == "existing-role"


def test_role_request_for_created_role():
    request = build_role_request(make_config(tags={"team": "payments"}))
    trust = json.loads(request["AssumeRolePolicyDocument"])

    assert request["RoleName"] == f"{TEST_FUNCTION_NAME}-role"
    assert trust["Statement"][0]["Principal"] == {"Service": "lambda.amazonaws.com"}
    assert request["Tags"] == [{"Key": "team", "Value": "payments"}]


def test_no_role_request_for_existing_role():
    assert build_role_request(make_config(role_arn=ROLE_ARN)) is None


def test_basic_execution_is_attached_to_created_roles_only():
    assert attached_policy_arns(make_config(managed_policy_arns=[QUEUE_POLICY_ARN])) == [
        BASIC_EXECUTION_POLICY_ARN, QUEUE_POLICY_ARN,
    ]
    assert attached_policy_arns(make_config(role_arn=ROLE_ARN)) == []


def test_basic_execution_is_not_duplicated():
    config = make_config(managed_policy_arns=[BASIC_EXECUTION_POLICY_ARN])
    assert attached_policy_arns(config) == [BASIC_EXECUTION_POLICY_ARN]


def test_inline_policy_only_with_statements():
    assert build_inline_policy_request(make_config()) is None

    config = make_config(policy_statements=[
        {"actions": ["sqs:SendMessage"], "resources": ["arn:aws:sqs:us-east-1:123456789012:orders"]},
        {"sid": "ReadObjects", "actions": ["s3:GetObject"]},
    ])
    request = build_inline_policy_request(config)
    document = json.loads(request["PolicyDocument"])

    assert request["PolicyName"] == f"{TEST_FUNCTION_NAME}-policy"
    assert request["RoleName"] == f"{TEST_FUNCTION_NAME}-role"
    assert document["Statement"][0] == {
        "Effect": "Allow",
        "Action": ["sqs:SendMessage"],
        "Resource": ["arn:aws:sqs:us-east-1:123456789012:orders"],
    }
    assert document["Statement"][1]["Sid"] == "ReadObjects"
    assert document["Statement"][1]["Resource"] == ["*"]


def test_zip_function_request():
    config = make_config(environment={"STAGE": "prod", "WORKERS": 2}, tags={"team": "payments"})
    request = build_function_request(config, ROLE_ARN, b"zip-bytes")

    assert request["PackageType"] == "Zip"
    assert request["Runtime"] == "python3.12"
    assert request["Handler"] == "app.handler"
    assert request["Code"] == {"ZipFile": b"zip-bytes"}
    assert request["Role"] == ROLE_ARN
    assert request["Environment"] == {"Variables": {"STAGE": "prod", "WORKERS": "2"}}
    assert request["Tags"] == {"team": "payments"}


def test_zip_function_request_needs_bytes():
    with pytest.raises(ValidationError):
        build_function_request(make_config(), ROLE_ARN)


def test_image_function_request():
    image = "123456789012.dkr.ecr.us-east-1.amazonaws.com/webhook:1"
    config = FunctionConfig(function_name=TEST_FUNCTION_NAME, image_uri=image)
    request = build_function_request(config, ROLE_ARN)

    assert request["PackageType"] == "Image"
    assert request["Code"] == {"ImageUri": image}
    assert "Runtime" not in request
    assert "Handler" not in request
    assert "Environment" not in request


def test_configuration_update():
    request = build_configuration_update(make_config(timeout=60), ROLE_ARN)

    assert request["Timeout"] == 60
    assert request["Handler"] == "app.handler"
    assert request["Environment"] == {"Variables": {}}


def test_function_url_request():
    assert build_function_url_request(make_config()) is None

    config = make_config(function_url={
        "auth_type": "NONE",
        "cors": {"allow_origins": ["https://example.com"], "allow_headers": ["content-type"], "max_age": 300},
    })
    request = build_function_url_request(config)

    assert request["AuthType"] == "NONE"
    assert request["Cors"] == {
        "AllowCredentials": False,
        "AllowOrigins": ["https://example.com"],
        "AllowMethods": ["*"],
        "AllowHeaders": ["content-type"],
        "MaxAge": 300,
    }


def test_public_permission_only_for_unauthenticated_url():
    assert build_public_url_permission(make_config()) is None
    assert build_public_url_permission(make_config(function_url={})) is None

    permission = build_public_url_permission(make_config(function_url={"auth_type": "NONE"}))
    assert permission["Principal"] == "*"
    assert permission["Action"] == "lambda:InvokeFunctionUrl"
    assert permission["FunctionUrlAuthType"] == "NONE"


def test_build_package_from_directory(function_package, tmp_path):
    cache = tmp_path / "webhook" / "__pycache__"
    cache.mkdir()
    (cache / "app.cpython-312.pyc").write_bytes(b"\x00")

    with zipfile.ZipFile(io.BytesIO(build_package(function_package))) as archive:
        assert archive.namelist() == ["app.py"]


def test_build_package_from_zip(tmp_path):
    archive = tmp_path / "webhook.zip"
    archive.write_bytes(b"PK-zip")
    assert build_package(str(archive)) == b"PK-zip"


def test_build_package_rejects_bad_paths(tmp_path):
    with pytest.raises(ValidationError, match="not found"):
        build_package(str(tmp_path / "missing"))

    other = tmp_path / "app.py"
    other.write_text("")
    with pytest.raises(ValidationError, match=".zip"):
        build_package(str(other))


def test_plan_function():
    config = make_config(
        managed_policy_arns=[QUEUE_POLICY_ARN],
        policy_statements=[{"actions": ["sqs:SendMessage"]}],
        function_url={"auth_type": "NONE"},
    )

    assert plan_function(config).to_dict() == {
        "function_name": TEST_FUNCTION_NAME,
        "package_type": "Zip",
        "role_name": f"{TEST_FUNCTION_NAME}-role",
        "create_role": True,
        "attached_policy_arns": [BASIC_EXECUTION_POLICY_ARN, QUEUE_POLICY_ARN],
        "inline_policy": f"{TEST_FUNCTION_NAME}-policy",
        "function_url": True,
        "public_url": True,
    }
