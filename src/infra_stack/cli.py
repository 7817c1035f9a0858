# cli.py
import json
import logging

import click

from infra_stack.config.settings import get_settings
from infra_stack.exceptions import DeploymentError, ValidationError

logger = logging.getLogger(__name__)

EXIT_DEPLOYMENT_ERROR = 1
EXIT_VALIDATION_ERROR = 2


def _configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _load(ctx, stack_file):
    from infra_stack.config.stack import load_stack
    try:
        return load_stack(stack_file)
    except ValidationError as e:
        print(f"❌ {e}")
        ctx.exit(EXIT_VALIDATION_ERROR)


def _require_function(ctx, stack):
    if stack.function is None:
        print(f"❌ Stack {stack.prefix} has no function block")
        ctx.exit(EXIT_VALIDATION_ERROR)
    return stack.function


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL from settings")
def cli(log_level):
    """Render Kubernetes/KEDA manifests and deploy Lambda functions"""
    _configure_logging(log_level or get_settings().log_level)


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    for key, value in settings.summary().items():
        print(f"  {key}: {value}")


stack_option = click.option(
    "--stack", "stack_file",
    required=True,
    type=click.Path(dir_okay=False),
    help="Path to the stack YAML file",
)


@cli.command()
@stack_option
@click.option("--out-dir", type=click.Path(file_okay=False), default=None,
              help="Write one file per manifest instead of printing")
@click.pass_context
def render(ctx, stack_file, out_dir):
    """Render the stack's Kubernetes manifests as YAML"""
    from infra_stack.config.stack import render_stack
    from infra_stack.kubernetes.manifests import dump_manifests, write_manifests

    stack = _load(ctx, stack_file)
    try:
        manifests = render_stack(stack)
    except ValidationError as e:
        print(f"❌ {e}")
        ctx.exit(EXIT_VALIDATION_ERROR)

    if out_dir:
        for path in write_manifests(manifests, out_dir):
            print(f"✅ {path}")
    else:
        print(dump_manifests(manifests), end="")


@cli.command()
@stack_option
@click.pass_context
def compose_triggers(ctx, stack_file):
    """Print the composed KEDA triggers as JSON"""
    from infra_stack.config.stack import build_scaling_policy

    stack = _load(ctx, stack_file)
    try:
        policy = build_scaling_policy(stack)
    except ValidationError as e:
        print(f"❌ {e}")
        ctx.exit(EXIT_VALIDATION_ERROR)

    triggers = list(policy.triggers) if policy else []
    print(json.dumps(triggers, indent=2))


@cli.command()
@stack_option
@click.pass_context
def plan_function(ctx, stack_file):
    """Show what deploy-function would create"""
    from infra_stack.aws.function import plan_function as build_plan

    stack = _load(ctx, stack_file)
    config = _require_function(ctx, stack)
    print(json.dumps(build_plan(config).to_dict(), indent=2))


@cli.command()
@stack_option
@click.pass_context
def deploy_function(ctx, stack_file):
    """Deploy the stack's Lambda function, IAM role and URL"""
    from infra_stack.aws.function_deploy import FunctionDeployer

    stack = _load(ctx, stack_file)
    config = _require_function(ctx, stack)
    print(f"Deploying Lambda function {config.function_name}...")

    try:
        result = FunctionDeployer(config).deploy()
    except ValidationError as e:
        print(f"❌ {e}")
        ctx.exit(EXIT_VALIDATION_ERROR)
    except DeploymentError as e:
        print(f"❌ Lambda deployment failed: {e}")
        ctx.exit(EXIT_DEPLOYMENT_ERROR)

    print(f"✅ Lambda function deployed: {result['function_arn']}")
    print(f"Function URL: {result.get('function_url') or 'N/A'}")


@cli.command()
@stack_option
@click.pass_context
def destroy_function(ctx, stack_file):
    """Delete the resources recorded for the stack's Lambda function"""
    from infra_stack.aws.function_deploy import FunctionDeployer

    stack = _load(ctx, stack_file)
    config = _require_function(ctx, stack)

    try:
        deleted = FunctionDeployer(config).destroy()
    except DeploymentError as e:
        print(f"❌ Destroy failed: {e}")
        ctx.exit(EXIT_DEPLOYMENT_ERROR)

    print(f"✅ Deleted {sum(deleted.values())} resource(s) for {config.function_name}")


if __name__ == "__main__":
    cli()
