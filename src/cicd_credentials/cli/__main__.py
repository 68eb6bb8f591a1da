#!/usr/bin/env python3
"""Main CLI entry point for CI/CD credential provisioning."""

import sys
import logging
import functools
from typing import Any, Callable, Optional

import click
from botocore.exceptions import BotoCoreError, ClientError

from ..config import ProvisioningConfig, load_config
from ..constructs.credentials_stack import render_template
from ..deployment.orchestrator import DeploymentOrchestrator
from ..deployment.report import render_outputs, render_plan
from ..exceptions import CredentialsError
from ..iam.identity import CallerIdentity, resolve_identity
from ..iam.policies import get_ecr_push_policy
from ..provisioning.plan import Plan
from ..session import AwsContext


def handle_errors(func: Callable) -> Callable:
    """Turn provisioning and AWS errors into a message and exit code 1."""
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (CredentialsError, ClientError, BotoCoreError) as e:
            click.echo(f"❌ {e}", err=True)
            sys.exit(1)
    return wrapper


def _orchestrator(ctx: click.Context) -> DeploymentOrchestrator:
    return DeploymentOrchestrator(ctx.obj["config"])


@click.group()
@click.version_option(package_name="cicd-credentials")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="YAML configuration file")
@click.option("--profile", help="AWS profile to use")
@click.option("--region", "-r", help="AWS region")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], profile: Optional[str], region: Optional[str], verbose: bool) -> None:
    """Provision least-privilege CI/CD credentials for ECR image pushes."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(config_path, aws_profile=profile, aws_region=region)
    except CredentialsError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
@click.pass_context
@handle_errors
def deploy(ctx: click.Context) -> None:
    """Initialize, plan, apply and print setup instructions."""
    result = _orchestrator(ctx).run()
    if not result.success:
        sys.exit(1)


@cli.command()
@click.pass_context
@handle_errors
def init(ctx: click.Context) -> None:
    """Verify AWS credentials and create the state file."""
    orchestrator = _orchestrator(ctx)
    orchestrator.initialize()
    click.echo(f"✅ Initialized state at {orchestrator.store.path}")
    click.echo(f"   Account: {orchestrator.identity.account_id}")
    click.echo(f"   Region: {orchestrator.identity.region}")


@cli.command()
@click.option("--out", "-o", type=click.Path(dir_okay=False), help="Plan artifact path")
@click.option("--destroy", is_flag=True, help="Plan deletion of every managed resource")
@click.pass_context
@handle_errors
def plan(ctx: click.Context, out: Optional[str], destroy: bool) -> None:
    """Show the changes an apply would make and save them."""
    orchestrator = _orchestrator(ctx)
    orchestrator.initialize(create_state=False)
    result = orchestrator.plan(out, destroy=destroy)
    for line in render_plan(result):
        click.echo(line)
    click.echo(f"\nSaved plan to {out or ctx.obj['config'].plan_path}")


@cli.command()
@click.argument("plan_file", required=False, type=click.Path(exists=True, dir_okay=False))
@click.pass_context
@handle_errors
def apply(ctx: click.Context, plan_file: Optional[str]) -> None:
    """Apply a saved plan (default: the plan written by 'plan')."""
    orchestrator = _orchestrator(ctx)
    orchestrator.initialize(create_state=False)
    plan = Plan.load(plan_file or ctx.obj["config"].plan_path)
    orchestrator.apply(plan)
    if plan.destroy:
        click.echo("✅ Destroyed CI/CD credential resources")
        return

    click.echo("✅ Apply complete")
    orchestrator.report()


@cli.command()
@click.argument("name", required=False)
@click.option("--raw", is_flag=True, help="Print only the value, unmasked")
@click.pass_context
@handle_errors
def output(ctx: click.Context, name: Optional[str], raw: bool) -> None:
    """Show output values; sensitive values need NAME and --raw."""
    orchestrator = _orchestrator(ctx)
    reveal = raw and name == "secret_access_key"
    outputs = orchestrator.outputs(reveal_secret=reveal)

    if name is None:
        for line in render_outputs(outputs):
            click.echo(line)
        return

    if name not in outputs:
        raise click.BadParameter(f"Unknown output: {name}", param_hint="NAME")

    value = outputs[name]
    if value is None:
        click.echo(f"❌ Output {name} is not available", err=True)
        sys.exit(1)

    if raw:
        click.echo(value)
    else:
        click.echo(render_outputs({name: value})[0])


@cli.command()
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.pass_context
@handle_errors
def destroy(ctx: click.Context, force: bool) -> None:
    """Delete the user, its key, the policy and the parameters."""
    config: ProvisioningConfig = ctx.obj["config"]
    if not force:
        click.confirm(f"⚠️  Delete CI/CD resources for {config.user_name}?", abort=True)

    _orchestrator(ctx).destroy()


@cli.command()
@click.option("--account-id", help="Account id to render for (skips the AWS lookup)")
@click.pass_context
@handle_errors
def policy(ctx: click.Context, account_id: Optional[str]) -> None:
    """Print the ECR push policy document."""
    config: ProvisioningConfig = ctx.obj["config"]
    if account_id and config.aws_region:
        identity = CallerIdentity(account_id=account_id, region=config.aws_region, arn="")
    else:
        identity = resolve_identity(AwsContext(region=config.aws_region, profile=config.aws_profile))
    click.echo(get_ecr_push_policy(identity))


@cli.command()
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    help="Output format",
)
@click.pass_context
def template(ctx: click.Context, output_format: str) -> None:
    """Export the credential resources as a CloudFormation template."""
    click.echo(render_template(ctx.obj["config"], output_format))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
