"""Pipeline role commands."""

import functools
import json
import os
import sys
from pathlib import Path
from typing import Dict, Optional, Tuple

import click
from botocore.exceptions import BotoCoreError, ClientError

from ..config import (
    CONFIG_ENV_VAR,
    ConfigurationError,
    RoleConfig,
    build_role_config,
    load_role_config,
)
from ..constructs.role import build_template
from ..iam.policies import get_role_policies
from ..iam.role_manager import RoleProvisioner, RoleProvisioningError


def _parse_tags(ctx, param, values: Tuple[str, ...]) -> Dict[str, str]:
    tags = {}
    for value in values:
        key, sep, tag_value = value.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{value}'")
        tags[key] = tag_value
    return tags


def role_options(func):
    """Options shared by every command that needs a role configuration."""
    options = [
        click.option("--config", "-c", "config_file", type=click.Path(dir_okay=False),
                     help="Role configuration YAML file"),
        click.option("--name", "-n", help="Role name (overrides the config file)"),
        click.option("--description", "-d", help="Role description"),
        click.option("--tag", "-t", "tags", multiple=True, callback=_parse_tags,
                     help="Extra tag as KEY=VALUE (repeatable)"),
        click.option("--s3-bucket", "s3_buckets", multiple=True, help="S3 bucket ARN to grant access to"),
        click.option("--sns-topic", "sns_topics", multiple=True, help="SNS topic ARN to grant publish on"),
        click.option("--kms-key", "kms_keys", multiple=True, help="KMS key ARN to grant usage of"),
        click.option("--region", "-r", help="AWS region"),
        click.option("--profile", "-p", help="AWS profile to use"),
    ]

    @functools.wraps(func)
    def wrapper(config_file, name, description, tags, s3_buckets, sns_topics, kms_keys,
                region, profile, **kwargs):
        try:
            config = _resolve_config(config_file, name, description, tags, s3_buckets,
                                     sns_topics, kms_keys, region, profile)
        except ConfigurationError as e:
            click.echo(f"❌ {e}", err=True)
            sys.exit(1)
        return func(config, **kwargs)

    for option in reversed(options):
        wrapper = option(wrapper)
    return wrapper


def _resolve_config(
    config_file: Optional[str],
    name: Optional[str],
    description: Optional[str],
    tags: Dict[str, str],
    s3_buckets: Tuple[str, ...],
    sns_topics: Tuple[str, ...],
    kms_keys: Tuple[str, ...],
    region: Optional[str],
    profile: Optional[str],
) -> RoleConfig:
    """Merge the config file (if any) with command-line values."""
    if not config_file and not name:
        config_file = os.environ.get(CONFIG_ENV_VAR)

    if config_file:
        config = load_role_config(
            config_file, name=name, description=description, aws_region=region, profile=profile
        )
        config.tags.update(tags)
        config.s3_bucket_arns.extend(s3_buckets)
        config.sns_topic_arns.extend(sns_topics)
        config.kms_key_arns.extend(kms_keys)
        return config

    if not name:
        raise ConfigurationError(f"Either --config, --name or ${CONFIG_ENV_VAR} is required")

    return build_role_config(
        name=name,
        description=description or "",
        tags=tags,
        s3_bucket_arns=s3_buckets,
        sns_topic_arns=sns_topics,
        kms_key_arns=kms_keys,
        aws_region=region,
        profile=profile,
    )


def _fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)


@click.group()
def main():
    """CodeBuild Lambda deployment role commands."""
    pass


@main.command()
@role_options
def policies(config: RoleConfig):
    """Print the composed policy documents as JSON."""
    click.echo(get_role_policies(config))


@main.command()
@role_options
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the template to a file")
@click.option("--keep-live-tags/--no-keep-live-tags", default=False,
              help="Read the live role's creation tags so they are preserved")
def template(config: RoleConfig, output: Optional[str], keep_live_tags: bool):
    """Render the CloudFormation template for the role."""
    try:
        provisioner = RoleProvisioner(config)
        existing_tags = None
        if keep_live_tags:
            live = provisioner.describe()
            existing_tags = live["Tags"] if live else None
        rendered = build_template(config, provisioner.identity, existing_tags=existing_tags).to_json()
    except (RoleProvisioningError, ClientError, BotoCoreError) as e:
        _fail(f"Failed to render template: {e}")

    if output:
        Path(output).write_text(rendered)
        click.echo(f"✅ Template written to {output}")
    else:
        click.echo(rendered)


@main.command()
@role_options
def plan(config: RoleConfig):
    """Show what apply would change."""
    try:
        reconcile_plan = RoleProvisioner(config).plan()
    except (RoleProvisioningError, ClientError, BotoCoreError) as e:
        _fail(str(e))

    if not reconcile_plan.has_changes:
        click.echo(f"✅ Role {config.name} is up to date")
        return

    click.echo(f"📋 Changes for role {config.name}:")
    for line in reconcile_plan.summary():
        click.echo(f"   {line}")


@main.command()
@role_options
@click.option("--yes", "-y", is_flag=True, help="Apply without confirmation")
def apply(config: RoleConfig, yes: bool):
    """Create or update the role and its policies."""
    try:
        provisioner = RoleProvisioner(config)
        reconcile_plan = provisioner.plan()

        if reconcile_plan.has_changes:
            click.echo(f"📋 Changes for role {config.name}:")
            for line in reconcile_plan.summary():
                click.echo(f"   {line}")
            if not yes and not click.confirm("Apply these changes?"):
                click.echo("Aborted")
                return

        click.echo(f"🔧 Reconciling role {config.name}...")
        result = provisioner.apply()
    except (RoleProvisioningError, ClientError, BotoCoreError) as e:
        _fail(str(e))

    click.echo(f"✅ Role {result.role_arn}")
    for policy_name in result.policy_names:
        click.echo(f"   policy: {policy_name}")


@main.command()
@role_options
@click.option("--yes", "-y", is_flag=True, help="Delete without confirmation")
def destroy(config: RoleConfig, yes: bool):
    """Delete the role and its inline policies."""
    if not yes and not click.confirm(f"Delete role {config.name}?"):
        click.echo("Aborted")
        return

    try:
        deleted = RoleProvisioner(config).destroy()
    except (RoleProvisioningError, ClientError, BotoCoreError) as e:
        _fail(str(e))

    if deleted:
        click.echo(f"✅ Deleted role {config.name}")
    else:
        click.echo(f"⚠️  Role {config.name} not found")


@main.command()
@role_options
def show(config: RoleConfig):
    """Show the live role."""
    try:
        live = RoleProvisioner(config).describe()
    except (RoleProvisioningError, ClientError, BotoCoreError) as e:
        _fail(str(e))

    if live is None:
        _fail(f"Role {config.name} not found")

    click.echo(json.dumps(live, indent=2, default=str))


if __name__ == "__main__":
    main()
