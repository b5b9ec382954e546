#!/usr/bin/env python3
"""Main CLI entry point for the pipeline role utilities."""

import logging

import click

from .role import main as role_commands


@click.group()
@click.version_option(package_name="lambda-pipeline-role")
@click.option("--verbose", "-v", is_flag=True, help="Log every AWS call")
def cli(verbose: bool) -> None:
    """CodeBuild Lambda deployment role management.

    Composes the role's IAM policies, renders them as CloudFormation, or
    reconciles them directly against IAM.
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.add_command(role_commands, name="role")


if __name__ == "__main__":
    cli()
