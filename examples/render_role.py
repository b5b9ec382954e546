#!/usr/bin/env python3
"""
Example: compose the pipeline role policies and render them as CloudFormation.

Runs offline; the caller identity is supplied instead of looked up.
"""

from pathlib import Path

from lambda_pipeline_role.config import load_role_config
from lambda_pipeline_role.constructs import build_template
from lambda_pipeline_role.iam.policies import PolicyGenerator
from lambda_pipeline_role.identity import CallerIdentity


def main():
    """Print the composed policies and the template."""
    config = load_role_config(Path(__file__).parent / "role.yaml")
    identity = CallerIdentity(
        account_id="123456789012",
        user_id="AIDAEXAMPLE",
        arn="arn:aws:iam::123456789012:user/example",
    )

    print("Composed policies")
    print("=" * 50)
    for document in PolicyGenerator(config).compose_policies():
        print(f"  {document.name}: {len(document.resources)} resource(s)")
    print()

    print("CloudFormation template")
    print("=" * 50)
    print(build_template(config, identity).to_json())


if __name__ == "__main__":
    main()
