"""
CloudFormation constructs built with troposphere.
"""

from .role import CodeBuildRoleConstruct, build_template

__all__ = ["CodeBuildRoleConstruct", "build_template"]
