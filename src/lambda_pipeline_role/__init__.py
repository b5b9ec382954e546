"""
Lambda Pipeline Role - IAM role and policies for a CodeBuild-based Lambda deployment pipeline.
"""

__version__ = "1.0.0"

from .config import RoleConfig, ConfigurationError, load_role_config

__all__ = ["RoleConfig", "ConfigurationError", "load_role_config"]
