"""
Configuration management for the pipeline role.

Collects the role name, description, tags and the three optional
resource-access lists, either directly or from a YAML file.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union, Iterable, List
from dataclasses import dataclass, field
from jsonschema import validate, ValidationError


CONFIG_ENV_VAR = "LAMBDA_PIPELINE_ROLE_CONFIG"
DEFAULT_REGION = "us-east-1"

# Only the shape of the file is checked; identifier contents are left to AWS.
CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["name"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "tags": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
        "s3_bucket_arns": {"type": "array", "items": {"type": "string"}},
        "sns_topic_arns": {"type": "array", "items": {"type": "string"}},
        "kms_key_arns": {"type": "array", "items": {"type": "string"}},
        "aws_region": {"type": "string"},
        "profile": {"type": ["string", "null"]},
    },
    "additionalProperties": False,
}


@dataclass
class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    message: str
    details: Optional[str] = None

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


def _default_region() -> str:
    return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or DEFAULT_REGION


@dataclass
class RoleConfig:
    """Inputs for the pipeline role and its optional access grants."""

    # Role identification
    name: str
    description: str = ""
    tags: Dict[str, str] = field(default_factory=dict)

    # Optional access grants; an empty list suppresses the matching policy
    s3_bucket_arns: List[str] = field(default_factory=list)
    sns_topic_arns: List[str] = field(default_factory=list)
    kms_key_arns: List[str] = field(default_factory=list)

    # AWS session settings
    aws_region: str = field(default_factory=_default_region)
    profile: Optional[str] = None

    def __post_init__(self):
        # Accept any iterable (sets, tuples) and normalise to lists
        self.s3_bucket_arns = list(self.s3_bucket_arns or [])
        self.sns_topic_arns = list(self.sns_topic_arns or [])
        self.kms_key_arns = list(self.kms_key_arns or [])
        self.tags = dict(self.tags or {})

    @property
    def has_s3_access(self) -> bool:
        return bool(self.s3_bucket_arns)

    @property
    def has_sns_access(self) -> bool:
        return bool(self.sns_topic_arns)

    @property
    def has_kms_access(self) -> bool:
        return bool(self.kms_key_arns)

    def policy_name(self, category: str) -> str:
        """Get the inline policy name for a category, e.g. ``my-role-S3Policy``."""
        return f"{self.name}-{category}Policy"

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            k: v for k, v in self.__dict__.items()
            if not k.startswith('_')
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoleConfig":
        """Create config from dictionary."""
        try:
            validate(instance=data, schema=CONFIG_SCHEMA)
        except ValidationError as e:
            raise ConfigurationError("Invalid role configuration", e.message) from e
        return cls(**data)


def load_role_config(config_path: Union[str, Path], **overrides: Any) -> RoleConfig:
    """
    Load a role configuration from a YAML file.

    Args:
        config_path: Path to the YAML file
        **overrides: Values that replace what the file declares (None is ignored)

    Returns:
        The resolved role configuration

    Raises:
        ConfigurationError: If the file is missing, unparsable or mis-shaped
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError("Configuration file not found", str(path))

    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse {path}", str(e)) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid role configuration in {path}", "top level must be a mapping")

    data.update({k: v for k, v in overrides.items() if v is not None})
    return RoleConfig.from_dict(data)


def save_role_config(config: RoleConfig, config_path: Union[str, Path]) -> None:
    """Save role configuration to a YAML file."""
    with open(config_path, 'w') as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False)


def get_current_role_config() -> Optional[RoleConfig]:
    """Load the configuration named by the environment, if any."""
    config_path = os.environ.get(CONFIG_ENV_VAR)
    if not config_path:
        return None
    return load_role_config(config_path)


def build_role_config(
    name: str,
    description: str = "",
    tags: Optional[Dict[str, str]] = None,
    s3_bucket_arns: Iterable[str] = (),
    sns_topic_arns: Iterable[str] = (),
    kms_key_arns: Iterable[str] = (),
    aws_region: Optional[str] = None,
    profile: Optional[str] = None,
) -> RoleConfig:
    """Build a configuration from loose arguments, e.g. CLI flags."""
    return RoleConfig(
        name=name,
        description=description,
        tags=tags or {},
        s3_bucket_arns=list(s3_bucket_arns),
        sns_topic_arns=list(sns_topic_arns),
        kms_key_arns=list(kms_key_arns),
        aws_region=aws_region or _default_region(),
        profile=profile,
    )
