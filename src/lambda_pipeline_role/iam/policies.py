"""
IAM policy templates and generators for the pipeline role.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Iterable, List, Optional, Tuple

from ..config import RoleConfig

POLICY_VERSION = "2012-10-17"
BUILD_SERVICE_PRINCIPAL = "codebuild.amazonaws.com"
MAX_SESSION_DURATION = 14400  # 4 hours


class AccessGrantCategory(Enum):
    """Policy categories; the value is the policy name suffix stem."""
    BASELINE = "CodeBuild"
    STORAGE = "S3"
    MESSAGING = "SNS"
    KEY_MANAGEMENT = "KMS"


@dataclass(frozen=True)
class PolicyStatement:
    """A single Allow statement."""
    sid: str
    actions: Tuple[str, ...]
    resources: Tuple[str, ...]
    effect: str = "Allow"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Sid": self.sid,
            "Effect": self.effect,
            "Action": list(self.actions),
            "Resource": list(self.resources),
        }


@dataclass(frozen=True)
class PolicyDocument:
    """A named, ordered set of statements attached to one role."""
    name: str
    category: AccessGrantCategory
    statements: Tuple[PolicyStatement, ...]

    def to_dict(self) -> Dict[str, Any]:
        """Render as an IAM policy document."""
        return {
            "Version": POLICY_VERSION,
            "Statement": [s.to_dict() for s in self.statements],
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @property
    def resources(self) -> List[str]:
        """All resources across statements, in order."""
        return [r for s in self.statements for r in s.resources]


def _unique_sorted(identifiers: Iterable[str]) -> List[str]:
    """De-duplicate and sort so composition does not depend on input order."""
    return sorted(set(identifiers))


class PolicyGenerator:
    """Generate IAM policies for the pipeline role."""

    def __init__(self, config: RoleConfig):
        """Initialize policy generator with role configuration."""
        self.config = config

    def _document(self, category: AccessGrantCategory, statements: List[PolicyStatement]) -> PolicyDocument:
        return PolicyDocument(
            name=self.config.policy_name(category.value),
            category=category,
            statements=tuple(statements),
        )

    def generate_baseline_policy(self) -> PolicyDocument:
        """Generate the always-present build policy."""
        statements = [
            # CloudWatch Logs permissions
            PolicyStatement(
                sid="CloudWatchLogsAccess",
                actions=(
                    "logs:CreateLogGroup",
                    "logs:DeleteLogGroup",
                    "logs:DescribeLogGroups",
                    "logs:PutRetentionPolicy",
                    "logs:CreateLogStream",
                    "logs:DescribeLogStreams",
                    "logs:PutLogEvents",
                ),
                resources=("*",),
            ),
            # Network interface permissions for VPC builds
            PolicyStatement(
                sid="EC2NetworkInterfaceAccess",
                actions=(
                    "ec2:CreateNetworkInterface",
                    "ec2:CreateNetworkInterfacePermission",
                    "ec2:DescribeNetworkInterfaces",
                    "ec2:DeleteNetworkInterface",
                    "ec2:DescribeDhcpOptions",
                    "ec2:DescribeSubnets",
                    "ec2:DescribeSecurityGroups",
                    "ec2:DescribeVpcs",
                ),
                resources=("*",),
            ),
            # Lambda permissions
            PolicyStatement(
                sid="LambdaAccess",
                actions=("lambda:*",),
                resources=("*",),
            ),
            # Pass the function execution role through to Lambda
            PolicyStatement(
                sid="IAMPassRole",
                actions=("iam:PassRole",),
                resources=("*",),
            ),
        ]
        return self._document(AccessGrantCategory.BASELINE, statements)

    def generate_s3_policy(self) -> Optional[PolicyDocument]:
        """Generate S3 access for the configured buckets, or None if there are none."""
        if not self.config.has_s3_access:
            return None

        resources: List[str] = []
        for bucket_arn in _unique_sorted(self.config.s3_bucket_arns):
            resources.extend([bucket_arn, f"{bucket_arn}/*"])

        statement = PolicyStatement(
            sid="S3Access",
            actions=(
                "s3:GetObject",
                "s3:GetObjectVersion",
                "s3:PutObject",
                "s3:DeleteObject",
                "s3:ListBucket",
                "s3:GetBucketAcl",
                "s3:GetBucketLocation",
                "s3:GetObjectTagging",
                "s3:PutObjectTagging",
            ),
            resources=tuple(resources),
        )
        return self._document(AccessGrantCategory.STORAGE, [statement])

    def generate_sns_policy(self) -> Optional[PolicyDocument]:
        """Generate publish access for the configured topics, or None if there are none."""
        if not self.config.has_sns_access:
            return None

        statement = PolicyStatement(
            sid="SNSPublish",
            actions=("sns:Publish",),
            resources=tuple(_unique_sorted(self.config.sns_topic_arns)),
        )
        return self._document(AccessGrantCategory.MESSAGING, [statement])

    def generate_kms_policy(self) -> Optional[PolicyDocument]:
        """Generate key usage access for the configured keys, or None if there are none."""
        if not self.config.has_kms_access:
            return None

        statement = PolicyStatement(
            sid="KMSAccess",
            actions=(
                "kms:DescribeKey",
                "kms:GenerateDataKey",
                "kms:GenerateDataKeyWithoutPlaintext",
                "kms:Encrypt",
                "kms:ReEncryptFrom",
                "kms:ReEncryptTo",
                "kms:Decrypt",
                "kms:ListGrants",
                "kms:CreateGrant",
                "kms:RetireGrant",
                "kms:RevokeGrant",
            ),
            resources=tuple(_unique_sorted(self.config.kms_key_arns)),
        )
        return self._document(AccessGrantCategory.KEY_MANAGEMENT, [statement])

    def generate_trust_policy(self) -> Dict[str, Any]:
        """Generate trust policy allowing only CodeBuild to assume the role."""
        return {
            "Version": POLICY_VERSION,
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"Service": BUILD_SERVICE_PRINCIPAL},
                    "Action": "sts:AssumeRole",
                }
            ],
        }

    def compose_policies(self) -> List[PolicyDocument]:
        """
        Build every document to attach to the role.

        Returns:
            The baseline document followed by each optional document whose
            identifier list is non-empty
        """
        documents = [self.generate_baseline_policy()]
        for optional in (
            self.generate_s3_policy(),
            self.generate_sns_policy(),
            self.generate_kms_policy(),
        ):
            if optional is not None:
                documents.append(optional)
        return documents

    def managed_policy_names(self) -> List[str]:
        """Every inline policy name this role could carry, present or not."""
        return [self.config.policy_name(c.value) for c in AccessGrantCategory]


def get_role_policies(config: RoleConfig) -> str:
    """Get the composed role policies as a JSON string keyed by policy name."""
    generator = PolicyGenerator(config)
    documents = generator.compose_policies()

    return json.dumps({d.name: d.to_dict() for d in documents}, indent=2)
