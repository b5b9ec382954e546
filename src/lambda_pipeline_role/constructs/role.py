"""
CloudFormation construct for the pipeline role and its policies.
"""

from datetime import datetime
from typing import Dict, List, Mapping, Optional

from troposphere import Template, Output, Ref, GetAtt, Tags, Sub, Export
from troposphere import iam

from ..config import RoleConfig
from ..identity import CallerIdentity
from ..iam.policies import MAX_SESSION_DURATION, PolicyDocument, PolicyGenerator
from ..tags import resolve_role_tags


def _logical_id(document: PolicyDocument) -> str:
    """CloudFormation logical ID for a policy, e.g. ``KeyManagementPolicy``."""
    return "".join(part.title() for part in document.category.name.split("_")) + "Policy"


class CodeBuildRoleConstruct:
    """
    Construct for the CodeBuild deployment role.
    Creates the role plus one inline policy resource per composed document.
    """

    ROLE_LOGICAL_ID = "PipelineRole"

    def __init__(
        self,
        template: Template,
        config: RoleConfig,
        tags: Mapping[str, str]
    ):
        """
        Initialize role construct.

        Args:
            template: CloudFormation template to add resources to
            config: Role configuration
            tags: Full tag set for the role, bookkeeping tags included
        """
        self.template = template
        self.config = config
        self.tags = dict(tags)
        self.policy_generator = PolicyGenerator(config)
        self.resources = {}
        self.policies: List[iam.PolicyType] = []

        self._create_role()
        self._create_policies()
        self._create_outputs()

    def _create_role(self):
        """Create IAM role assumable by CodeBuild."""
        role_props = {
            "RoleName": self.config.name,
            "AssumeRolePolicyDocument": self.policy_generator.generate_trust_policy(),
            "MaxSessionDuration": MAX_SESSION_DURATION,
            "Tags": Tags(self.tags),
        }

        if self.config.description:
            role_props["Description"] = self.config.description

        self.role = self.template.add_resource(
            iam.Role(self.ROLE_LOGICAL_ID, **role_props)
        )

        self.resources["role"] = self.role

    def _create_policies(self):
        """Attach the baseline policy and each optional policy that applies."""
        for document in self.policy_generator.compose_policies():
            policy = self.template.add_resource(
                iam.PolicyType(
                    _logical_id(document),
                    PolicyName=document.name,
                    PolicyDocument=document.to_dict(),
                    Roles=[Ref(self.role)],
                )
            )
            self.policies.append(policy)
            self.resources[document.category.name.lower()] = policy

    def _create_outputs(self):
        """Create CloudFormation outputs."""
        self.template.add_output([
            Output(
                "RoleName",
                Description="CodeBuild deployment role name",
                Value=Ref(self.role),
            ),
            Output(
                "RoleArn",
                Description="CodeBuild deployment role ARN",
                Value=GetAtt(self.role, "Arn"),
                Export=Export(Sub("${AWS::StackName}-RoleArn")),
            ),
        ])


def build_template(
    config: RoleConfig,
    identity: CallerIdentity,
    existing_tags: Optional[Mapping[str, str]] = None,
    now: Optional[datetime] = None,
) -> Template:
    """
    Build a CloudFormation template for the pipeline role.

    Args:
        config: Role configuration
        identity: Caller identity for bookkeeping tags
        existing_tags: Live role tags whose creation metadata must be kept
        now: Timestamp for the date tags

    Returns:
        The populated template
    """
    template = Template()
    template.set_version("2010-09-09")
    template.set_description(
        config.description or f"CodeBuild Lambda deployment role {config.name}"
    )

    tags: Dict[str, str] = resolve_role_tags(config, identity, existing=existing_tags, now=now)
    CodeBuildRoleConstruct(template, config, tags)
    return template
