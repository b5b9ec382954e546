"""
Tests for the CloudFormation role construct.
"""

import json
from datetime import datetime, timezone

import pytest
from troposphere import Template

from lambda_pipeline_role.config import RoleConfig
from lambda_pipeline_role.constructs.role import CodeBuildRoleConstruct, build_template
from lambda_pipeline_role.identity import CallerIdentity

CREATED = datetime(2024, 1, 31, 12, 0, 0, tzinfo=timezone.utc)
IDENTITY = CallerIdentity(
    account_id="123456789012",
    user_id="AIDACREATOR",
    arn="arn:aws:iam::123456789012:user/creator",
)


class TestCodeBuildRoleConstruct:
    """Test CodeBuildRoleConstruct class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.template = Template()
        self.config = RoleConfig(
            name="lambda-deployer",
            description="Deploys Lambda functions",
            kms_key_arns=["arn:aws:kms:us-east-1:123456789012:key/abcd"],
        )

    def test_role_creation(self) -> None:
        """Test role properties."""
        construct = CodeBuildRoleConstruct(self.template, self.config, {"Team": "platform"})

        role = construct.role
        assert role.RoleName == "lambda-deployer"
        assert role.MaxSessionDuration == 14400
        assert role.Description == "Deploys Lambda functions"
        assert "codebuild.amazonaws.com" in str(role.AssumeRolePolicyDocument)
        assert construct.resources["role"] is role

    def test_policies_follow_composition(self) -> None:
        """Only baseline and KMS policies are added."""
        construct = CodeBuildRoleConstruct(self.template, self.config, {})

        resources = self.template.to_dict()["Resources"]
        assert set(resources) == {"PipelineRole", "BaselinePolicy", "KeyManagementPolicy"}
        assert set(construct.resources) == {"role", "baseline", "key_management"}

        kms_policy = resources["KeyManagementPolicy"]["Properties"]
        assert kms_policy["PolicyName"] == "lambda-deployer-KMSPolicy"
        assert kms_policy["Roles"] == [{"Ref": "PipelineRole"}]

    def test_outputs(self) -> None:
        CodeBuildRoleConstruct(self.template, self.config, {})

        outputs = self.template.to_dict()["Outputs"]
        assert outputs["RoleName"]["Value"] == {"Ref": "PipelineRole"}
        assert outputs["RoleArn"]["Value"] == {"Fn::GetAtt": ["PipelineRole", "Arn"]}


class TestBuildTemplate:
    """Test full template rendering."""

    def test_max_session_duration_always_fixed(self):
        config = RoleConfig(name="lambda-deployer")

        template = build_template(config, IDENTITY, now=CREATED).to_dict()

        assert template["Resources"]["PipelineRole"]["Properties"]["MaxSessionDuration"] == 14400

    def test_tags_rendered(self):
        config = RoleConfig(name="Lambda-Deployer", tags={"Team": "platform"})

        template = build_template(config, IDENTITY, now=CREATED).to_dict()
        tags = {t["Key"]: t["Value"] for t in template["Resources"]["PipelineRole"]["Properties"]["Tags"]}

        assert tags["Team"] == "platform"
        assert tags["Name"] == "lambda-deployer"
        assert tags["CreatedBy"] == "AIDACREATOR"
        assert tags["UpdatedDate"] == "2024-01-31T12:00:00Z"

    def test_existing_creation_tags_preserved(self):
        config = RoleConfig(name="lambda-deployer")
        existing = {"CreatedBy": "AIDAORIGINAL", "CreatedDate": "2023-06-01T00:00:00Z"}

        template = build_template(config, IDENTITY, existing_tags=existing, now=CREATED).to_dict()
        tags = {t["Key"]: t["Value"] for t in template["Resources"]["PipelineRole"]["Properties"]["Tags"]}

        assert tags["CreatedBy"] == "AIDAORIGINAL"
        assert tags["CreatedDate"] == "2023-06-01T00:00:00Z"

    @pytest.mark.parametrize("config", [
        RoleConfig(name="lambda-deployer"),
        RoleConfig(name="lambda-deployer", s3_bucket_arns=["arn:aws:s3:::a"]),
    ])
    def test_identical_inputs_render_identically(self, config):
        first = build_template(config, IDENTITY, now=CREATED).to_json()
        second = build_template(config, IDENTITY, now=CREATED).to_json()

        assert first == second
        assert json.loads(first)["AWSTemplateFormatVersion"] == "2010-09-09"
