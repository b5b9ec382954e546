"""
Pipeline role reconciliation against live IAM state.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Optional, List
from urllib.parse import unquote

import boto3
from botocore.exceptions import ClientError

from ..config import RoleConfig
from ..identity import CallerIdentity, get_caller_identity
from ..tags import UPDATED_DATE_TAG, from_tag_list, resolve_role_tags, to_tag_list
from .policies import MAX_SESSION_DURATION, PolicyDocument, PolicyGenerator

logger = logging.getLogger(__name__)


class RoleProvisioningError(Exception):
    """Raised when IAM rejects a reconciliation call."""


def _is_no_such_entity(error: ClientError) -> bool:
    return error.response["Error"]["Code"] == "NoSuchEntity"


def _normalize(document: Any) -> str:
    """Canonical form of a policy document for comparison."""
    if isinstance(document, str):
        document = json.loads(unquote(document))
    return json.dumps(document, sort_keys=True)


@dataclass
class ReconcilePlan:
    """Difference between the desired role and what IAM currently holds."""
    role_name: str
    create_role: bool = False
    update_role: bool = False
    update_trust_policy: bool = False
    policies_to_add: List[str] = field(default_factory=list)
    policies_to_update: List[str] = field(default_factory=list)
    policies_to_remove: List[str] = field(default_factory=list)
    policies_unchanged: List[str] = field(default_factory=list)
    desired_tags: Dict[str, str] = field(default_factory=dict)
    tags_to_set: Dict[str, str] = field(default_factory=dict)
    tags_to_remove: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        """Whether applying would change anything beyond the UpdatedDate tag."""
        tag_changes = set(self.tags_to_set) - {UPDATED_DATE_TAG}
        return bool(
            self.create_role
            or self.update_role
            or self.update_trust_policy
            or self.policies_to_add
            or self.policies_to_update
            or self.policies_to_remove
            or tag_changes
            or self.tags_to_remove
        )

    def summary(self) -> List[str]:
        """Human-readable lines describing the plan."""
        lines = []
        if self.create_role:
            lines.append(f"+ role {self.role_name}")
        else:
            if self.update_role:
                lines.append(f"~ role {self.role_name} (description / max session duration)")
            if self.update_trust_policy:
                lines.append(f"~ role {self.role_name} (trust policy)")
        lines.extend(f"+ policy {name}" for name in self.policies_to_add)
        lines.extend(f"~ policy {name}" for name in self.policies_to_update)
        lines.extend(f"- policy {name}" for name in self.policies_to_remove)
        if not self.create_role:
            lines.extend(f"~ tag {key}={value}" for key, value in sorted(self.tags_to_set.items()))
            lines.extend(f"- tag {key}" for key in self.tags_to_remove)
        return lines


@dataclass
class ProvisionResult:
    """Outcome of an apply."""
    role_name: str
    role_arn: str
    policy_names: List[str]
    tags: Dict[str, str]
    changed: bool


class RoleProvisioner:
    """Reconcile the pipeline role and its inline policies."""

    def __init__(
        self,
        config: RoleConfig,
        session: Optional[boto3.Session] = None,
        identity: Optional[CallerIdentity] = None
    ):
        """
        Initialize role provisioner.

        Args:
            config: Role configuration
            session: boto3 session (built from the config region/profile if omitted)
            identity: Caller identity for bookkeeping tags (looked up lazily if omitted)
        """
        self.config = config

        if session is None:
            session_args = {"region_name": config.aws_region}
            if config.profile:
                session_args["profile_name"] = config.profile
            session = boto3.Session(**session_args)

        self.session = session
        self.iam = session.client("iam")
        self._identity = identity

        self.policy_generator = PolicyGenerator(config)

    @property
    def role_name(self) -> str:
        return self.config.name

    @property
    def identity(self) -> CallerIdentity:
        if self._identity is None:
            self._identity = get_caller_identity(self.session)
        return self._identity

    def _get_role(self) -> Optional[Dict[str, Any]]:
        """Get the live role, or None if it does not exist."""
        try:
            return self.iam.get_role(RoleName=self.role_name)["Role"]
        except ClientError as e:
            if _is_no_such_entity(e):
                return None
            raise

    def _get_role_tags(self) -> Dict[str, str]:
        tags: List[Dict[str, str]] = []
        kwargs: Dict[str, Any] = {"RoleName": self.role_name}
        while True:
            response = self.iam.list_role_tags(**kwargs)
            tags.extend(response.get("Tags", []))
            if not response.get("IsTruncated"):
                break
            kwargs["Marker"] = response["Marker"]
        return from_tag_list(tags)

    def _get_inline_policy_names(self) -> List[str]:
        names: List[str] = []
        paginator = self.iam.get_paginator("list_role_policies")
        for page in paginator.paginate(RoleName=self.role_name):
            names.extend(page["PolicyNames"])
        return names

    def _get_inline_policy(self, policy_name: str) -> Any:
        response = self.iam.get_role_policy(RoleName=self.role_name, PolicyName=policy_name)
        return response["PolicyDocument"]

    def plan(self, now: Optional[datetime] = None) -> ReconcilePlan:
        """
        Compare the desired role against IAM without changing anything.

        Args:
            now: Timestamp used for the UpdatedDate (and CreatedDate) tags

        Returns:
            The reconcile plan
        """
        documents = self.policy_generator.compose_policies()
        plan = ReconcilePlan(role_name=self.role_name)

        try:
            role = self._get_role()
            if role is None:
                plan.create_role = True
                plan.policies_to_add = [d.name for d in documents]
                plan.desired_tags = resolve_role_tags(self.config, self.identity, now=now)
                plan.tags_to_set = dict(plan.desired_tags)
                return plan

            trust_policy = self.policy_generator.generate_trust_policy()
            plan.update_trust_policy = (
                _normalize(role.get("AssumeRolePolicyDocument", {})) != _normalize(trust_policy)
            )
            plan.update_role = (
                role.get("Description", "") != self.config.description
                or role.get("MaxSessionDuration") != MAX_SESSION_DURATION
            )

            live_tags = self._get_role_tags()
            plan.desired_tags = resolve_role_tags(self.config, self.identity, existing=live_tags, now=now)
            plan.tags_to_set = {
                key: value for key, value in plan.desired_tags.items()
                if live_tags.get(key) != value
            }
            # IAM tag keys are case-insensitive; a re-cased key is overwritten, not removed
            desired_keys = {key.lower() for key in plan.desired_tags}
            plan.tags_to_remove = sorted(
                key for key in live_tags
                if key.lower() not in desired_keys and not key.startswith("aws:")
            )

            live_names = set(self._get_inline_policy_names())
            for document in documents:
                if document.name not in live_names:
                    plan.policies_to_add.append(document.name)
                elif _normalize(self._get_inline_policy(document.name)) != _normalize(document.to_dict()):
                    plan.policies_to_update.append(document.name)
                else:
                    plan.policies_unchanged.append(document.name)

            # Only policies following this role's naming convention are managed here
            desired_names = {d.name for d in documents}
            plan.policies_to_remove = sorted(
                name for name in self.policy_generator.managed_policy_names()
                if name in live_names and name not in desired_names
            )
        except ClientError as e:
            logger.error(f"Failed to read role {self.role_name}: {e}")
            raise RoleProvisioningError(f"Failed to read role {self.role_name}: {e}") from e

        return plan

    def apply(self, now: Optional[datetime] = None) -> ProvisionResult:
        """
        Create or update the role so it matches the configuration.

        The role is reconciled first, then its tags, then its inline policies.

        Returns:
            The provisioned role name, ARN, attached policy names and tags
        """
        plan = self.plan(now=now)
        documents = {d.name: d for d in self.policy_generator.compose_policies()}

        try:
            if plan.create_role:
                role_arn = self._create_role(plan.desired_tags)
            else:
                role_arn = self._update_role(plan)

            for name in plan.policies_to_add + plan.policies_to_update:
                self._put_policy(documents[name])

            for name in plan.policies_to_remove:
                logger.info(f"Deleting stale policy {name} from role {self.role_name}")
                self.iam.delete_role_policy(RoleName=self.role_name, PolicyName=name)
        except ClientError as e:
            logger.error(f"Failed to reconcile role {self.role_name}: {e}")
            raise RoleProvisioningError(f"Failed to reconcile role {self.role_name}: {e}") from e

        return ProvisionResult(
            role_name=self.role_name,
            role_arn=role_arn,
            policy_names=list(documents),
            tags=plan.desired_tags,
            changed=plan.has_changes,
        )

    def _create_role(self, tags: Dict[str, str]) -> str:
        logger.info(f"Creating role {self.role_name}")
        create_args: Dict[str, Any] = {
            "RoleName": self.role_name,
            "AssumeRolePolicyDocument": json.dumps(self.policy_generator.generate_trust_policy()),
            "MaxSessionDuration": MAX_SESSION_DURATION,
            "Tags": to_tag_list(tags),
        }
        if self.config.description:
            create_args["Description"] = self.config.description

        response = self.iam.create_role(**create_args)
        return response["Role"]["Arn"]

    def _update_role(self, plan: ReconcilePlan) -> str:
        if plan.update_role:
            logger.info(f"Updating role {self.role_name}")
            self.iam.update_role(
                RoleName=self.role_name,
                Description=self.config.description,
                MaxSessionDuration=MAX_SESSION_DURATION,
            )

        if plan.update_trust_policy:
            logger.info(f"Updating trust policy of role {self.role_name}")
            self.iam.update_assume_role_policy(
                RoleName=self.role_name,
                PolicyDocument=json.dumps(self.policy_generator.generate_trust_policy()),
            )

        if plan.tags_to_set:
            self.iam.tag_role(RoleName=self.role_name, Tags=to_tag_list(plan.tags_to_set))

        if plan.tags_to_remove:
            logger.info(f"Removing tags {', '.join(plan.tags_to_remove)} from role {self.role_name}")
            self.iam.untag_role(RoleName=self.role_name, TagKeys=plan.tags_to_remove)

        return self.iam.get_role(RoleName=self.role_name)["Role"]["Arn"]

    def _put_policy(self, document: PolicyDocument) -> None:
        logger.info(f"Putting policy {document.name} on role {self.role_name}")
        self.iam.put_role_policy(
            RoleName=self.role_name,
            PolicyName=document.name,
            PolicyDocument=document.to_json(),
        )

    def describe(self) -> Optional[Dict[str, Any]]:
        """Get a summary of the live role, or None if it does not exist."""
        try:
            role = self._get_role()
            if role is None:
                return None

            return {
                "RoleName": role["RoleName"],
                "Arn": role["Arn"],
                "Description": role.get("Description", ""),
                "MaxSessionDuration": role.get("MaxSessionDuration"),
                "Policies": sorted(self._get_inline_policy_names()),
                "Tags": self._get_role_tags(),
            }
        except ClientError as e:
            raise RoleProvisioningError(f"Failed to describe role {self.role_name}: {e}") from e

    def destroy(self) -> bool:
        """
        Delete the role and its inline policies.

        Returns:
            True if a role was deleted, False if it did not exist
        """
        try:
            if self._get_role() is None:
                logger.warning(f"Role {self.role_name} not found, nothing to delete")
                return False

            for name in self._get_inline_policy_names():
                logger.info(f"Deleting policy {name} from role {self.role_name}")
                self.iam.delete_role_policy(RoleName=self.role_name, PolicyName=name)

            logger.info(f"Deleting role {self.role_name}")
            self.iam.delete_role(RoleName=self.role_name)
            return True
        except ClientError as e:
            logger.error(f"Failed to delete role {self.role_name}: {e}")
            raise RoleProvisioningError(f"Failed to delete role {self.role_name}: {e}") from e
