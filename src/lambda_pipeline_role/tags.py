"""
Tag conventions for the pipeline role.

Every role carries the caller's tags plus bookkeeping tags describing who
created it and when. Creation tags are written once; later reconciliations
keep the live values and only refresh ``UpdatedDate``.
"""

from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional

from .config import RoleConfig
from .identity import CallerIdentity

NAME_TAG = "Name"
CREATED_BY_TAG = "CreatedBy"
CREATOR_ARN_TAG = "CreatorArn"
CREATED_DATE_TAG = "CreatedDate"
UPDATED_DATE_TAG = "UpdatedDate"

STICKY_TAGS = (CREATED_BY_TAG, CREATED_DATE_TAG)
BOOKKEEPING_TAGS = (NAME_TAG, CREATED_BY_TAG, CREATOR_ARN_TAG, CREATED_DATE_TAG, UPDATED_DATE_TAG)


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """Format a moment as an ISO-8601 UTC timestamp, e.g. ``2024-01-31T12:00:00Z``."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def build_role_tags(
    config: RoleConfig,
    identity: CallerIdentity,
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    """
    Build the full tag set for a freshly created role.

    Bookkeeping tags take precedence over caller tags whose key matches
    ignoring case, since IAM tag keys are case-insensitive.
    """
    timestamp = format_timestamp(now)
    reserved = {key.lower() for key in BOOKKEEPING_TAGS}
    tags = {key: value for key, value in config.tags.items() if key.lower() not in reserved}
    tags.update({
        NAME_TAG: config.name.strip().lower(),
        CREATED_BY_TAG: identity.user_id,
        CREATOR_ARN_TAG: identity.arn,
        CREATED_DATE_TAG: timestamp,
        UPDATED_DATE_TAG: timestamp,
    })
    return tags


def merge_role_tags(desired: Mapping[str, str], existing: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """
    Merge freshly derived tags over the live ones.

    Sticky creation tags keep their live value when one exists; every other
    key takes the desired value.
    """
    merged = dict(desired)
    if not existing:
        return merged

    for key in STICKY_TAGS:
        if key in existing:
            merged[key] = existing[key]
    return merged


def resolve_role_tags(
    config: RoleConfig,
    identity: CallerIdentity,
    existing: Optional[Mapping[str, str]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    """Derive the tags to apply, preserving creation metadata from ``existing``."""
    return merge_role_tags(build_role_tags(config, identity, now), existing)


def to_tag_list(tags: Mapping[str, str]) -> List[Dict[str, str]]:
    """Convert a tag mapping to the AWS ``[{"Key": .., "Value": ..}]`` form."""
    return [{"Key": key, "Value": value} for key, value in sorted(tags.items())]


def from_tag_list(tag_list: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    """Convert the AWS tag list form back to a mapping."""
    return {tag["Key"]: tag["Value"] for tag in tag_list or []}
