"""
Caller identity lookup used to stamp bookkeeping tags.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerIdentity:
    """Account, user and principal ARN of whoever is provisioning."""
    account_id: str
    user_id: str
    arn: str


def get_caller_identity(session: Optional[boto3.Session] = None) -> CallerIdentity:
    """
    Look up the identity behind the current credentials.

    Args:
        session: boto3 session to use (a default session is created if omitted)

    Returns:
        The caller identity

    Raises:
        NoCredentialsError: If no credentials are available
        ClientError: If STS rejects the request
    """
    session = session or boto3.Session()
    sts = session.client("sts")
    try:
        response = sts.get_caller_identity()
    except NoCredentialsError:
        logger.error("No AWS credentials found")
        raise
    except ClientError as e:
        logger.error(f"Failed to get caller identity: {e}")
        raise

    return CallerIdentity(
        account_id=response["Account"],
        user_id=response["UserId"],
        arn=response["Arn"],
    )
