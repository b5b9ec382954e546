"""
IAM policy composition and role reconciliation.
"""

from .policies import (
    AccessGrantCategory,
    PolicyDocument,
    PolicyGenerator,
    PolicyStatement,
    get_role_policies,
)
from .role_manager import ProvisionResult, ReconcilePlan, RoleProvisioner, RoleProvisioningError

__all__ = [
    "AccessGrantCategory",
    "PolicyDocument",
    "PolicyGenerator",
    "PolicyStatement",
    "ProvisionResult",
    "ReconcilePlan",
    "RoleProvisioner",
    "RoleProvisioningError",
    "get_role_policies",
]
