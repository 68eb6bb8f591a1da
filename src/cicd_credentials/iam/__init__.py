"""
IAM identity, policy and credential management for CI/CD.
"""

from .credentials import AccessKeyResource, IAMCredentials, OneShotSecret, issue_access_key
from .identity import CallerIdentity, resolve_identity
from .policies import ECR_REPOSITORIES, PolicyGenerator, get_ecr_push_policy, validate_policy
from .resources import ManagedPolicyResource, PolicyAttachmentResource, UserResource

__all__ = [
    "AccessKeyResource",
    "CallerIdentity",
    "ECR_REPOSITORIES",
    "IAMCredentials",
    "ManagedPolicyResource",
    "OneShotSecret",
    "PolicyAttachmentResource",
    "PolicyGenerator",
    "UserResource",
    "get_ecr_push_policy",
    "issue_access_key",
    "resolve_identity",
    "validate_policy",
]
