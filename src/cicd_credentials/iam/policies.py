"""
IAM policy generation for ECR image pushes.
"""

import json
from typing import Dict, Any, List, Tuple

from ..exceptions import PolicyError
from ..naming import ArnBuilder
from .identity import CallerIdentity

POLICY_VERSION = "2012-10-17"

# Application repositories the pipeline may push to. Adding a service means
# adding it here; repositories are never matched by wildcard.
ECR_REPOSITORIES: Tuple[str, ...] = (
    "retail-store-ui",
    "retail-store-catalog",
    "retail-store-cart",
    "retail-store-orders",
    "retail-store-checkout",
)

TOKEN_ACTIONS: List[str] = [
    "ecr:GetAuthorizationToken",
]

IMAGE_ACTIONS: List[str] = [
    "ecr:BatchCheckLayerAvailability",
    "ecr:GetDownloadUrlForLayer",
    "ecr:BatchGetImage",
    "ecr:InitiateLayerUpload",
    "ecr:UploadLayerPart",
    "ecr:CompleteLayerUpload",
    "ecr:PutImage",
]

REPOSITORY_ACTIONS: List[str] = [
    "ecr:CreateRepository",
    "ecr:DescribeRepositories",
    "ecr:ListImages",
    "ecr:DescribeImages",
]


class PolicyGenerator:
    """Generate the least-privilege ECR push policy."""

    def __init__(self, identity: CallerIdentity, repositories: Tuple[str, ...] = ECR_REPOSITORIES):
        """Initialize policy generator with the resolved caller identity."""
        self.identity = identity
        self.repositories = repositories

    def repository_arns(self) -> List[str]:
        """ARNs of every allow-listed repository, in allow-list order."""
        return [
            ArnBuilder.repository_arn(
                self.identity.partition,
                self.identity.region,
                self.identity.account_id,
                name,
            )
            for name in self.repositories
        ]

    def generate_ecr_push_policy(self) -> Dict[str, Any]:
        """Generate the CI/CD policy for pushing images to ECR."""
        repository_arns = self.repository_arns()

        policy = {
            "Version": POLICY_VERSION,
            "Statement": []
        }

        # Registry authentication has no narrower resource than the account
        policy["Statement"].append({
            "Sid": "ECRAuthorizationToken",
            "Effect": "Allow",
            "Action": list(TOKEN_ACTIONS),
            "Resource": "*"
        })

        # Layer and image data plane
        policy["Statement"].append({
            "Sid": "ECRImageReadWrite",
            "Effect": "Allow",
            "Action": list(IMAGE_ACTIONS),
            "Resource": list(repository_arns)
        })

        # Repository control plane
        policy["Statement"].append({
            "Sid": "ECRRepositoryManagement",
            "Effect": "Allow",
            "Action": list(REPOSITORY_ACTIONS),
            "Resource": list(repository_arns)
        })

        validate_policy(policy, repository_arns)
        return policy


def _resources(statement: Dict[str, Any]) -> List[str]:
    resource = statement.get("Resource", [])
    return [resource] if isinstance(resource, str) else list(resource)


def validate_policy(policy: Dict[str, Any], allowed_resources: List[str]) -> None:
    """
    Check the invariants of a generated ECR push policy.

    Only the authorization-token statement may use the "*" resource and
    every other resource must be one of the allow-listed repository ARNs.

    Raises:
        PolicyError: If an invariant does not hold
    """
    if policy.get("Version") != POLICY_VERSION:
        raise PolicyError(f"Unexpected policy version: {policy.get('Version')}")

    allowed = set(allowed_resources)
    for statement in policy.get("Statement", []):
        sid = statement.get("Sid", "<unnamed>")
        actions = statement.get("Action", [])
        resources = _resources(statement)

        if actions == TOKEN_ACTIONS:
            if resources != ["*"]:
                raise PolicyError(f"Statement {sid} must target exactly '*'")
            continue

        for resource in resources:
            if "*" in resource or "?" in resource:
                raise PolicyError(f"Statement {sid} uses wildcard resource {resource}")
            if resource not in allowed:
                raise PolicyError(f"Statement {sid} targets non allow-listed resource {resource}")


def get_ecr_push_policy(identity: CallerIdentity) -> str:
    """Get the ECR push policy as JSON string."""
    generator = PolicyGenerator(identity)
    policy = generator.generate_ecr_push_policy()

    return json.dumps(policy, indent=2)
