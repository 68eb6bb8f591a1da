"""
ARN and resource naming helpers.

Repository names are validated against the ECR naming rules so that a
wildcard can never slip into a policy resource.
"""

import re
from typing import Dict, Optional


class ArnBuilder:
    """Builds ARNs for the resources this tool creates or authorizes."""

    # ECR repository names: lowercase, digits and separators, no wildcards
    REPOSITORY_NAME_PATTERN = re.compile(r'^[a-z0-9]+(?:[._-][a-z0-9]+)*(?:/[a-z0-9]+(?:[._-][a-z0-9]+)*)*$')

    # IAM paths start and end with a slash
    IAM_PATH_PATTERN = re.compile(r"^/(?:[\x21-\x2e\x30-\x7e]+/)*$")

    ARN_PATTERN = re.compile(r'^arn:([^:]+):([^:]+):([^:]*):([^:]*):(.+)$')

    @classmethod
    def validate_repository_name(cls, name: str) -> bool:
        """
        Check whether a repository name is a literal ECR repository name.

        Args:
            name: Repository short name (e.g. "retail-store-ui")

        Returns:
            True if valid, False otherwise
        """
        return bool(cls.REPOSITORY_NAME_PATTERN.match(name))

    @classmethod
    def repository_arn(cls, partition: str, region: str, account_id: str, name: str) -> str:
        """
        Format an ECR repository ARN.

        Pattern: arn:[PARTITION]:ecr:[REGION]:[ACCOUNT]:repository/[NAME]

        Raises:
            ValueError: If the name is not a literal repository name
        """
        if not cls.validate_repository_name(name):
            raise ValueError(
                f"Invalid repository name: {name}. "
                "Must be a literal ECR repository name without wildcards."
            )
        return f"arn:{partition}:ecr:{region}:{account_id}:repository/{name}"

    @classmethod
    def user_arn(cls, partition: str, account_id: str, path: str, name: str) -> str:
        """Format an IAM user ARN."""
        return f"arn:{partition}:iam::{account_id}:user{path}{name}"

    @classmethod
    def policy_arn(cls, partition: str, account_id: str, path: str, name: str) -> str:
        """Format a customer-managed IAM policy ARN."""
        return f"arn:{partition}:iam::{account_id}:policy{path}{name}"

    @classmethod
    def validate_iam_path(cls, path: str) -> bool:
        return bool(cls.IAM_PATH_PATTERN.match(path))

    @classmethod
    def parse_arn(cls, arn: str) -> Optional[Dict[str, str]]:
        """
        Parse an ARN into its components.

        Returns:
            Dictionary with 'partition', 'service', 'region', 'account' and
            'resource' keys, or None if the string is not an ARN
        """
        match = cls.ARN_PATTERN.match(arn)
        if not match:
            return None
        return {
            'partition': match.group(1),
            'service': match.group(2),
            'region': match.group(3),
            'account': match.group(4),
            'resource': match.group(5),
        }


def repository_arn(partition: str, region: str, account_id: str, name: str) -> str:
    """Convenience function to format an ECR repository ARN."""
    return ArnBuilder.repository_arn(partition, region, account_id, name)
