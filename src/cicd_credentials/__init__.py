"""
CI/CD credentials - least-privilege IAM user, policy and access key for ECR image pushes.
"""

__version__ = "1.0.0"

from .config import ProvisioningConfig, load_config

__all__ = ["ProvisioningConfig", "load_config"]
