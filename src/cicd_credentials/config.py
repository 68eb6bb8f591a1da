"""
Configuration management for CI/CD credential provisioning.

Defaults describe the GitHub Actions ECR push user; an optional YAML file
overrides any of them.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union
from dataclasses import dataclass, field, fields

import yaml
import jsonschema

from .exceptions import ConfigError
from .naming import ArnBuilder

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "cicd-credentials.yaml"


def _default_tags() -> Dict[str, str]:
    return {
        "Name": "github-actions-ecr-user",
        "Purpose": "GitHub Actions ECR Access",
        "Environment": "ci-cd",
        "ManagedBy": "cicd-credentials",
    }


@dataclass
class ProvisioningConfig:
    """Configuration for the CI/CD credential workflow."""

    # Service identity
    user_name: str = "github-actions-ecr-user"
    user_path: str = "/ci-cd/"
    tags: Dict[str, str] = field(default_factory=_default_tags)

    # Authorization document
    policy_name: str = "GitHubActionsECRPolicy"
    policy_path: str = "/ci-cd/"
    policy_description: str = "Least-privilege ECR push access for GitHub Actions"

    # Secret store
    access_key_id_parameter: str = "/ci-cd/github-actions/access-key-id"
    secret_access_key_parameter: str = "/ci-cd/github-actions/secret-access-key"
    kms_key_id: Optional[str] = None

    # AWS session
    aws_region: Optional[str] = None
    aws_profile: Optional[str] = None

    # Local engine files
    working_dir: str = ".cicd-credentials"
    state_file: str = "state.json"
    plan_file: str = "plan.json"

    @property
    def state_path(self) -> Path:
        return Path(self.working_dir) / self.state_file

    @property
    def plan_path(self) -> Path:
        return Path(self.working_dir) / self.plan_file

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProvisioningConfig":
        """Create config from dictionary."""
        return cls(**data)


CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "user_name": {"type": "string", "pattern": r"^[\w+=,.@-]{1,64}$"},
        "user_path": {"type": "string", "minLength": 1},
        "tags": {
            "type": "object",
            "additionalProperties": {"type": "string", "maxLength": 256},
            "maxProperties": 50,
        },
        "policy_name": {"type": "string", "pattern": r"^[\w+=,.@-]{1,128}$"},
        "policy_path": {"type": "string", "minLength": 1},
        "policy_description": {"type": "string", "maxLength": 1000},
        "access_key_id_parameter": {"type": "string", "pattern": "^/"},
        "secret_access_key_parameter": {"type": "string", "pattern": "^/"},
        "kms_key_id": {"type": ["string", "null"]},
        "aws_region": {"type": ["string", "null"]},
        "aws_profile": {"type": ["string", "null"]},
        "working_dir": {"type": "string", "minLength": 1},
        "state_file": {"type": "string", "minLength": 1},
        "plan_file": {"type": "string", "minLength": 1},
    },
}


def validate_config_data(data: Dict[str, Any]) -> None:
    """
    Validate raw configuration data against the schema.

    Raises:
        ConfigError: If the data does not match the schema or an IAM path is malformed
    """
    try:
        jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        location = ".".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"Invalid configuration at {location}: {e.message}") from e

    for key in ("user_path", "policy_path"):
        if key in data and not ArnBuilder.validate_iam_path(data[key]):
            raise ConfigError(f"Invalid configuration at {key}: '{data[key]}' is not an IAM path")

    if data.get("access_key_id_parameter") and \
            data.get("access_key_id_parameter") == data.get("secret_access_key_parameter"):
        raise ConfigError("access_key_id_parameter and secret_access_key_parameter must differ")


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    **overrides: Any
) -> ProvisioningConfig:
    """
    Load configuration from defaults, an optional YAML file and overrides.

    Args:
        config_path: YAML file to read. When omitted, ``cicd-credentials.yaml``
            in the current directory is used if it exists.
        overrides: Values that take precedence over the file (None is ignored)

    Returns:
        Merged provisioning configuration
    """
    data: Dict[str, Any] = {}

    if config_path is None:
        env_path = os.environ.get("CICD_CREDENTIALS_CONFIG")
        candidate = Path(env_path) if env_path else Path.cwd() / DEFAULT_CONFIG_FILE
        if candidate.exists():
            config_path = candidate
    elif not Path(config_path).exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    if config_path is not None:
        logger.info(f"Loading configuration: {config_path}")
        try:
            with open(config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file {config_path} must contain a mapping")

    data.update({k: v for k, v in overrides.items() if v is not None})
    validate_config_data(data)

    # Tags merge with defaults rather than replacing them
    if "tags" in data:
        data["tags"] = {**_default_tags(), **data["tags"]}

    return ProvisioningConfig.from_dict(data)
