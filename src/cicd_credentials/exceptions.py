"""
Exceptions raised while provisioning CI/CD credentials.
"""


class CredentialsError(Exception):
    """Base class for all provisioning errors."""


class ConfigError(CredentialsError):
    """Configuration file is missing, malformed or fails schema validation."""


class PreconditionError(CredentialsError):
    """Ambient AWS session cannot be resolved; nothing has been created."""


class ConflictError(CredentialsError):
    """A resource exists in AWS but is not tracked in state."""


class QuotaExceededError(CredentialsError):
    """An AWS service limit was hit (e.g. access keys per user)."""


class SecretAlreadyRevealedError(CredentialsError):
    """Secret material was already consumed and cannot be read again."""


class PolicyError(CredentialsError):
    """Policy document violates the repository allow-list invariants."""


class StateError(CredentialsError):
    """State file cannot be read or written."""


class StalePlanError(CredentialsError):
    """Plan was computed against a state that has since changed."""
