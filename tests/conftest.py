"""
Shared fixtures for the test suite.
"""

import pytest
from botocore.exceptions import ClientError

from cicd_credentials.config import ProvisioningConfig
from cicd_credentials.iam.identity import CallerIdentity


def client_error(code: str, operation: str = "Operation", message: str = "error") -> ClientError:
    """Build a botocore ClientError with the given error code."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@pytest.fixture
def identity() -> CallerIdentity:
    """Caller identity in the default moto account."""
    return CallerIdentity(
        account_id="123456789012",
        region="us-east-1",
        arn="arn:aws:iam::123456789012:user/admin",
    )


@pytest.fixture
def config(tmp_path) -> ProvisioningConfig:
    """Default configuration with engine files under a temporary directory."""
    return ProvisioningConfig(aws_region="us-east-1", working_dir=str(tmp_path / "work"))


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so nothing can reach a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.delenv("AWS_PROFILE", raising=False)
