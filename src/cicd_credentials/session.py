"""
Explicit AWS session context passed to every resolver and resource.
"""

from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ProfileNotFound

from .exceptions import PreconditionError


class AwsContext:
    """Holds one boto3 session and caches its service clients."""

    def __init__(
        self,
        region: Optional[str] = None,
        profile: Optional[str] = None,
        session: Optional[boto3.Session] = None
    ):
        """
        Initialize the context.

        Args:
            region: AWS region (falls back to the profile/environment default)
            profile: AWS profile to use
            session: Pre-built session, mainly for tests
        """
        self.profile = profile
        if session is None:
            session_args: Dict[str, Any] = {}
            if region:
                session_args["region_name"] = region
            if profile:
                session_args["profile_name"] = profile
            try:
                session = boto3.Session(**session_args)
            except ProfileNotFound as e:
                raise PreconditionError(str(e)) from e
        self._session = session
        self._clients: Dict[str, Any] = {}

    @property
    def region(self) -> Optional[str]:
        return self._session.region_name

    def client(self, service: str) -> Any:
        """Get or create AWS client for a service."""
        if service not in self._clients:
            self._clients[service] = self._session.client(service)
        return self._clients[service]

    @property
    def iam(self):
        """Get IAM client."""
        return self.client("iam")

    @property
    def sts(self):
        """Get STS client."""
        return self.client("sts")

    @property
    def ssm(self):
        """Get SSM client."""
        return self.client("ssm")
