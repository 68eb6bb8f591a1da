"""
Access key issuance.

AWS reveals the secret access key only in the CreateAccessKey response.
It is captured there, handed to the parameter store in the same run and
never written to state or plans.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

from botocore.exceptions import ClientError

from ..config import ProvisioningConfig
from ..exceptions import QuotaExceededError, SecretAlreadyRevealedError
from ..provisioning.graph import Resource
from ..session import AwsContext

logger = logging.getLogger(__name__)


class OneShotSecret:
    """Secret value that can be revealed at most once."""

    def __init__(self, identifier: str, value: str):
        self.identifier = identifier
        self._value: Optional[str] = value

    @property
    def revealed(self) -> bool:
        return self._value is None

    def reveal(self) -> str:
        """
        Return the secret and forget it.

        Raises:
            SecretAlreadyRevealedError: If the secret was already revealed
        """
        if self._value is None:
            raise SecretAlreadyRevealedError(
                f"Secret for {self.identifier} was already consumed and cannot be read again"
            )
        value, self._value = self._value, None
        return value

    def __repr__(self) -> str:
        state = "revealed" if self.revealed else "sealed"
        return f"OneShotSecret({self.identifier!r}, {state})"


@dataclass
class IAMCredentials:
    """Access key issued for the CI/CD user."""
    access_key_id: str
    secret: OneShotSecret
    user_name: str
    status: str = "Active"

    def __repr__(self) -> str:
        return f"IAMCredentials(access_key_id={self.access_key_id!r}, user_name={self.user_name!r})"


def issue_access_key(context: AwsContext, user_name: str) -> IAMCredentials:
    """
    Create a new access key for a user.

    Raises:
        QuotaExceededError: If the user already has the maximum number of keys
    """
    try:
        response = context.iam.create_access_key(UserName=user_name)
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "LimitExceeded":
            raise QuotaExceededError(str(e)) from e
        raise

    access_key = response["AccessKey"]
    logger.info(f"Created access key {access_key['AccessKeyId']} for {user_name}")
    return IAMCredentials(
        access_key_id=access_key["AccessKeyId"],
        secret=OneShotSecret(access_key["AccessKeyId"], access_key["SecretAccessKey"]),
        user_name=user_name,
        status=access_key.get("Status", "Active"),
    )


class AccessKeyResource(Resource):
    """Long-lived access key of the CI/CD user."""

    address = "access_key"
    depends_on = ("iam_user",)
    replace_on = ("user_name",)
    compare = ("status",)

    def __init__(self, context: AwsContext, config: ProvisioningConfig):
        self.context = context
        self.config = config

    def describe(self, attributes: Dict[str, Any]) -> str:
        return f"access key of {attributes.get('user_name')}"

    def desired(self, records: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        return {"user_name": self.config.user_name, "status": "Active"}

    def read(self, recorded: Optional[Dict[str, Any]], desired: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        # Keys are anonymous until issued, so only a recorded key can be found
        if recorded is None:
            return None

        try:
            paginator = self.context.iam.get_paginator("list_access_keys")
            for page in paginator.paginate(UserName=recorded["user_name"]):
                for key in page["AccessKeyMetadata"]:
                    if key["AccessKeyId"] == recorded["access_key_id"]:
                        return {
                            "user_name": recorded["user_name"],
                            "access_key_id": key["AccessKeyId"],
                            "status": key["Status"],
                        }
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "NoSuchEntity":
                return None
            raise
        return None

    def create(self, desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        credentials = issue_access_key(self.context, desired["user_name"])
        apply_context.capture_secret(self.address, credentials.secret)
        return {
            "user_name": credentials.user_name,
            "access_key_id": credentials.access_key_id,
            "status": credentials.status,
        }

    def update(self, recorded: Dict[str, Any], desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        self.context.iam.update_access_key(
            UserName=recorded["user_name"],
            AccessKeyId=recorded["access_key_id"],
            Status=desired["status"]
        )
        logger.info(f"Set access key {recorded['access_key_id']} to {desired['status']}")
        return {**recorded, "status": desired["status"]}

    def delete(self, recorded: Dict[str, Any]) -> None:
        try:
            self.context.iam.delete_access_key(
                UserName=recorded["user_name"],
                AccessKeyId=recorded["access_key_id"]
            )
            logger.info(f"Deleted access key {recorded['access_key_id']}")
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "NoSuchEntity":
                raise
