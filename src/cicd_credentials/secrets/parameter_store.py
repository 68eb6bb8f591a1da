"""
SSM Parameter Store publishing of the issued key pair.
"""

import logging
from typing import Dict, Any, Optional

from botocore.exceptions import ClientError

from ..config import ProvisioningConfig
from ..provisioning.graph import Action, Resource
from ..session import AwsContext

logger = logging.getLogger(__name__)

SECURE_STRING = "SecureString"

ACCESS_KEY_ID = "access_key_id"
SECRET_ACCESS_KEY = "secret_access_key"


class ParameterStore:
    """Thin wrapper over the SSM parameter API."""

    def __init__(self, context: AwsContext, kms_key_id: Optional[str] = None):
        self.context = context
        self.kms_key_id = kms_key_id

    def put_secure(self, name: str, value: str, description: str = "") -> int:
        """
        Write a SecureString parameter, overwriting any previous value.

        Returns:
            New parameter version
        """
        params: Dict[str, Any] = {
            "Name": name,
            "Value": value,
            "Type": SECURE_STRING,
            "Overwrite": True,
        }
        if description:
            params["Description"] = description
        if self.kms_key_id:
            params["KeyId"] = self.kms_key_id

        response = self.context.ssm.put_parameter(**params)
        logger.info(f"Wrote parameter {name} (version {response['Version']})")
        return response["Version"]

    def describe(self, name: str) -> Optional[Dict[str, Any]]:
        """Parameter metadata without decrypting it, or None if missing."""
        try:
            parameter = self.context.ssm.get_parameter(Name=name, WithDecryption=False)["Parameter"]
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ParameterNotFound":
                return None
            raise
        return {
            "name": parameter["Name"],
            "type": parameter["Type"],
            "version": parameter.get("Version"),
        }

    def read(self, name: str) -> Optional[str]:
        """Decrypted parameter value, or None if missing."""
        try:
            response = self.context.ssm.get_parameter(Name=name, WithDecryption=True)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ParameterNotFound":
                return None
            raise
        return response["Parameter"]["Value"]

    def delete(self, name: str) -> None:
        try:
            self.context.ssm.delete_parameter(Name=name)
            logger.info(f"Deleted parameter {name}")
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ParameterNotFound":
                raise


class SecureParameterResource(Resource):
    """
    One half of the key pair stored as a SecureString parameter.

    The parameter records which access key it was written for, so a new
    key always rewrites it and an unchanged key never does.
    """

    depends_on = ("access_key",)
    on_dependency_change = Action.UPDATE
    replace_on = ("name",)
    compare = ("type", "source_key_id")
    adopt_existing = True

    def __init__(self, address: str, name: str, field: str, store: ParameterStore, description: str = ""):
        if field not in (ACCESS_KEY_ID, SECRET_ACCESS_KEY):
            raise ValueError(f"Unknown key pair field: {field}")
        self.address = address
        self.name = name
        self.field = field
        self.store = store
        self.description = description
        if field == SECRET_ACCESS_KEY:
            self.requires_secret_from = "access_key"

    def describe(self, attributes: Dict[str, Any]) -> str:
        return f"parameter {attributes.get('name')}"

    def desired(self, records: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        source = records.get("access_key") or {}
        return {
            "name": self.name,
            "type": SECURE_STRING,
            "field": self.field,
            "source_key_id": source.get("access_key_id"),
        }

    def read(self, recorded: Optional[Dict[str, Any]], desired: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        name = (recorded or desired)["name"]
        live = self.store.describe(name)
        if live is None:
            return None
        live["source_key_id"] = (recorded or {}).get("source_key_id")
        return live

    def _value(self, apply_context: Any) -> str:
        if self.field == SECRET_ACCESS_KEY:
            return apply_context.claim_secret("access_key")
        return apply_context.records["access_key"]["access_key_id"]

    def create(self, desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        version = self.store.put_secure(desired["name"], self._value(apply_context), self.description)
        return {
            "name": desired["name"],
            "type": SECURE_STRING,
            "field": self.field,
            "version": version,
            "source_key_id": apply_context.records["access_key"]["access_key_id"],
        }

    def update(self, recorded: Dict[str, Any], desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        return self.create(desired, apply_context)

    def delete(self, recorded: Dict[str, Any]) -> None:
        self.store.delete(recorded["name"])


def build_parameter_resources(context: AwsContext, config: ProvisioningConfig):
    """Both parameter resources for the configured paths."""
    store = ParameterStore(context, config.kms_key_id)
    return [
        SecureParameterResource(
            "access_key_id_parameter",
            config.access_key_id_parameter,
            ACCESS_KEY_ID,
            store,
            f"Access key id of {config.user_name}",
        ),
        SecureParameterResource(
            "secret_access_key_parameter",
            config.secret_access_key_parameter,
            SECRET_ACCESS_KEY,
            store,
            f"Secret access key of {config.user_name}",
        ),
    ]
