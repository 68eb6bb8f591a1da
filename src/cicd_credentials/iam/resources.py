"""
IAM resources: the CI/CD user, its managed policy and the attachment.
"""

import json
import logging
from urllib.parse import unquote
from typing import Dict, Any, List, Optional

from botocore.exceptions import ClientError

from ..config import ProvisioningConfig
from ..exceptions import ConflictError
from ..naming import ArnBuilder
from ..provisioning.graph import Resource
from ..session import AwsContext
from .identity import CallerIdentity
from .policies import PolicyGenerator

logger = logging.getLogger(__name__)

# AWS keeps at most five versions of a managed policy
MAX_POLICY_VERSIONS = 5


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _normalize_document(document: Any) -> Dict[str, Any]:
    """Policy documents come back either parsed or URL-encoded JSON."""
    if isinstance(document, str):
        document = json.loads(unquote(document))
    # Round-trip so key order never causes a spurious diff
    return json.loads(json.dumps(document, sort_keys=True))


def _tag_list(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in sorted(tags.items())]


class ManagedPolicyResource(Resource):
    """Customer-managed policy holding the ECR push permissions."""

    address = "iam_policy"
    replace_on = ("name", "path")
    compare = ("document",)

    def __init__(self, context: AwsContext, identity: CallerIdentity, config: ProvisioningConfig):
        self.context = context
        self.identity = identity
        self.config = config
        self.policy_generator = PolicyGenerator(identity)

    def describe(self, attributes: Dict[str, Any]) -> str:
        return f"IAM policy {attributes.get('name')}"

    def desired(self, records: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "name": self.config.policy_name,
            "path": self.config.policy_path,
            "description": self.config.policy_description,
            "arn": ArnBuilder.policy_arn(
                self.identity.partition,
                self.identity.account_id,
                self.config.policy_path,
                self.config.policy_name,
            ),
            "document": _normalize_document(self.policy_generator.generate_ecr_push_policy()),
        }

    def read(self, recorded: Optional[Dict[str, Any]], desired: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        arn = (recorded or desired)["arn"]
        iam = self.context.iam
        try:
            policy = iam.get_policy(PolicyArn=arn)["Policy"]
            version = iam.get_policy_version(
                PolicyArn=arn,
                VersionId=policy["DefaultVersionId"]
            )
        except ClientError as e:
            if _error_code(e) == "NoSuchEntity":
                return None
            raise

        return {
            "name": policy["PolicyName"],
            "path": policy.get("Path", "/"),
            "arn": policy["Arn"],
            "default_version_id": policy["DefaultVersionId"],
            "document": _normalize_document(version["PolicyVersion"]["Document"]),
        }

    def create(self, desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        try:
            response = self.context.iam.create_policy(
                PolicyName=desired["name"],
                Path=desired["path"],
                PolicyDocument=json.dumps(desired["document"]),
                Description=desired["description"],
                Tags=_tag_list(self.config.tags),
            )
        except ClientError as e:
            if _error_code(e) == "EntityAlreadyExists":
                raise ConflictError(str(e)) from e
            raise

        policy = response["Policy"]
        logger.info(f"Created policy {policy['Arn']}")
        return {
            "name": policy["PolicyName"],
            "path": policy.get("Path", desired["path"]),
            "arn": policy["Arn"],
            "default_version_id": policy.get("DefaultVersionId", "v1"),
            "document": desired["document"],
        }

    def update(self, recorded: Dict[str, Any], desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        iam = self.context.iam
        arn = recorded["arn"]

        # Make room for the new version
        versions = iam.list_policy_versions(PolicyArn=arn)["Versions"]
        if len(versions) >= MAX_POLICY_VERSIONS:
            non_default = [v for v in versions if not v["IsDefaultVersion"]]
            oldest = min(non_default, key=lambda v: v["CreateDate"])
            iam.delete_policy_version(PolicyArn=arn, VersionId=oldest["VersionId"])
            logger.info(f"Deleted policy version {oldest['VersionId']} of {arn}")

        response = iam.create_policy_version(
            PolicyArn=arn,
            PolicyDocument=json.dumps(desired["document"]),
            SetAsDefault=True
        )
        version_id = response["PolicyVersion"]["VersionId"]
        logger.info(f"Created policy version {version_id} of {arn}")

        return {**recorded, "default_version_id": version_id, "document": desired["document"]}

    def delete(self, recorded: Dict[str, Any]) -> None:
        iam = self.context.iam
        arn = recorded["arn"]
        try:
            versions = iam.list_policy_versions(PolicyArn=arn)["Versions"]
            for version in versions:
                if not version["IsDefaultVersion"]:
                    iam.delete_policy_version(PolicyArn=arn, VersionId=version["VersionId"])
            iam.delete_policy(PolicyArn=arn)
            logger.info(f"Deleted policy {arn}")
        except ClientError as e:
            if _error_code(e) != "NoSuchEntity":
                raise


class UserResource(Resource):
    """IAM user the CI system authenticates as."""

    address = "iam_user"
    replace_on = ("name", "path")
    compare = ("tags",)

    def __init__(self, context: AwsContext, identity: CallerIdentity, config: ProvisioningConfig):
        self.context = context
        self.identity = identity
        self.config = config

    def describe(self, attributes: Dict[str, Any]) -> str:
        return f"IAM user {attributes.get('name')}"

    def desired(self, records: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "name": self.config.user_name,
            "path": self.config.user_path,
            "arn": ArnBuilder.user_arn(
                self.identity.partition,
                self.identity.account_id,
                self.config.user_path,
                self.config.user_name,
            ),
            "tags": dict(self.config.tags),
        }

    def read(self, recorded: Optional[Dict[str, Any]], desired: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        name = (recorded or desired)["name"]
        iam = self.context.iam
        try:
            user = iam.get_user(UserName=name)["User"]
            tags = iam.list_user_tags(UserName=name).get("Tags", [])
        except ClientError as e:
            if _error_code(e) == "NoSuchEntity":
                return None
            raise

        return {
            "name": user["UserName"],
            "path": user.get("Path", "/"),
            "arn": user["Arn"],
            "user_id": user.get("UserId"),
            "tags": {t["Key"]: t["Value"] for t in tags},
        }

    def create(self, desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        try:
            response = self.context.iam.create_user(
                UserName=desired["name"],
                Path=desired["path"],
                Tags=_tag_list(desired["tags"]),
            )
        except ClientError as e:
            if _error_code(e) == "EntityAlreadyExists":
                raise ConflictError(str(e)) from e
            raise

        user = response["User"]
        logger.info(f"Created user {user['Arn']}")
        return {
            "name": user["UserName"],
            "path": user.get("Path", desired["path"]),
            "arn": user["Arn"],
            "user_id": user.get("UserId"),
            "tags": dict(desired["tags"]),
        }

    def update(self, recorded: Dict[str, Any], desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        iam = self.context.iam
        name = recorded["name"]

        current = iam.list_user_tags(UserName=name).get("Tags", [])
        stale = [t["Key"] for t in current if t["Key"] not in desired["tags"]]
        if stale:
            iam.untag_user(UserName=name, TagKeys=stale)
        iam.tag_user(UserName=name, Tags=_tag_list(desired["tags"]))
        logger.info(f"Updated tags of user {name}")

        return {**recorded, "tags": dict(desired["tags"])}

    def delete(self, recorded: Dict[str, Any]) -> None:
        try:
            self.context.iam.delete_user(UserName=recorded["name"])
            logger.info(f"Deleted user {recorded['name']}")
        except ClientError as e:
            if _error_code(e) != "NoSuchEntity":
                raise


class PolicyAttachmentResource(Resource):
    """Binding of the managed policy to the user."""

    address = "iam_user_policy_attachment"
    depends_on = ("iam_user", "iam_policy")
    replace_on = ("user_name", "policy_arn")
    adopt_existing = True

    def __init__(self, context: AwsContext, identity: CallerIdentity, config: ProvisioningConfig):
        self.context = context
        self.identity = identity
        self.config = config

    def desired(self, records: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "user_name": self.config.user_name,
            "policy_arn": ArnBuilder.policy_arn(
                self.identity.partition,
                self.identity.account_id,
                self.config.policy_path,
                self.config.policy_name,
            ),
        }

    def read(self, recorded: Optional[Dict[str, Any]], desired: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        target = recorded or desired
        try:
            paginator = self.context.iam.get_paginator("list_attached_user_policies")
            for page in paginator.paginate(UserName=target["user_name"]):
                for policy in page["AttachedPolicies"]:
                    if policy["PolicyArn"] == target["policy_arn"]:
                        return {"user_name": target["user_name"], "policy_arn": policy["PolicyArn"]}
        except ClientError as e:
            if _error_code(e) == "NoSuchEntity":
                return None
            raise
        return None

    def create(self, desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        self.context.iam.attach_user_policy(
            UserName=desired["user_name"],
            PolicyArn=desired["policy_arn"]
        )
        logger.info(f"Attached {desired['policy_arn']} to {desired['user_name']}")
        return dict(desired)

    def update(self, recorded: Dict[str, Any], desired: Dict[str, Any], apply_context: Any) -> Dict[str, Any]:
        # Attaching is idempotent
        return self.create(desired, apply_context)

    def delete(self, recorded: Dict[str, Any]) -> None:
        try:
            self.context.iam.detach_user_policy(
                UserName=recorded["user_name"],
                PolicyArn=recorded["policy_arn"]
            )
            logger.info(f"Detached {recorded['policy_arn']} from {recorded['user_name']}")
        except ClientError as e:
            if _error_code(e) != "NoSuchEntity":
                raise
