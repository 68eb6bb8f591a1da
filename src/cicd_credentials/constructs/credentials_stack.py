"""
CloudFormation export of the CI/CD credential resources.

Teams that provision through stacks can deploy the IAM user, policy and
access key from this template instead of running the workflow. SSM
SecureString parameters cannot be declared in CloudFormation, so the
template outputs only the key id and leaves secret storage to the stack
operator.
"""

from typing import Any, Dict

from troposphere import Template, Output, Ref, GetAtt, Sub, Tags
from troposphere import iam

from ..config import ProvisioningConfig
from ..iam.identity import CallerIdentity
from ..iam.policies import PolicyGenerator

# Pseudo parameters resolved by CloudFormation at deploy time
STACK_IDENTITY = CallerIdentity(
    account_id="${AWS::AccountId}",
    region="${AWS::Region}",
    arn="",
    partition="${AWS::Partition}",
)


class CredentialsStackConstruct:
    """
    Construct for the CI/CD credential stack.
    Creates the managed policy, the user and its access key.
    """

    def __init__(self, template: Template, config: ProvisioningConfig):
        """
        Initialize credentials construct.

        Args:
            template: CloudFormation template to add resources to
            config: Provisioning configuration
        """
        self.template = template
        self.config = config
        self.resources: Dict[str, Any] = {}

        self._create_user()
        self._create_policy()
        self._create_access_key()
        self._create_outputs()

    def _policy_document(self) -> Dict[str, Any]:
        """ECR push policy with repository ARNs wrapped in Fn::Sub."""
        document = PolicyGenerator(STACK_IDENTITY).generate_ecr_push_policy()
        for statement in document["Statement"]:
            resources = statement["Resource"]
            if isinstance(resources, list):
                statement["Resource"] = [Sub(arn) for arn in resources]
        return document

    def _create_user(self) -> None:
        self.user = self.template.add_resource(iam.User(
            "CICDUser",
            UserName=self.config.user_name,
            Path=self.config.user_path,
            Tags=Tags(**self.config.tags),
        ))
        self.resources["user"] = self.user

    def _create_policy(self) -> None:
        self.policy = self.template.add_resource(iam.ManagedPolicy(
            "ECRPushPolicy",
            ManagedPolicyName=self.config.policy_name,
            Path=self.config.policy_path,
            Description=self.config.policy_description,
            PolicyDocument=self._policy_document(),
            Users=[Ref(self.user)],
        ))
        self.resources["policy"] = self.policy

    def _create_access_key(self) -> None:
        self.access_key = self.template.add_resource(iam.AccessKey(
            "CICDAccessKey",
            UserName=Ref(self.user),
            Status="Active",
        ))
        self.resources["access_key"] = self.access_key

    def _create_outputs(self) -> None:
        self.template.add_output(Output(
            "UserArn",
            Description="ARN of the CI/CD IAM user",
            Value=GetAtt(self.user, "Arn"),
        ))
        self.template.add_output(Output(
            "PolicyArn",
            Description="ARN of the ECR push policy",
            Value=Ref(self.policy),
        ))
        self.template.add_output(Output(
            "AccessKeyId",
            Description="Access key id of the CI/CD user",
            Value=Ref(self.access_key),
        ))


def build_credentials_template(config: ProvisioningConfig) -> Template:
    """Template holding the CI/CD credential resources."""
    template = Template()
    template.set_version("2010-09-09")
    template.set_description(
        f"CI/CD credentials for {config.user_name}: least-privilege ECR push access"
    )
    CredentialsStackConstruct(template, config)
    return template


def render_template(config: ProvisioningConfig, output_format: str = "yaml") -> str:
    """Render the credential template as YAML or JSON."""
    template = build_credentials_template(config)
    if output_format == "json":
        return template.to_json()
    return template.to_yaml()
