"""
Tests for the deployment orchestrator, including full runs against moto.
"""

import json
from unittest.mock import Mock, patch

import boto3
import pytest
from botocore.exceptions import NoCredentialsError
from moto import mock_aws

from cicd_credentials.deployment import DeploymentOrchestrator, DeploymentPhase, build_resource_graph
from cicd_credentials.deployment.report import MASK, render_outputs, render_plan
from cicd_credentials.provisioning import Action, Plan, ResourceChange, State, StateStore
from cicd_credentials.session import AwsContext

USER_NAME = "github-actions-ecr-user"
SECRET_PARAMETER = "/ci-cd/github-actions/secret-access-key"
KEY_ID_PARAMETER = "/ci-cd/github-actions/access-key-id"


@pytest.fixture
def aws(aws_credentials):
    """Mocked AWS account."""
    with mock_aws():
        yield


def read_parameter(name: str) -> str:
    ssm = boto3.client("ssm", region_name="us-east-1")
    return ssm.get_parameter(Name=name, WithDecryption=True)["Parameter"]["Value"]


class TestDeploymentOrchestrator:
    """Test orchestrator phases without AWS."""

    def setup_method(self):
        """Set up test fixtures."""
        self.context = Mock()
        self.context.region = "us-east-1"

    def test_unauthenticated_session_creates_nothing(self, config):
        """Test a missing session fails before any state or AWS resource exists."""
        self.context.sts.get_caller_identity.side_effect = NoCredentialsError()
        orchestrator = DeploymentOrchestrator(config, context=self.context)

        result = orchestrator.run()

        assert not result.success
        assert result.phase is DeploymentPhase.FAILED
        assert "aws configure" in result.errors[0]
        assert not config.state_path.exists()
        assert not self.context.iam.method_calls
        assert not self.context.ssm.method_calls

    def test_failed_verification_keeps_existing_plan(self, config):
        """Test a deploy that fails verification leaves an earlier plan file alone."""
        config.plan_path.parent.mkdir(parents=True)
        config.plan_path.write_text("{}")
        self.context.sts.get_caller_identity.side_effect = NoCredentialsError()

        result = DeploymentOrchestrator(config, context=self.context).run()

        assert result.phase is DeploymentPhase.FAILED
        assert config.plan_path.read_text() == "{}"

    def test_outputs_mask_recorded_secret(self, config):
        """Test a recorded secret parameter shows masked and a missing one as absent."""
        state = State()
        state.record("access_key", {"user_name": USER_NAME, "access_key_id": "AKIAEXAMPLE", "status": "Active"})
        StateStore(config.state_path).save(state)
        orchestrator = DeploymentOrchestrator(config, context=self.context)

        assert orchestrator.outputs()["secret_access_key"] is None

        state.record("secret_access_key_parameter", {"name": SECRET_PARAMETER, "type": "SecureString"})
        StateStore(config.state_path).save(state)

        assert orchestrator.outputs()["secret_access_key"] == MASK
        assert not self.context.ssm.method_calls

    def test_report_requires_apply(self, config):
        """Test phases cannot be skipped."""
        orchestrator = DeploymentOrchestrator(config, context=self.context)

        with pytest.raises(RuntimeError):
            orchestrator.report()

    def test_resource_graph(self, config, identity):
        """Test the workflow graph order."""
        graph = build_resource_graph(self.context, identity, config)
        order = graph.order()

        assert len(graph) == 6
        assert order.index("iam_user") < order.index("access_key")
        assert order.index("iam_policy") < order.index("iam_user_policy_attachment")
        assert order.index("access_key") < order.index("secret_access_key_parameter")
        assert order.index("access_key") < order.index("access_key_id_parameter")


class TestReport:
    """Test plan and output rendering."""

    def test_render_plan(self):
        """Test changed resources and the summary line."""
        plan = Plan("lineage", 0, {}, [
            ResourceChange("iam_user", Action.NO_OP, "up to date"),
            ResourceChange("access_key", Action.REPLACE, "user_name changes"),
            ResourceChange("secret_access_key_parameter", Action.UPDATE, "access_key is being replaced"),
        ])

        lines = render_plan(plan)

        assert "  -/+ access_key (replace): user_name changes" in lines
        assert not any("iam_user" in line for line in lines)
        assert lines[-1] == "Plan: 1 to add, 1 to change, 1 to destroy."

    def test_render_empty_plan(self):
        """Test a converged plan."""
        plan = Plan("lineage", 0, {}, [ResourceChange("iam_user", Action.NO_OP, "up to date")])

        assert render_plan(plan) == ["No changes. Infrastructure is up to date."]

    def test_render_outputs_masks_sensitive_values(self):
        """Test key material is masked."""
        lines = render_outputs({
            "user_arn": "arn:aws:iam::123456789012:user/ci-cd/u",
            "access_key_id": "AKIAEXAMPLE",
            "secret_access_key": "wJalrXUtnFEMI",
            "access_key_id_parameter": None,
        })

        assert lines == [
            "user_arn = arn:aws:iam::123456789012:user/ci-cd/u",
            f"access_key_id = {MASK}",
            f"secret_access_key = {MASK}",
            "access_key_id_parameter = (not available)",
        ]


class TestDeploymentRun:
    """Full runs against a mocked AWS account."""

    def test_deploy(self, aws, config, capsys):
        """Test a deploy creates every resource and reports the outputs."""
        result = DeploymentOrchestrator(config).run()

        assert result.success
        assert result.phase is DeploymentPhase.REPORTED
        assert result.plan.summary() == {"add": 6, "change": 0, "destroy": 0}

        iam = boto3.client("iam", region_name="us-east-1")
        user = iam.get_user(UserName=USER_NAME)["User"]
        assert user["Path"] == "/ci-cd/"
        attached = iam.list_attached_user_policies(UserName=USER_NAME)["AttachedPolicies"]
        assert [p["PolicyName"] for p in attached] == ["GitHubActionsECRPolicy"]
        keys = iam.list_access_keys(UserName=USER_NAME)["AccessKeyMetadata"]
        assert len(keys) == 1

        assert read_parameter(KEY_ID_PARAMETER) == keys[0]["AccessKeyId"]
        assert result.outputs["access_key_id"] == keys[0]["AccessKeyId"]
        assert result.outputs["secret_access_key"] == MASK
        assert result.outputs["user_arn"] == f"arn:aws:iam::123456789012:user/ci-cd/{USER_NAME}"

        out = capsys.readouterr().out
        assert "AWS_ACCOUNT_ID: 123456789012" in out
        assert SECRET_PARAMETER in out

    def test_secret_never_persisted_or_printed(self, aws, config, capsys):
        """Test the secret only lives in Parameter Store."""
        DeploymentOrchestrator(config).run()
        secret = read_parameter(SECRET_PARAMETER)

        assert secret
        assert secret not in config.state_path.read_text()
        assert secret not in capsys.readouterr().out
        assert not config.plan_path.exists()

    def test_secret_parameter_type(self, aws, config):
        """Test both parameters are SecureStrings."""
        DeploymentOrchestrator(config).run()
        ssm = boto3.client("ssm", region_name="us-east-1")

        for name in (KEY_ID_PARAMETER, SECRET_PARAMETER):
            assert ssm.get_parameter(Name=name)["Parameter"]["Type"] == "SecureString"

    def test_redeploy_is_idempotent(self, aws, config):
        """Test a second deploy changes nothing and keeps the key."""
        first = DeploymentOrchestrator(config).run()
        second = DeploymentOrchestrator(config).run()

        assert second.success
        assert not second.plan.has_changes
        assert second.outputs["access_key_id"] == first.outputs["access_key_id"]

    def test_destroy_then_deploy_issues_new_key(self, aws, config):
        """Test destroy removes everything and a new deploy gets a new key."""
        first = DeploymentOrchestrator(config).run()

        DeploymentOrchestrator(config).destroy()

        iam = boto3.client("iam", region_name="us-east-1")
        assert USER_NAME not in [u["UserName"] for u in iam.list_users()["Users"]]
        ssm = boto3.client("ssm", region_name="us-east-1")
        assert ssm.get_parameters(Names=[KEY_ID_PARAMETER, SECRET_PARAMETER])["Parameters"] == []

        second = DeploymentOrchestrator(config).run()
        assert second.success
        assert second.outputs["access_key_id"] != first.outputs["access_key_id"]

    def test_deleted_secret_parameter_rotates_key(self, aws, config):
        """Test a lost secret parameter can only be restored with a new key."""
        first = DeploymentOrchestrator(config).run()
        boto3.client("ssm", region_name="us-east-1").delete_parameter(Name=SECRET_PARAMETER)

        second = DeploymentOrchestrator(config).run()

        assert second.success
        assert second.plan.change_for("access_key").action is Action.REPLACE
        new_key = second.outputs["access_key_id"]
        assert new_key != first.outputs["access_key_id"]
        assert read_parameter(KEY_ID_PARAMETER) == new_key
        keys = boto3.client("iam", region_name="us-east-1").list_access_keys(UserName=USER_NAME)
        assert [k["AccessKeyId"] for k in keys["AccessKeyMetadata"]] == [new_key]

    def test_untracked_user_is_conflict(self, aws, config):
        """Test an existing user outside state fails the run."""
        boto3.client("iam", region_name="us-east-1").create_user(UserName=USER_NAME, Path="/ci-cd/")

        result = DeploymentOrchestrator(config).run()

        assert result.phase is DeploymentPhase.FAILED
        assert "not tracked" in result.errors[0]

    def test_report_failure_does_not_fail_deploy(self, aws, config):
        """Test a broken report is only a warning."""
        with patch(
            "cicd_credentials.deployment.orchestrator.print_operator_instructions",
            side_effect=OSError("stdout closed"),
        ):
            result = DeploymentOrchestrator(config).run()

        assert result.success
        assert result.phase is DeploymentPhase.REPORTED
        assert "stdout closed" in result.warnings[0]

    def test_outputs_reveal_secret(self, aws, config):
        """Test the secret is read back only when asked for."""
        DeploymentOrchestrator(config).run()
        orchestrator = DeploymentOrchestrator(config)

        assert orchestrator.outputs()["secret_access_key"] == MASK
        assert orchestrator.outputs(reveal_secret=True)["secret_access_key"] == read_parameter(SECRET_PARAMETER)

    def test_state_records_managed_resources(self, aws, config):
        """Test state holds every resource address."""
        DeploymentOrchestrator(config).run()

        state = json.loads(config.state_path.read_text())

        assert set(state["resources"]) == {
            "iam_policy",
            "iam_user",
            "iam_user_policy_attachment",
            "access_key",
            "access_key_id_parameter",
            "secret_access_key_parameter",
        }

    def test_explicit_context(self, aws, config):
        """Test an injected session is used for every call."""
        context = AwsContext(session=boto3.Session(region_name="us-east-1"))

        result = DeploymentOrchestrator(config, context=context).run()

        assert result.success
        assert result.outputs["user_arn"].endswith(USER_NAME)
