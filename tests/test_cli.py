"""
Tests for the command line interface.
"""

import json
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner
from moto import mock_aws

from cicd_credentials.cli.__main__ import cli
from cicd_credentials.deployment import DeploymentPhase, DeploymentResult
from cicd_credentials.provisioning import State, StateStore


@pytest.fixture
def runner(tmp_path, monkeypatch):
    """CLI runner inside an empty working directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CICD_CREDENTIALS_CONFIG", raising=False)
    return CliRunner()


def invoke(runner, args, **kwargs):
    return runner.invoke(cli, args, obj={}, **kwargs)


class TestPolicyCommand:
    """Test the policy command."""

    def test_offline_policy(self, runner):
        """Test rendering for an explicit account without AWS."""
        result = invoke(runner, ["--region", "eu-west-1", "policy", "--account-id", "123456789012"])

        assert result.exit_code == 0
        policy = json.loads(result.output)
        assert "arn:aws:ecr:eu-west-1:123456789012:repository/retail-store-ui" in policy["Statement"][1]["Resource"]

    def test_policy_from_session(self, runner, aws_credentials):
        """Test the account is resolved from the session."""
        with mock_aws():
            result = invoke(runner, ["--region", "us-east-1", "policy"])

        assert result.exit_code == 0
        assert "123456789012" in result.output


class TestTemplateCommand:
    """Test the template command."""

    def test_json_template(self, runner):
        """Test the CloudFormation export."""
        result = invoke(runner, ["template", "--format", "json"])

        assert result.exit_code == 0
        template = json.loads(result.output)
        assert set(template["Resources"]) == {"CICDUser", "ECRPushPolicy", "CICDAccessKey"}

    def test_yaml_template(self, runner):
        """Test the default YAML output."""
        result = invoke(runner, ["template"])

        assert result.exit_code == 0
        assert "ECRPushPolicy" in result.output


class TestConfigHandling:
    """Test global options."""

    def test_missing_config_file(self, runner):
        """Test a missing config file exits with an error."""
        result = invoke(runner, ["--config", "missing.yaml", "template"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_config_file(self, runner, tmp_path):
        """Test the config file feeds the commands."""
        (tmp_path / "cicd.yaml").write_text(yaml.safe_dump({"user_name": "pipeline-user"}))

        result = invoke(runner, ["--config", "cicd.yaml", "template", "-f", "json"])

        assert result.exit_code == 0
        user = json.loads(result.output)["Resources"]["CICDUser"]
        assert user["Properties"]["UserName"] == "pipeline-user"


class TestDeployCommands:
    """Test commands that drive the orchestrator."""

    def test_deploy_failure_exit_code(self, runner):
        """Test a failed deploy exits non-zero."""
        failed = DeploymentResult(phase=DeploymentPhase.FAILED, message="Deployment failed", duration=0.0)
        with patch("cicd_credentials.cli.__main__.DeploymentOrchestrator") as orchestrator:
            orchestrator.return_value.run.return_value = failed
            result = invoke(runner, ["deploy"])

        assert result.exit_code == 1

    def test_destroy_requires_confirmation(self, runner):
        """Test destroy aborts unless confirmed."""
        with patch("cicd_credentials.cli.__main__.DeploymentOrchestrator") as orchestrator:
            result = invoke(runner, ["destroy"], input="n\n")

        assert result.exit_code == 1
        orchestrator.return_value.destroy.assert_not_called()

    def test_plan_without_init(self, runner, aws_credentials):
        """Test planning before init explains what to do."""
        with mock_aws():
            result = invoke(runner, ["--region", "us-east-1", "plan"])

        assert result.exit_code == 1
        assert "init" in result.output

    def test_init_plan_apply(self, runner, aws_credentials, tmp_path):
        """Test the step-by-step workflow."""
        with mock_aws():
            assert invoke(runner, ["--region", "us-east-1", "init"]).exit_code == 0

            planned = invoke(runner, ["--region", "us-east-1", "plan"])
            assert planned.exit_code == 0
            assert "Plan: 6 to add, 0 to change, 0 to destroy." in planned.output

            applied = invoke(runner, ["--region", "us-east-1", "apply"])
            assert applied.exit_code == 0
            assert "AWS_ACCESS_KEY_ID" in applied.output

            again = invoke(runner, ["--region", "us-east-1", "apply"])
            assert again.exit_code == 1
            assert "plan again" in again.output


class TestOutputCommand:
    """Test the output command."""

    @pytest.fixture
    def state(self, tmp_path):
        state = State()
        state.record("iam_user", {"name": "u", "arn": "arn:aws:iam::123456789012:user/ci-cd/u"})
        state.record("access_key", {"user_name": "u", "access_key_id": "AKIAEXAMPLE", "status": "Active"})
        state.record("secret_access_key_parameter", {"name": "/ci-cd/secret", "type": "SecureString"})
        StateStore(tmp_path / ".cicd-credentials" / "state.json").save(state)
        return state

    def test_outputs_are_masked(self, runner, state):
        """Test sensitive outputs are masked by default."""
        result = invoke(runner, ["--region", "us-east-1", "output"])

        assert result.exit_code == 0
        assert "AKIAEXAMPLE" not in result.output
        assert "access_key_id = (sensitive value)" in result.output
        assert "secret_access_key = (sensitive value)" in result.output
        assert "user_arn = arn:aws:iam::123456789012:user/ci-cd/u" in result.output

    def test_raw_output(self, runner, state):
        """Test a single raw value."""
        result = invoke(runner, ["--region", "us-east-1", "output", "access_key_id", "--raw"])

        assert result.exit_code == 0
        assert result.output.strip() == "AKIAEXAMPLE"

    def test_unknown_output(self, runner, state):
        """Test an unknown name is a usage error."""
        result = invoke(runner, ["--region", "us-east-1", "output", "password"])

        assert result.exit_code == 2

    def test_unavailable_output(self, runner, state):
        """Test a missing value exits non-zero."""
        result = invoke(runner, ["--region", "us-east-1", "output", "access_key_id_parameter"])

        assert result.exit_code == 1

    def test_secret_is_masked_without_raw(self, runner, state):
        """Test a stored secret is listed masked without reading Parameter Store."""
        result = invoke(runner, ["--region", "us-east-1", "output", "secret_access_key"])

        assert result.exit_code == 0
        assert result.output.strip() == "secret_access_key = (sensitive value)"


class TestDeployedOutputs:
    """Test outputs and teardown after a real deploy."""

    def test_secret_output_after_deploy(self, runner, aws_credentials):
        """Test the secret is masked in listings and revealed only with --raw."""
        with mock_aws():
            assert invoke(runner, ["--region", "us-east-1", "deploy"]).exit_code == 0

            listing = invoke(runner, ["--region", "us-east-1", "output"])
            masked = invoke(runner, ["--region", "us-east-1", "output", "secret_access_key"])
            raw = invoke(runner, ["--region", "us-east-1", "output", "secret_access_key", "--raw"])

        assert "secret_access_key = (sensitive value)" in listing.output
        assert masked.exit_code == 0
        assert "(sensitive value)" in masked.output
        assert raw.exit_code == 0
        assert raw.output.strip() not in ("", "(sensitive value)")
        assert raw.output.strip() not in masked.output

    def test_apply_destroy_plan(self, runner, aws_credentials):
        """Test applying a destroy plan confirms the teardown instead of printing setup instructions."""
        with mock_aws():
            assert invoke(runner, ["--region", "us-east-1", "deploy"]).exit_code == 0
            assert invoke(runner, ["--region", "us-east-1", "plan", "--destroy"]).exit_code == 0

            result = invoke(runner, ["--region", "us-east-1", "apply"])
            listing = invoke(runner, ["--region", "us-east-1", "output"])

        assert result.exit_code == 0
        assert "Destroyed CI/CD credential resources" in result.output
        assert "created successfully" not in result.output
        assert "AWS_ACCESS_KEY_ID" not in result.output
        assert "user_arn = (not available)" in listing.output
