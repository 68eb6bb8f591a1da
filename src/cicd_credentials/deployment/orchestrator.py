"""
Deployment orchestration: verify, init, plan, apply and report.
"""

import sys
import time
import logging
from enum import Enum
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from botocore.exceptions import BotoCoreError, ClientError

from ..config import ProvisioningConfig
from ..exceptions import CredentialsError
from ..iam.credentials import AccessKeyResource
from ..iam.identity import CallerIdentity, resolve_identity
from ..iam.resources import ManagedPolicyResource, PolicyAttachmentResource, UserResource
from ..provisioning.engine import ProvisioningEngine
from ..provisioning.graph import ResourceGraph
from ..provisioning.plan import Plan
from ..provisioning.state import State, StateStore
from ..secrets.parameter_store import ParameterStore, build_parameter_resources
from ..session import AwsContext
from .report import MASK, print_operator_instructions, render_plan

logger = logging.getLogger(__name__)


class DeploymentPhase(Enum):
    """Phase of a deployment run."""
    UNVERIFIED = "unverified"
    INITIALIZED = "initialized"
    PLANNED = "planned"
    APPLIED = "applied"
    REPORTED = "reported"
    FAILED = "failed"


# Phase each step may start from
_ALLOWED_FROM = {
    DeploymentPhase.INITIALIZED: (DeploymentPhase.UNVERIFIED, DeploymentPhase.INITIALIZED),
    DeploymentPhase.PLANNED: (DeploymentPhase.INITIALIZED, DeploymentPhase.APPLIED),
    DeploymentPhase.APPLIED: (DeploymentPhase.INITIALIZED, DeploymentPhase.PLANNED),
    DeploymentPhase.REPORTED: (DeploymentPhase.APPLIED,),
}


@dataclass
class DeploymentResult:
    """Result of a deployment operation."""
    phase: DeploymentPhase
    message: str
    duration: float
    plan: Optional[Plan] = None
    outputs: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if deployment was successful."""
        return self.phase is not DeploymentPhase.FAILED


def build_resource_graph(
    context: AwsContext,
    identity: CallerIdentity,
    config: ProvisioningConfig
) -> ResourceGraph:
    """Resources of the CI/CD credential workflow."""
    return ResourceGraph([
        ManagedPolicyResource(context, identity, config),
        UserResource(context, identity, config),
        PolicyAttachmentResource(context, identity, config),
        AccessKeyResource(context, config),
        *build_parameter_resources(context, config),
    ])


class DeploymentOrchestrator:
    """Runs the credential workflow through its phases."""

    def __init__(
        self,
        config: ProvisioningConfig,
        context: Optional[AwsContext] = None
    ):
        """
        Initialize orchestrator.

        Args:
            config: Provisioning configuration
            context: AWS session context (built from config if not provided)
        """
        self.config = config
        self.context = context or AwsContext(
            region=config.aws_region,
            profile=config.aws_profile
        )
        self.store = StateStore(config.state_path)
        self.phase = DeploymentPhase.UNVERIFIED
        self.identity: Optional[CallerIdentity] = None
        self.engine: Optional[ProvisioningEngine] = None
        self.state: Optional[State] = None
        self.warnings: List[str] = []

    def _advance(self, target: DeploymentPhase) -> None:
        if self.phase not in _ALLOWED_FROM[target]:
            raise RuntimeError(f"Cannot move from {self.phase.value} to {target.value}")
        self.phase = target

    def _print_success(self, message: str) -> None:
        """Print success message."""
        print(f"✅ {message}")

    def _print_warning(self, message: str) -> None:
        """Print warning message."""
        print(f"⚠️  {message}")

    def _print_error(self, message: str) -> None:
        """Print error message."""
        print(f"❌ {message}", file=sys.stderr)

    def _print_info(self, message: str) -> None:
        """Print info message."""
        print(f"ℹ️  {message}")

    def initialize(self, create_state: bool = True) -> State:
        """
        Resolve the caller identity and load the state.

        Nothing is created in AWS; with ``create_state`` an empty state file
        is written if none exists.

        Raises:
            PreconditionError: If the AWS session is not authenticated
        """
        self.identity = resolve_identity(self.context)
        graph = build_resource_graph(self.context, self.identity, self.config)
        self.engine = ProvisioningEngine(graph, self.store)

        if create_state:
            self.state = self.engine.init()
        else:
            self.state = self.engine.load_state()

        self._advance(DeploymentPhase.INITIALIZED)
        logger.debug(f"Initialized for account {self.identity.account_id} in {self.identity.region}")
        return self.state

    def plan(self, out: Optional[Union[str, Path]] = None, destroy: bool = False) -> Plan:
        """Compute the plan and write the plan artifact."""
        self._advance(DeploymentPhase.PLANNED)
        plan = self.engine.plan(self.identity.to_dict(), destroy=destroy)
        plan.save(out or self.config.plan_path)
        return plan

    def apply(self, plan: Union[Plan, str, Path, None] = None) -> State:
        """Apply a plan object or plan artifact (default: the configured plan file)."""
        if not isinstance(plan, Plan):
            plan = Plan.load(plan or self.config.plan_path)
        self._advance(DeploymentPhase.APPLIED)
        try:
            self.state = self.engine.apply(plan, self.identity.to_dict())
        except Exception:
            self.phase = DeploymentPhase.FAILED
            raise
        return self.state

    def outputs(self, reveal_secret: bool = False) -> Dict[str, Any]:
        """
        Output values read back from state.

        The secret access key is only read from Parameter Store when
        ``reveal_secret`` is set; otherwise a stored secret shows as masked.
        """
        state = self.state or self.store.load()
        user = state.get("iam_user") or {}
        key = state.get("access_key") or {}
        key_id_param = state.get("access_key_id_parameter") or {}
        secret_param = state.get("secret_access_key_parameter") or {}

        secret = MASK if secret_param.get("name") else None
        if reveal_secret and secret_param.get("name"):
            store = ParameterStore(self.context, self.config.kms_key_id)
            secret = store.read(secret_param["name"])

        return {
            "user_arn": user.get("arn"),
            "access_key_id": key.get("access_key_id"),
            "secret_access_key": secret,
            "access_key_id_parameter": key_id_param.get("name"),
            "secret_access_key_parameter": secret_param.get("name"),
        }

    def report(self) -> Dict[str, Any]:
        """Print operator instructions. Failures here are logged, never raised."""
        self._advance(DeploymentPhase.REPORTED)
        outputs: Dict[str, Any] = {}
        try:
            outputs = self.outputs()
            print_operator_instructions(outputs, self.identity, self.config)
        except Exception as e:
            message = f"Could not print setup instructions: {e}"
            logger.warning(message)
            self._print_warning(message)
            self.warnings.append(message)
        return outputs

    def run(self) -> DeploymentResult:
        """
        Full deployment: init, plan, apply and report.

        Returns:
            Deployment result; ``success`` is False on any failure before reporting
        """
        start = time.time()
        plan: Optional[Plan] = None
        plan_path = self.config.plan_path
        plan_written = False

        try:
            print("🚀 Deploying GitHub Actions IAM resources...")
            print("📦 Initializing...")
            self.initialize()

            print("📋 Planning deployment...")
            plan = self.plan(plan_path)
            plan_written = True
            for line in render_plan(plan):
                print(line)

            print("🔧 Applying deployment...")
            self.apply(plan_path)

            print("📄 Getting credentials...")
            outputs = self.report()

            return DeploymentResult(
                phase=self.phase,
                message="GitHub Actions IAM resources deployed",
                duration=time.time() - start,
                plan=plan,
                outputs=outputs,
                warnings=list(self.warnings),
            )
        except (CredentialsError, ClientError, BotoCoreError) as e:
            self.phase = DeploymentPhase.FAILED
            self._print_error(str(e))
            return DeploymentResult(
                phase=self.phase,
                message="Deployment failed",
                duration=time.time() - start,
                plan=plan,
                errors=[str(e)],
            )
        finally:
            # A plan file from an earlier run is left alone
            if plan_written and Path(plan_path).exists():
                Path(plan_path).unlink()

    def destroy(self) -> DeploymentResult:
        """Delete every resource recorded in state, dependents first."""
        start = time.time()
        self.initialize(create_state=False)

        plan = self.plan(self.config.plan_path, destroy=True)
        try:
            if not plan.has_changes:
                self._print_info("Nothing to destroy")
            else:
                for line in render_plan(plan):
                    print(line)
                self.apply(plan)
                self._print_success("Destroyed CI/CD credential resources")
        finally:
            if self.config.plan_path.exists():
                self.config.plan_path.unlink()

        return DeploymentResult(
            phase=self.phase,
            message="Destroy complete",
            duration=time.time() - start,
            plan=plan,
        )
