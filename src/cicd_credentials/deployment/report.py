"""
Operator-facing rendering of plans, outputs and setup instructions.
"""

from typing import Any, Dict, List

from ..config import ProvisioningConfig
from ..iam.identity import CallerIdentity
from ..provisioning.graph import Action
from ..provisioning.plan import Plan

SENSITIVE_OUTPUTS = ("access_key_id", "secret_access_key")

MASK = "(sensitive value)"

_SYMBOLS = {
    Action.CREATE: "+",
    Action.UPDATE: "~",
    Action.REPLACE: "-/+",
    Action.DELETE: "-",
}


def render_plan(plan: Plan) -> List[str]:
    """Lines describing a plan, one per changed resource plus a summary."""
    lines = []
    for change in plan.changes:
        if change.action is Action.NO_OP:
            continue
        symbol = _SYMBOLS[change.action]
        lines.append(f"  {symbol} {change.address} ({change.action.value}): {change.reason}")

    if not plan.has_changes:
        lines.append("No changes. Infrastructure is up to date.")
    else:
        counts = plan.summary()
        lines.append("")
        lines.append(
            f"Plan: {counts['add']} to add, {counts['change']} to change, "
            f"{counts['destroy']} to destroy."
        )
    return lines


def render_outputs(outputs: Dict[str, Any]) -> List[str]:
    """Output listing with sensitive values masked."""
    lines = []
    for name, value in outputs.items():
        if name in SENSITIVE_OUTPUTS and value is not None:
            value = MASK
        lines.append(f"{name} = {value if value is not None else '(not available)'}")
    return lines


def print_operator_instructions(
    outputs: Dict[str, Any],
    identity: CallerIdentity,
    config: ProvisioningConfig
) -> None:
    """Print how to wire the credentials into GitHub Actions."""
    print()
    print("✅ GitHub Actions IAM resources created successfully!")
    print()
    print("📋 Add these secrets to your GitHub repository:")
    print("   Repository → Settings → Secrets and variables → Actions")
    print()
    print("🔑 Required GitHub Secrets:")
    print(f"   AWS_ACCESS_KEY_ID: {outputs['access_key_id']}")
    print("   AWS_SECRET_ACCESS_KEY: [HIDDEN - run 'cicd-credentials output secret_access_key --raw' or check SSM]")
    print(f"   AWS_REGION: {identity.region}")
    print(f"   AWS_ACCOUNT_ID: {identity.account_id}")
    print()
    print("🔐 Security Note:")
    print("   - Credentials are also stored in AWS Systems Manager Parameter Store")
    print(f"   - Access Key ID: {outputs['access_key_id_parameter']}")
    print(f"   - Secret Access Key: {outputs['secret_access_key_parameter']}")
    print()
    print(f"👤 IAM User ARN: {outputs['user_arn']}")
    print()
    print("🎯 Next Steps:")
    print("   1. Add the secrets to your GitHub repository")
    print("   2. Test the GitHub Actions workflow")
    print("   3. Monitor ECR repositories for successful image pushes")
    print()
    print("🔒 Security Best Practices Applied:")
    print("   ✅ Minimal required permissions (principle of least privilege)")
    print("   ✅ Resource-specific ARNs (no wildcard permissions)")
    print("   ✅ Credentials stored in encrypted SSM parameters")
    print(f"   ✅ Proper IAM user path ({config.user_path})")
    print("   ✅ Comprehensive resource tagging")
