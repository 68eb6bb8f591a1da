"""
Caller identity resolution.
"""

import logging
from dataclasses import dataclass

from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import PreconditionError
from ..naming import ArnBuilder
from ..session import AwsContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerIdentity:
    """Account and region the workflow provisions into."""
    account_id: str
    region: str
    arn: str
    partition: str = "aws"

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "region": self.region,
            "arn": self.arn,
            "partition": self.partition,
        }


def resolve_identity(context: AwsContext) -> CallerIdentity:
    """
    Resolve the account and region of the given session.

    Args:
        context: AWS session context

    Returns:
        Caller identity used to parameterize resource ARNs

    Raises:
        PreconditionError: If the session is unauthenticated or has no region
    """
    region = context.region
    if not region:
        raise PreconditionError(
            "No AWS region configured. Set AWS_REGION or pass --region."
        )

    try:
        response = context.sts.get_caller_identity()
    except (BotoCoreError, ClientError) as e:
        raise PreconditionError(
            f"AWS credentials are not configured or invalid: {e}. "
            "Run 'aws configure' first."
        ) from e

    arn = response["Arn"]
    parsed = ArnBuilder.parse_arn(arn)
    partition = parsed["partition"] if parsed else "aws"

    logger.debug(f"Resolved caller {arn} in {region}")
    return CallerIdentity(
        account_id=response["Account"],
        region=region,
        arn=arn,
        partition=partition,
    )
