"""Run-level lease so overlapping triggers do not process the same posts twice."""

import time
from collections.abc import Callable

import boto3
from botocore.exceptions import ClientError

from .logging_config import create_execution_logger

LEASE_KEY = "lock:run"


class RunLease:
    """Lock record with a TTL in the shared DynamoDB table.

    The conditional put is the atomic check-and-set that separate
    seen/mark_sent calls lack; an expired lease can be taken over.
    """

    def __init__(
        self,
        table_name: str,
        owner: str,
        ttl_seconds: int = 600,
        aws_region: str = "us-east-1",
        clock: Callable[[], float] = time.time,
    ):
        self.owner = owner
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.acquired = False
        self.logger = create_execution_logger("run_lease", owner)
        self.table = boto3.resource("dynamodb", region_name=aws_region).Table(
            table_name
        )

    def acquire(self) -> bool:
        """
        Try to take the lease.

        Returns:
            True if the lease was acquired, False if another run holds it
        """
        now = int(self.clock())
        try:
            self.table.put_item(
                Item={
                    "item_id": LEASE_KEY,
                    "lease_owner": self.owner,
                    "ttl": now + self.ttl_seconds,
                },
                ConditionExpression="attribute_not_exists(item_id) OR #ttl <= :now",
                ExpressionAttributeNames={"#ttl": "ttl"},
                ExpressionAttributeValues={":now": now},
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                self.logger.warning("Run lease already held by another run")
                return False
            raise

        self.acquired = True
        self.logger.info("Run lease acquired", lease_ttl_seconds=self.ttl_seconds)
        return True

    def release(self) -> None:
        """Release the lease if this run still owns it."""
        if not self.acquired:
            return

        try:
            self.table.delete_item(
                Key={"item_id": LEASE_KEY},
                ConditionExpression="lease_owner = :owner",
                ExpressionAttributeValues={":owner": self.owner},
            )
            self.logger.info("Run lease released")
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ConditionalCheckFailedException":
                raise
            self.logger.warning("Run lease was taken over before release")
        finally:
            self.acquired = False
