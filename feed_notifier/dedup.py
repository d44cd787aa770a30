"""Deduplication store for the feed notifier."""

import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .logging_config import create_execution_logger

RETENTION = timedelta(days=7)
KEY_PREFIX = "post:"


class DedupStore:
    """TTL-bounded record of already-notified posts, kept in DynamoDB.

    DynamoDB removes expired items lazily, so reads compare the stored ``ttl``
    with the clock instead of relying on the item being gone.
    """

    def __init__(
        self,
        table_name: str,
        aws_region: str = "us-east-1",
        execution_id: str | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the store with DynamoDB configuration.

        Args:
            table_name: Name of the DynamoDB table holding dedup records
            aws_region: AWS region for DynamoDB client
            execution_id: Execution ID for logging context
            clock: Returns the current epoch time in seconds
        """
        self.table_name = table_name
        self.aws_region = aws_region
        self.clock = clock
        self.logger = create_execution_logger("dedup_store", execution_id)
        self.dynamodb = boto3.resource("dynamodb", region_name=aws_region)
        self.table = self.dynamodb.Table(table_name)

        self.logger.info(
            "DedupStore initialized", table_name=table_name, aws_region=aws_region
        )

    @staticmethod
    def key_for(identity: str) -> str:
        return f"{KEY_PREFIX}{identity}"

    def seen(self, identity: str) -> bool:
        """Check whether a post was already notified within the retention window.

        Args:
            identity: Dedup identity of the post

        Returns:
            True if an unexpired record exists, False otherwise
        """
        try:
            response = self.table.get_item(Key={"item_id": self.key_for(identity)})
        except (BotoCoreError, ClientError) as e:
            self.logger.error(
                f"Error checking dedup record: {e}",
                identity=identity,
                error=str(e),
            )
            # A possible duplicate beats a silently dropped post
            return False

        record = response.get("Item")
        if not record:
            return False

        expires_at = record.get("ttl")
        if expires_at is not None and int(expires_at) <= int(self.clock()):
            self.logger.debug("Dedup record expired", identity=identity)
            return False

        return True

    def mark_sent(self, identity: str, ttl: timedelta = RETENTION) -> None:
        """Record a delivered post so later runs skip it until the TTL lapses.

        Args:
            identity: Dedup identity of the post
            ttl: Retention window for the record

        Raises:
            ClientError: If the record cannot be written
        """
        now = self.clock()
        expires_at = int(now + ttl.total_seconds())
        try:
            self.table.put_item(
                Item={
                    "item_id": self.key_for(identity),
                    "sent_at": datetime.fromtimestamp(now, UTC).isoformat(),
                    "ttl": expires_at,
                }
            )
        except ClientError as e:
            self.logger.error(
                f"Error storing dedup record: {e}",
                identity=identity,
                error=str(e),
            )
            raise

        self.logger.info(
            "Stored dedup record", identity=identity, ttl_timestamp=expires_at
        )
