"""Entry points for the feed notifier: run_once() and the Lambda handler."""

import json
import os
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .classifier import ContentClassifier
from .config import Settings, load_config
from .dedup import DedupStore
from .lease import RunLease
from .logging_config import create_execution_logger, setup_structured_logging
from .models import ItemOutcome
from .pipeline import Pipeline
from .rss import FeedFetcher, FeedParser
from .telegram import TelegramNotifier

setup_structured_logging(os.getenv("LOG_LEVEL", "INFO"))

METRICS_NAMESPACE = "Feed-Notifier"

# Stop taking new items when less than this much Lambda time remains.
CANCEL_MARGIN_MS = 20_000


def run_once(
    settings: Settings | None = None,
    should_cancel: Callable[[], bool] | None = None,
    execution_id: str | None = None,
) -> dict[str, Any]:
    """
    Execute one pipeline run across all configured feeds.

    Args:
        settings: Deployment settings (read from the environment if omitted)
        should_cancel: Polled between items; True stops the run early
        execution_id: Execution ID for logging context

    Returns:
        Response dictionary with status code and metrics
    """
    execution_id = execution_id or f"run_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"
    main_logger = create_execution_logger("main", execution_id)
    main_logger.log_execution_start()

    settings = settings or Settings()
    lease = RunLease(
        settings.dynamodb_table,
        owner=execution_id,
        ttl_seconds=settings.lease_ttl_seconds,
        aws_region=settings.aws_region,
    )

    try:
        if not lease.acquire():
            main_logger.warning("Another run is in progress, skipping this trigger")
            return _response(
                409,
                {"message": "Run already in progress", "execution_id": execution_id},
            )
    except (BotoCoreError, ClientError) as e:
        error_msg = f"Could not acquire run lease: {e}"
        main_logger.error(error_msg, error=str(e))
        return _response(
            500, {"message": "Run failed", "execution_id": execution_id, "error": error_msg}
        )

    metrics: dict[str, Any] = {"errors": []}
    try:
        config = load_config(settings.dynamodb_table, settings.aws_region, execution_id)
        feed_urls = settings.get_feed_urls()
        main_logger.info(f"Processing {len(feed_urls)} feeds", feed_count=len(feed_urls))

        telegram_config = settings.get_telegram_config()
        telegram_config.bot_token = get_secret(
            settings.telegram_secret_name, settings.aws_region, execution_id
        )

        pipeline = Pipeline(
            fetcher=FeedFetcher(timeout=settings.fetch_timeout, execution_id=execution_id),
            parser=FeedParser(execution_id=execution_id),
            dedup_store=DedupStore(
                settings.dynamodb_table, settings.aws_region, execution_id=execution_id
            ),
            notifier=TelegramNotifier(telegram_config, execution_id=execution_id),
            classifier=ContentClassifier(
                timeout=settings.classify_timeout, execution_id=execution_id
            ),
            execution_id=execution_id,
        )
        metrics = pipeline.run(feed_urls, config, should_cancel)

    except Exception as e:
        error_msg = f"Critical error in run: {e}"
        main_logger.error(error_msg, error=str(e))
        metrics["errors"].append(error_msg)
        send_cloudwatch_metrics(metrics, settings.aws_region, execution_id)
        main_logger.log_execution_end(success=False, error=error_msg)
        return _response(
            500, {"message": "Run failed", "execution_id": execution_id, "error": error_msg}
        )
    finally:
        lease.release()

    send_cloudwatch_metrics(metrics, settings.aws_region, execution_id)
    main_logger.log_execution_end(success=True, metrics=metrics)
    return _response(
        200,
        {
            "message": "Feed notifier run completed",
            "execution_id": execution_id,
            "metrics": metrics,
        },
    )


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Lambda entry point for both the schedule and manual invocations.

    Args:
        event: Lambda event data
        context: Lambda context object

    Returns:
        Response dictionary with status and metrics
    """
    execution_id = f"lambda_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"
    create_execution_logger("main", execution_id).info(
        "Run triggered",
        trigger=(event or {}).get("source", "manual"),
        lambda_request_id=getattr(context, "aws_request_id", "unknown"),
    )

    should_cancel = None
    if hasattr(context, "get_remaining_time_in_millis"):
        def should_cancel() -> bool:
            return context.get_remaining_time_in_millis() < CANCEL_MARGIN_MS

    return run_once(should_cancel=should_cancel, execution_id=execution_id)


def _response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {"statusCode": status_code, "body": json.dumps(body, ensure_ascii=False)}


def get_secret(secret_name: str, aws_region: str, execution_id: str) -> str:
    """
    Retrieve the Telegram bot token from AWS Secrets Manager.

    Supports both plain string and JSON secret formats. The value itself is
    never logged.

    Args:
        secret_name: Name of the secret in Secrets Manager
        aws_region: AWS region for Secrets Manager client
        execution_id: Execution ID for logging context

    Returns:
        The secret value

    Raises:
        RuntimeError: If the secret cannot be retrieved or has no usable value
        ValueError: If secret name or region is empty
    """
    secrets_logger = create_execution_logger("secrets_manager", execution_id)

    if not secret_name or not secret_name.strip():
        raise ValueError("Secret name cannot be empty")

    if not aws_region or not aws_region.strip():
        raise ValueError("AWS region cannot be empty")

    try:
        secrets_logger.info(f"Retrieving secret from Secrets Manager: {secret_name}")
        secrets_client = boto3.client("secretsmanager", region_name=aws_region)
        response = secrets_client.get_secret_value(SecretId=secret_name)

        secret_value = response.get("SecretString", "")
        if not secret_value or not secret_value.strip():
            raise ValueError(f"Secret {secret_name} contains empty value")

        try:
            secret_data = json.loads(secret_value)
        except json.JSONDecodeError:
            secrets_logger.info("Retrieved plain text secret")
            return secret_value.strip()

        if not isinstance(secret_data, dict):
            raise ValueError(f"JSON secret {secret_name} must be an object")

        for key in ["token", "bot_token", "telegram_token", "telegram_bot_token"]:
            value = secret_data.get(key)
            if isinstance(value, str) and value.strip():
                secrets_logger.info("Retrieved token from JSON secret")
                return value.strip()

        raise ValueError(f"No token found in JSON secret {secret_name}")

    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        secrets_logger.error(
            f"AWS Secrets Manager error retrieving {secret_name}: {error_code}"
        )
        raise RuntimeError(f"Failed to retrieve secret {secret_name}") from e
    except ValueError as e:
        secrets_logger.error(f"Invalid secret format for {secret_name}: {e}")
        raise RuntimeError(f"Invalid secret format for {secret_name}") from e


def send_cloudwatch_metrics(
    metrics: dict[str, Any], aws_region: str, execution_id: str
) -> None:
    """
    Send per-run counters to CloudWatch. Failures are logged, never raised.

    Args:
        metrics: Dictionary returned by Pipeline.run
        aws_region: AWS region for CloudWatch client
        execution_id: Execution ID for logging context
    """
    metrics_logger = create_execution_logger("cloudwatch_metrics", execution_id)

    counters = {
        "FeedsProcessed": metrics.get("feeds_processed", 0),
        "FeedsFailed": metrics.get("feeds_failed", 0),
        "ItemsFound": metrics.get("items_found", 0),
        "ItemsDeduplicated": metrics.get(ItemOutcome.DEDUPED.value, 0),
        "ItemsKeywordRejected": metrics.get(ItemOutcome.KEYWORD_REJECTED.value, 0),
        "ItemsClassifierRejected": metrics.get(ItemOutcome.CLASSIFIER_REJECTED.value, 0),
        "ItemsUnidentifiable": metrics.get(ItemOutcome.UNIDENTIFIABLE.value, 0),
        "SendFailures": metrics.get(ItemOutcome.SEND_FAILED.value, 0),
        "MessagesSent": metrics.get(ItemOutcome.SENT.value, 0),
        "Errors": len(metrics.get("errors", [])),
    }

    try:
        cloudwatch = boto3.client("cloudwatch", region_name=aws_region)
        metric_data = [
            {"MetricName": name, "Value": value, "Unit": "Count"}
            for name, value in counters.items()
        ]
        # CloudWatch accepts at most 20 metrics per call
        batch_size = 20
        for i in range(0, len(metric_data), batch_size):
            cloudwatch.put_metric_data(
                Namespace=METRICS_NAMESPACE, MetricData=metric_data[i : i + batch_size]
            )

        metrics_logger.info(
            "Successfully sent metrics to CloudWatch",
            metrics_sent=len(metric_data),
            namespace=METRICS_NAMESPACE,
        )
    except Exception as e:
        metrics_logger.error(f"Failed to send CloudWatch metrics: {e}", error=str(e))
