# lambda_function.py
"""
AWS Lambda entrypoint for the address-list hiding batch.

What this file does:
- Loads AD credentials from AWS Secrets Manager (AD_SECRET_NAME) or the environment.
- Connects to Active Directory via the ADAP class and hides every disabled,
  still-visible member of the target group from the Exchange address lists.
- Starts a delta Azure AD Connect sync over WinRM if anything changed.
- Publishes a summary SNS message listing updated/skipped/failed users.

The event may carry {"group": "...", "dry_run": true|false} to override the
environment for a single invocation.

SECURITY NOTES:
- Do NOT store secrets in this file. Use AWS Secrets Manager and environment variables.
- Deploy binary dependencies (ldap3, pywinrm) as a Lambda layer or package.
"""

import os
import logging
import time
from datetime import datetime, timezone
from functools import partial

import boto3

from ad import ADAP
from adsync import trigger_delta_sync
from config import load_settings, env_flag
from errors import ConfigurationError, DirectoryUnavailable
from reconcile import BatchOptions, EXIT_FATAL, RunResult, run_batch

# Configure logger
logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))

SNS_TOPIC_ARN = os.environ.get("SNS_TOPIC_ARN", "")  # e.g., "arn:aws:sns:ap-south-1:123456789012:ad-notify"
DRY_RUN = env_flag("DRY_RUN", True)  # safe default: no AD changes


# --- Notifications ---
def publish_summary(sns_topic_arn: str, group: str, result: RunResult, code: int, dry_run: bool):
    """
    Publish final summary listing which accounts were hidden, skipped or failed.
    """
    now = datetime.now(timezone.utc).strftime("%d-%m-%Y")
    subject = f"Address List Hiding Notification of {now}"
    if dry_run:
        subject += " [DRY RUN]"
    message = (
        f"Group: {group}\nExit code: {code}\n\n"
        f"The list of disabled users that were hidden by script:\n{', '.join(result.updated_users) or 'None'}\n\n"
        f"The list of disabled users that were skipped:\n{', '.join(result.skipped_users) or 'None'}\n\n"
        f"The list of users that could not be updated:\n{', '.join(result.failed_users) or 'None'}\n\n"
        f"Delta sync: {'failed' if result.sync_failed else ('triggered' if result.sync_attempted else 'not run')}"
    )
    if sns_topic_arn:
        sns = boto3.client("sns")
        try:
            resp = sns.publish(TopicArn=sns_topic_arn, Subject=subject, Message=message)
            logger.info("Published summary notification, MessageId=%s", resp.get("MessageId"))
        except Exception:
            logger.exception("Failed to publish summary SNS notification")
    else:
        logger.warning("SNS_TOPIC_ARN not set; summary not sent. Summary:\n%s", message)


# --- Main Lambda handler ---
def lambda_handler(event, context):
    """
    Lambda entrypoint.
    """
    start_ts = time.time()
    event = event or {}
    dry_run = event.get("dry_run", DRY_RUN)
    if isinstance(dry_run, str):
        dry_run = dry_run.strip().lower() in ("1", "true", "yes")
    dry_run = bool(dry_run)
    logger.info("Lambda invoked (DRY_RUN=%s)", dry_run)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        logger.error("%s. Aborting.", e)
        return {"status": "error", "reason": "ad_settings_missing", "exit_code": EXIT_FATAL}
    except Exception as e:
        logger.exception("Failed to load secrets. Aborting.")
        return {"status": "error", "reason": "secrets_load_failed", "details": str(e), "exit_code": EXIT_FATAL}

    group = (event.get("group") or settings.target_group).strip()
    if not group:
        logger.error("Group name must not be empty. Aborting.")
        return {"status": "error", "reason": "group_missing", "exit_code": EXIT_FATAL}
    options = BatchOptions(simulate=dry_run, skip_sync=settings.skip_sync)
    adap = ADAP.from_settings(settings)

    conn = None
    result = RunResult(fatal=True)
    code = EXIT_FATAL
    try:
        conn = adap.getConnection()
        result, code = run_batch(adap, conn, group, options, partial(trigger_delta_sync, settings))
    except DirectoryUnavailable:
        logger.exception("Failed to obtain AD connection; aborting AD operations.")
    finally:
        try:
            adap.closeConnection(conn)
        except Exception:
            logger.exception("Error while closing AD connection.")
        publish_summary(SNS_TOPIC_ARN, group, result, code, dry_run)

    total_time = time.time() - start_ts
    logger.info("Lambda finished in %.2f seconds", total_time)
    return {
        "status": "done" if code == 0 else "error",
        "dry_run": dry_run,
        "exit_code": code,
        "processed": {
            "candidates": result.candidates,
            "updated": len(result.updated_users),
            "skipped": len(result.skipped_users),
            "failed": len(result.failed_users),
        },
        "time_seconds": total_time,
    }
