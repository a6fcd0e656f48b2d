# reconcile.py
"""
Hide disabled members of a group from the Exchange address lists.

For every member of the target group that is disabled and not yet hidden the
batch sets msExchHideFromAddressLists and stamps the audit attribute in one
LDAP modify. If anything changed a delta sync is started so the change
reaches Entra ID. Per-user failures never stop the batch; they are collected
in a RunResult and folded into the exit code.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from ldap3.utils.conv import escape_filter_chars

from ad import HIDE_ATTRIBUTE
from errors import DirectoryUnavailable, SyncFailed, UserUpdateFailed

logger = logging.getLogger(__name__)

AUDIT_PREFIX = "Hidden from Exchange address book by script "
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# userAccountControl & ACCOUNTDISABLE, evaluated by the DC
DISABLED_CLAUSE = "(userAccountControl:1.2.840.113556.1.4.803:=2)"

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USER_FAILURES = 2
EXIT_SYNC_FAILED = 3
EXIT_BOTH_FAILED = 4


class Outcome(enum.Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class UpdateOutcome:
    account_id: str
    outcome: Outcome
    reason: Optional[str] = None


@dataclass
class BatchOptions:
    simulate: bool = False
    confirm: bool = False
    skip_sync: bool = False
    # asked once per user when confirm is set; False skips that user
    approve: Optional[Callable] = None


@dataclass
class RunResult:
    candidates: int = 0
    any_changes_made: bool = False
    updated_users: List[str] = field(default_factory=list)
    skipped_users: List[str] = field(default_factory=list)
    failed_users: List[str] = field(default_factory=list)
    sync_attempted: bool = False
    sync_failed: bool = False
    fatal: bool = False

    def record(self, outcome: UpdateOutcome):
        if outcome.outcome is Outcome.UPDATED:
            self.updated_users.append(outcome.account_id)
            self.any_changes_made = True
        elif outcome.outcome is Outcome.FAILED:
            self.failed_users.append(outcome.account_id)
        else:
            self.skipped_users.append(outcome.account_id)


def candidate_filter(group_dn: str) -> str:
    """Compound filter: member of group AND disabled AND not hidden."""
    return (
        "(&(objectCategory=person)(objectClass=user)"
        f"(memberOf={escape_filter_chars(group_dn)})"
        f"{DISABLED_CLAUSE}"
        f"(!({HIDE_ATTRIBUTE}=TRUE)))"
    )


def audit_stamp(run_timestamp: str) -> str:
    return AUDIT_PREFIX + run_timestamp


def resolve_candidates(adap, conn, group_name: str):
    """
    Return the disabled, not-yet-hidden members of `group_name`.
    Raises DirectoryUnavailable if the group or the query fails.
    """
    if not group_name or not group_name.strip():
        raise ValueError("group name must not be empty")
    group_dn = adap.resolveGroup(conn, group_name)
    logger.debug("Resolved group %s to %s", group_name, group_dn)
    return adap.queryUsers(conn, candidate_filter(group_dn))


def apply_hide(adap, conn, user, run_timestamp: str, options: BatchOptions) -> UpdateOutcome:
    """Hide one user and stamp the audit attribute in the same write. Never raises for directory errors."""
    if options.simulate:
        logger.info("[SIMULATE] Would hide %s from address lists", user.account_id)
        return UpdateOutcome(user.account_id, Outcome.SKIPPED)

    if options.confirm:
        try:
            approved = bool(options.approve and options.approve(user))
        except Exception as e:
            logger.warning("Approval prompt failed for %s: %r", user.account_id, e)
            approved = False
        if not approved:
            logger.info("Skipped %s (not confirmed)", user.account_id)
            return UpdateOutcome(user.account_id, Outcome.SKIPPED)

    changes = {HIDE_ATTRIBUTE: "TRUE", adap.audit_attribute: audit_stamp(run_timestamp)}
    try:
        adap.writeUserAttributes(conn, user, changes)
    except UserUpdateFailed as e:
        logger.error("Failed to hide %s: %s", user.account_id, e.reason)
        return UpdateOutcome(user.account_id, Outcome.FAILED, e.reason)
    except Exception as e:
        logger.exception("Unexpected error hiding %s", user.account_id)
        return UpdateOutcome(user.account_id, Outcome.FAILED, str(e))

    logger.info("Hid %s from address lists", user.account_id)
    return UpdateOutcome(user.account_id, Outcome.UPDATED)


def exit_code(result: RunResult) -> int:
    if result.fatal:
        return EXIT_FATAL
    if result.failed_users and result.sync_failed:
        return EXIT_BOTH_FAILED
    if result.sync_failed:
        return EXIT_SYNC_FAILED
    if result.failed_users:
        return EXIT_USER_FAILURES
    return EXIT_OK


def run_batch(adap, conn, group_name: str, options: BatchOptions, trigger_sync: Callable,
              now: Optional[datetime] = None):
    """
    Resolve candidates, hide each one, then start a delta sync if anything changed.
    Returns (RunResult, exit code).
    """
    result = RunResult()
    run_timestamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)

    try:
        candidates = resolve_candidates(adap, conn, group_name)
    except (DirectoryUnavailable, ValueError) as e:
        logger.error("Could not resolve candidates in %r: %s", group_name, e)
        result.fatal = True
        return result, exit_code(result)

    result.candidates = len(candidates)
    if not candidates:
        logger.info("No disabled users left to hide in %s", group_name)
        return result, exit_code(result)

    logger.info("Found %d disabled user(s) to hide in %s", len(candidates), group_name)
    for user in candidates:
        result.record(apply_hide(adap, conn, user, run_timestamp, options))

    if result.any_changes_made and not options.skip_sync:
        result.sync_attempted = True
        try:
            trigger_sync()
            logger.info("Delta sync triggered")
        except SyncFailed as e:
            logger.error("Delta sync failed: %s", e)
            result.sync_failed = True
        except Exception:
            logger.exception("Delta sync failed")
            result.sync_failed = True
    elif result.any_changes_made:
        logger.info("Sync skipped by configuration")

    code = exit_code(result)
    logger.info("Updated %d, skipped %d, failed %d; exit code %d",
                len(result.updated_users), len(result.skipped_users), len(result.failed_users), code)
    if result.failed_users:
        logger.warning("Failed users: %s", ", ".join(result.failed_users))
    return result, code
