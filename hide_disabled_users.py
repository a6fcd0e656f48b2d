# hide_disabled_users.py
"""
Command-line entrypoint.

Usage:
    hide-disabled-users ["Disabled Users"] [--skip-sync] [--simulate] [--confirm] [-v]

Exit codes:
    0  nothing to do, or every update and the sync succeeded
    1  the group or candidate query failed (or settings are missing)
    2  one or more user updates failed
    3  every update succeeded but the delta sync failed
    4  user updates and the delta sync both failed
"""

import sys
import logging
import argparse
from functools import partial

from botocore.exceptions import BotoCoreError, ClientError

from ad import ADAP
from adsync import trigger_delta_sync
from config import load_settings, DEFAULT_GROUP
from errors import ConfigurationError, DirectoryUnavailable
from logfile import configure_logging, DEFAULT_LOG_FILE
from reconcile import BatchOptions, EXIT_FATAL, run_batch

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hide-disabled-users",
        description="Hide disabled members of a group from the Exchange address lists and start a delta sync.",
    )
    parser.add_argument("group", nargs="?", default=None,
                        help=f"group to scan (default: TARGET_GROUP or '{DEFAULT_GROUP}')")
    parser.add_argument("--skip-sync", action="store_true", help="do not start a delta sync cycle")
    parser.add_argument("--simulate", "--what-if", dest="simulate", action="store_true",
                        help="log what would change without writing anything")
    parser.add_argument("--confirm", action="store_true", help="ask before hiding each user")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug output on the console")
    parser.add_argument("--log-file", default=DEFAULT_LOG_FILE, help="log file path (default: %(default)s)")
    return parser


def ask_approval(user, prompt=input) -> bool:
    try:
        answer = prompt(f"Hide {user.account_id} ({user.dn}) from address lists? [y/N] ")
    except EOFError:
        # stdin closed or piped; treat as a decline
        logger.warning("No answer for %s; skipping", user.account_id)
        return False
    return answer.strip().lower() in ("y", "yes")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_file, verbose=args.verbose)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_FATAL
    except (BotoCoreError, ClientError):
        logger.exception("Failed to load AD credentials from Secrets Manager")
        return EXIT_FATAL

    group = (args.group if args.group is not None else settings.target_group).strip()
    if not group:
        logger.error("Group name must not be empty")
        return EXIT_FATAL
    options = BatchOptions(
        simulate=args.simulate,
        confirm=args.confirm,
        skip_sync=args.skip_sync or settings.skip_sync,
        approve=ask_approval,
    )
    mode = "simulate" if options.simulate else ("confirm" if options.confirm else "apply")
    logger.info("Run started: group=%s mode=%s sync=%s", group, mode, "off" if options.skip_sync else "on")

    adap = ADAP.from_settings(settings)
    conn = None
    try:
        try:
            conn = adap.getConnection()
        except DirectoryUnavailable as e:
            logger.error("%s", e)
            return EXIT_FATAL
        _, code = run_batch(adap, conn, group, options, partial(trigger_delta_sync, settings))
    finally:
        adap.closeConnection(conn)

    logger.info("Run finished with exit code %d", code)
    return code


if __name__ == "__main__":
    sys.exit(main())
