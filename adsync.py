# adsync.py
"""
Trigger an Azure AD Connect delta synchronization cycle.

The cycle is started on the sync server over WinRM, which needs the ADSync
PowerShell module installed there and a remote-management account.
"""

import logging

import winrm
from winrm.exceptions import WinRMError
from requests.exceptions import RequestException

from errors import SyncFailed

logger = logging.getLogger(__name__)

DELTA_SYNC_PS = "Import-Module ADSync; Start-ADSyncSyncCycle -PolicyType Delta | Out-String"


def get_session(settings) -> winrm.Session:
    return winrm.Session(settings.sync_host, auth=(settings.sync_username, settings.sync_password),
                         transport=settings.sync_transport)


def trigger_delta_sync(settings) -> str:
    """
    Start a delta sync cycle on settings.sync_host.
    Returns the PowerShell output. Raises SyncFailed on a transport error or a
    non-zero exit status.
    """
    logger.info("Starting delta sync cycle on %s", settings.sync_host)
    try:
        result = get_session(settings).run_ps(DELTA_SYNC_PS)
    except (WinRMError, RequestException) as e:
        logger.exception("WinRM call to %s failed", settings.sync_host)
        raise SyncFailed(f"WinRM call to {settings.sync_host} failed: {e}") from e

    out = (result.std_out or b"").decode("utf-8", errors="replace").strip()
    err = (result.std_err or b"").decode("utf-8", errors="replace").strip()
    if result.status_code != 0:
        raise SyncFailed(f"Start-ADSyncSyncCycle exited with {result.status_code}: {err or out}")
    if out:
        logger.debug("Start-ADSyncSyncCycle output: %s", out)
    return out
