from unittest.mock import MagicMock, patch

import pytest
from requests.exceptions import ConnectionError as RequestsConnectionError
from winrm.exceptions import WinRMError

from adsync import DELTA_SYNC_PS, trigger_delta_sync
from errors import SyncFailed


def _ps_result(status_code=0, std_out=b"", std_err=b""):
    result = MagicMock()
    result.status_code = status_code
    result.std_out = std_out
    result.std_err = std_err
    return result


@patch("adsync.winrm.Session")
def test_starts_delta_cycle_on_sync_host(session_cls, settings):
    session_cls.return_value.run_ps.return_value = _ps_result(std_out=b"\r\nResult\r\n------\nSuccess\r\n")
    out = trigger_delta_sync(settings)
    session_cls.assert_called_once_with("aadc01.corp.local", auth=("svc-hide", "secret"), transport="ntlm")
    session_cls.return_value.run_ps.assert_called_once_with(DELTA_SYNC_PS)
    assert out.endswith("Success")


@patch("adsync.winrm.Session")
def test_non_zero_status_raises(session_cls, settings):
    session_cls.return_value.run_ps.return_value = _ps_result(
        status_code=1, std_err=b"Start-ADSyncSyncCycle : System.InvalidOperationException: Connector: busy")
    with pytest.raises(SyncFailed, match="busy"):
        trigger_delta_sync(settings)


@pytest.mark.parametrize("error", [WinRMError("unauthorized"), RequestsConnectionError("refused")])
@patch("adsync.winrm.Session")
def test_transport_errors_raise(session_cls, error, settings):
    session_cls.return_value.run_ps.side_effect = error
    with pytest.raises(SyncFailed):
        trigger_delta_sync(settings)
