import dataclasses
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

import hide_disabled_users as cli
from conftest import make_user
from errors import ConfigurationError, DirectoryUnavailable


@pytest.fixture
def patched(settings, tmp_path):
    with patch.object(cli, "configure_logging") as configure, \
            patch.object(cli, "load_settings", return_value=settings), \
            patch.object(cli, "ADAP") as adap_cls, \
            patch.object(cli, "run_batch", return_value=(MagicMock(), 0)) as run_batch:
        yield {"configure": configure, "adap": adap_cls.from_settings.return_value, "run_batch": run_batch}


def test_parser_defaults():
    args = cli.build_parser().parse_args([])
    assert args.group is None
    assert not (args.skip_sync or args.simulate or args.confirm or args.verbose)
    assert args.log_file == "hide_disabled_users.log"


def test_what_if_alias():
    assert cli.build_parser().parse_args(["--what-if"]).simulate is True


def test_main_runs_batch_for_default_group(patched):
    assert cli.main([]) == 0
    adap = patched["adap"]
    args, _ = patched["run_batch"].call_args
    assert args[0] is adap
    assert args[1] is adap.getConnection.return_value
    assert args[2] == "Disabled Users"
    options = args[3]
    assert not options.simulate and not options.skip_sync
    adap.closeConnection.assert_called_once_with(adap.getConnection.return_value)


def test_main_passes_flags(patched):
    patched["run_batch"].return_value = (MagicMock(), 4)
    assert cli.main(["Leavers", "--simulate", "--skip-sync", "--confirm", "-v", "--log-file", "x.log"]) == 4
    args, _ = patched["run_batch"].call_args
    assert args[2] == "Leavers"
    assert args[3].simulate and args[3].skip_sync and args[3].confirm
    patched["configure"].assert_called_once_with("x.log", verbose=True)


def test_skip_sync_from_settings(patched, settings):
    with patch.object(cli, "load_settings", return_value=dataclasses.replace(settings, skip_sync=True)):
        cli.main([])
    args, _ = patched["run_batch"].call_args
    assert args[3].skip_sync


def test_missing_settings_exit_one(patched):
    with patch.object(cli, "load_settings", side_effect=ConfigurationError("Missing AD settings: HOST")):
        assert cli.main([]) == 1
    patched["run_batch"].assert_not_called()


def test_connection_failure_exit_one(patched):
    patched["adap"].getConnection.side_effect = DirectoryUnavailable("Could not connect")
    assert cli.main([]) == 1
    patched["run_batch"].assert_not_called()
    patched["adap"].closeConnection.assert_called_once_with(None)


@pytest.mark.parametrize("answer,expected", [("y", True), ("YES", True), ("", False), ("n", False)])
def test_ask_approval(answer, expected):
    prompt = MagicMock(return_value=answer)
    assert cli.ask_approval(make_user("alice"), prompt=prompt) is expected
    assert "alice" in prompt.call_args[0][0]


def test_ask_approval_without_stdin_declines():
    prompt = MagicMock(side_effect=EOFError)
    assert cli.ask_approval(make_user("alice"), prompt=prompt) is False


def test_blank_group_exit_one(patched):
    assert cli.main(["   "]) == 1
    patched["run_batch"].assert_not_called()


def test_group_is_stripped(patched):
    cli.main(["  Leavers "])
    args, _ = patched["run_batch"].call_args
    assert args[2] == "Leavers"


def test_secrets_manager_failure_exit_one(patched):
    error = ClientError({"Error": {"Code": "ResourceNotFoundException", "Message": "not found"}},
                        "GetSecretValue")
    with patch.object(cli, "load_settings", side_effect=error):
        assert cli.main([]) == 1
    patched["run_batch"].assert_not_called()
