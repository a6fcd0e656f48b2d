# errors.py
"""Exceptions raised while hiding disabled users from the address lists."""


class HideUsersError(Exception):
    """Base class for every error raised by this tool."""


class ConfigurationError(HideUsersError):
    """Required connection settings are missing."""


class DirectoryUnavailable(HideUsersError):
    """The target group could not be resolved or the candidate query failed."""


class UserUpdateFailed(HideUsersError):
    def __init__(self, account_id: str, reason: str):
        super().__init__(f"{account_id}: {reason}")
        self.account_id = account_id
        self.reason = reason


class SyncFailed(HideUsersError):
    """The delta synchronization cycle could not be started."""
