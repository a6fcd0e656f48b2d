import dataclasses
import logging

import pytest

from ad import DirectoryUser, HIDE_ATTRIBUTE
from config import Settings
from errors import DirectoryUnavailable, UserUpdateFailed
from reconcile import candidate_filter

GROUP = "Disabled Users"
GROUP_DN = "CN=Disabled Users,OU=Groups,DC=corp,DC=local"


def make_user(account_id, disabled=True, hidden=False):
    return DirectoryUser(account_id=account_id, dn=f"CN={account_id},OU=Staff,DC=corp,DC=local",
                         disabled=disabled, hidden=hidden)


class FakeDirectory:
    """In-memory stand-in for ADAP. queryUsers answers the candidate filter like a DC would."""

    audit_attribute = "extensionAttribute1"

    def __init__(self, users, fail_on=()):
        self.users = {u.account_id: u for u in users}
        self.fail_on = set(fail_on)
        self.queries = []
        self.writes = []

    def resolveGroup(self, conn, name):
        if name != GROUP:
            raise DirectoryUnavailable(f"Group {name} not found in Active Directory")
        return GROUP_DN

    def queryUsers(self, conn, ldap_filter):
        self.queries.append(ldap_filter)
        assert ldap_filter == candidate_filter(GROUP_DN)
        return [dataclasses.replace(u) for u in self.users.values() if u.disabled and not u.hidden]

    def writeUserAttributes(self, conn, user, changes):
        self.writes.append((user.account_id, dict(changes)))
        if user.account_id in self.fail_on:
            raise UserUpdateFailed(user.account_id, "00002098: insufficient access rights")
        stored = self.users[user.account_id]
        stored.hidden = changes[HIDE_ATTRIBUTE] == "TRUE"
        stored.audit = changes[self.audit_attribute]


@pytest.fixture
def settings():
    return Settings(ad_domain="CORP", username="svc-hide", password="secret", host="dc01.corp.local",
                    base_dn="DC=corp,DC=local", sync_host="aadc01.corp.local", sync_username="svc-hide",
                    sync_password="secret")


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
