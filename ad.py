# ad.py
import logging
from dataclasses import dataclass
from typing import List, Optional

from ldap3 import Server, Connection, ALL, NTLM, SUBTREE, MODIFY_REPLACE
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from errors import DirectoryUnavailable, UserUpdateFailed

# bit 2 (0x2) of userAccountControl represents 'ACCOUNTDISABLE'
ACCOUNTDISABLE = 0x2
HIDE_ATTRIBUTE = 'msExchHideFromAddressLists'
USER_ATTRIBUTES = ['sAMAccountName', 'distinguishedName', 'userAccountControl', HIDE_ATTRIBUTE]
PAGE_SIZE = 500


@dataclass
class DirectoryUser:
    account_id: str
    dn: str
    disabled: bool
    hidden: bool
    audit: Optional[str] = None


def _first(value):
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _as_bool(value) -> bool:
    value = _first(value)
    if isinstance(value, str):
        return value.strip().upper() == 'TRUE'
    return bool(value)


class ADAP:
    """Thin ldap3 wrapper around the directory calls the batch needs."""

    def __init__(self, AD_DOMAIN: str, USERNAME: str, PASSWORD: str, HOST: str,
                 base_dn: Optional[str] = None, use_ssl: bool = True,
                 audit_attribute: str = 'extensionAttribute1'):
        self.AD_DOMAIN = AD_DOMAIN
        self.USERNAME = USERNAME
        self.PASSWORD = PASSWORD
        self.HOST = HOST
        self.base_dn = base_dn
        self.use_ssl = use_ssl
        self.audit_attribute = audit_attribute

    @classmethod
    def from_settings(cls, settings):
        return cls(AD_DOMAIN=settings.ad_domain, USERNAME=settings.username, PASSWORD=settings.password,
                   HOST=settings.host, base_dn=settings.base_dn, use_ssl=settings.use_ssl,
                   audit_attribute=settings.audit_attribute)

    def getConnection(self) -> Connection:
        """Bind to the domain controller with NTLM.

        Raises DirectoryUnavailable if the bind fails. When no base DN was
        configured the server's defaultNamingContext is used.
        """
        try:
            server = Server(self.HOST, use_ssl=self.use_ssl, get_info=ALL)
            conn = Connection(server, user=f'{self.AD_DOMAIN}\\{self.USERNAME}', password=self.PASSWORD,
                              authentication=NTLM, auto_bind=True)
        except LDAPException as e:
            logging.exception('Failed to bind to %s', self.HOST)
            raise DirectoryUnavailable(f'Could not connect to {self.HOST}: {e}') from e

        if not self.base_dn:
            naming_contexts = (server.info.other.get('defaultNamingContext') or []) if server.info else []
            if not naming_contexts:
                conn.unbind()
                raise DirectoryUnavailable('No base DN configured and the server did not report one')
            self.base_dn = naming_contexts[0]
        logging.info('Connected to %s (base DN %s)', self.HOST, self.base_dn)
        return conn

    def closeConnection(self, conn):
        if conn is not None and conn.bound:
            conn.unbind()
            logging.info('Connection to %s closed.', self.HOST)
        else:
            logging.info('Connection already closed or not provided.')

    def resolveGroup(self, conn, name: str) -> str:
        """Return the distinguishedName of the group called `name` (cn or sAMAccountName)."""
        escaped = escape_filter_chars(name)
        search_filter = f'(&(objectCategory=group)(|(cn={escaped})(sAMAccountName={escaped})))'
        try:
            conn.search(search_base=self.base_dn, search_filter=search_filter, search_scope=SUBTREE,
                        attributes=['distinguishedName'], size_limit=2)
        except LDAPException as e:
            logging.exception('Group lookup failed for %s', name)
            raise DirectoryUnavailable(f'Group lookup failed for {name}: {e}') from e

        if conn.result.get('result') not in (0, 4):
            raise DirectoryUnavailable(f'Group lookup failed for {name}: {conn.result.get("description")}')
        if not conn.entries:
            raise DirectoryUnavailable(f'Group {name} not found in Active Directory')
        if len(conn.entries) > 1:
            logging.warning('More than one group matches %s; using %s', name, conn.entries[0].entry_dn)
        return conn.entries[0].entry_dn

    def queryUsers(self, conn, ldap_filter: str) -> List[DirectoryUser]:
        """Run `ldap_filter` server side and return the matching users in directory order."""
        try:
            response = conn.extend.standard.paged_search(search_base=self.base_dn, search_filter=ldap_filter,
                                                         search_scope=SUBTREE,
                                                         attributes=USER_ATTRIBUTES + [self.audit_attribute],
                                                         paged_size=PAGE_SIZE, generator=False)
        except LDAPException as e:
            logging.exception('User query failed: %s', ldap_filter)
            raise DirectoryUnavailable(f'User query failed: {e}') from e

        if conn.result.get('result') != 0:
            raise DirectoryUnavailable(f'User query failed: {conn.result.get("description")}')

        users = []
        for item in response or []:
            if item.get('type') != 'searchResEntry':
                continue
            attrs = item.get('attributes', {})
            uac = _first(attrs.get('userAccountControl')) or 0
            users.append(DirectoryUser(
                account_id=_first(attrs.get('sAMAccountName')) or item['dn'],
                dn=item['dn'],
                disabled=bool(int(uac) & ACCOUNTDISABLE),
                hidden=_as_bool(attrs.get(HIDE_ATTRIBUTE)),
                audit=_first(attrs.get(self.audit_attribute)),
            ))
        return users

    def writeUserAttributes(self, conn, user: DirectoryUser, changes: dict):
        """Replace every attribute in `changes` with a single LDAP modify.

        Raises UserUpdateFailed when the modify raises or returns a non-zero result.
        """
        modlist = {attr: [(MODIFY_REPLACE, [value])] for attr, value in changes.items()}
        try:
            conn.modify(user.dn, modlist)
        except LDAPException as e:
            raise UserUpdateFailed(user.account_id, str(e)) from e

        if conn.result.get('result') != 0:
            raise UserUpdateFailed(user.account_id,
                                   conn.result.get('message') or conn.result.get('description') or 'modify failed')
        logging.debug('Modified %s for %s', ', '.join(changes), user.dn)
