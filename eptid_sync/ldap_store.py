"""
LDAP-backed user attribute store.

This module stores mapped attributes on a user's LDAP entry. It implements the
UserAttributeStore interface so the synchronizer can read, replace and delete
attribute values of one directory entry.
"""

import logging
import ssl
import time
from typing import Dict, List, Any, Optional
from ldap3 import Server, Connection, BASE, SUBTREE, MODIFY_DELETE, MODIFY_REPLACE, Tls
from ldap3.core.exceptions import LDAPException, LDAPSocketOpenError, LDAPBindError
from ldap3.utils.ciDict import CaseInsensitiveDict
from ldap3.utils.conv import escape_filter_chars

from eptid_sync.synchronizer import UserAttributeStore, UserAttributeStoreError

logger = logging.getLogger(__name__)

# LDAP result code returned when deleting an attribute the entry does not have
NO_SUCH_ATTRIBUTE = 16


class LDAPConnectionError(Exception):
    """Raised when LDAP connection fails."""
    pass


class LDAPStoreError(UserAttributeStoreError):
    """Raised when reading or writing the user entry fails."""
    pass


class LDAPConnector:
    """
    Opens bound connections to an LDAP server.

    Handles LDAPS, StartTLS, certificate verification and connection retries.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the connector with configuration.

        Args:
            config: LDAP configuration dictionary
        """
        self.server_url = config['server_url']
        self.bind_dn = config['bind_dn']
        self.bind_password = config['bind_password']

        self.use_ssl = config.get('use_ssl', self.server_url.lower().startswith('ldaps://'))
        self.start_tls = config.get('start_tls', False)
        self.verify_ssl = config.get('verify_ssl', True)
        self.ca_cert_file = config.get('ca_cert_file')

        self.connection_timeout = config.get('connection_timeout', 10)
        self.receive_timeout = config.get('receive_timeout', 10)

        error_config = config.get('error_handling', {})
        self.max_retries = error_config.get('max_retries', 3)
        self.retry_wait = error_config.get('retry_wait_seconds', 5)

    def _create_tls_config(self) -> Optional[Tls]:
        """Create TLS configuration, or None for plain connections."""
        if not (self.use_ssl or self.start_tls):
            return None

        tls_config = {'validate': ssl.CERT_REQUIRED if self.verify_ssl else ssl.CERT_NONE}
        if not self.verify_ssl:
            logger.warning("SSL certificate verification disabled")
        if self.ca_cert_file:
            tls_config['ca_certs_file'] = self.ca_cert_file

        try:
            return Tls(**tls_config)
        except Exception as e:
            raise LDAPConnectionError(f"Failed to create TLS configuration: {e}")

    def connect(self, max_retries: Optional[int] = None, retry_wait: Optional[int] = None) -> Connection:
        """
        Open and bind a connection, retrying transient failures.

        Returns:
            Bound ldap3 Connection

        Raises:
            LDAPConnectionError: If connection fails after all retries
        """
        max_retries = max_retries or self.max_retries
        retry_wait = retry_wait if retry_wait is not None else self.retry_wait

        server = Server(
            self.server_url,
            use_ssl=self.use_ssl,
            tls=self._create_tls_config(),
            connect_timeout=self.connection_timeout
        )

        last_exception = None
        for attempt in range(max_retries):
            connection = Connection(
                server,
                user=self.bind_dn,
                password=self.bind_password,
                auto_bind=False,
                receive_timeout=self.receive_timeout
            )
            try:
                if not connection.open():
                    raise LDAPSocketOpenError(f"Failed to open connection: {connection.result}")
                if self.start_tls and not self.use_ssl:
                    if not connection.start_tls():
                        raise LDAPConnectionError(f"Failed to start TLS: {connection.result}")
                if not connection.bind():
                    raise LDAPBindError(f"Bind failed: {connection.result}")

                logger.info(f"Connected and bound to LDAP server {self.server_url}")
                return connection

            except (LDAPSocketOpenError, LDAPBindError) as e:
                last_exception = e
                logger.warning(f"LDAP connection attempt {attempt + 1}/{max_retries} failed: {e}")
                connection.unbind()
                if attempt < max_retries - 1:
                    time.sleep(retry_wait)
            except LDAPException as e:
                last_exception = e
                logger.error(f"LDAP error while connecting: {e}")
                connection.unbind()
                break

        error_msg = f"Failed to connect to LDAP after {max_retries} attempts"
        if last_exception:
            error_msg += f": {last_exception}"
        raise LDAPConnectionError(error_msg)


class LDAPUserAttributeStore(UserAttributeStore):
    """
    Attribute store for one LDAP user entry.

    Attribute names of the store are LDAP attribute names and, like in the
    directory, are looked up without regard to case. Values are read and written
    as strings. An LDAP attribute cannot hold an empty value list, so setting one
    leaves the attribute absent.
    """

    stores_empty_values = False

    def __init__(self, config: Dict[str, Any], user_dn: str, connection: Optional[Connection] = None):
        """
        Args:
            config: LDAP configuration dictionary
            user_dn: Distinguished name of the user entry
            connection: Bound connection to reuse; opened lazily when None
        """
        self.config = config
        self.user_dn = user_dn
        self.connection = connection

    @classmethod
    def for_uid(cls, config: Dict[str, Any], uid: str,
                connection: Optional[Connection] = None) -> 'LDAPUserAttributeStore':
        """
        Find a user entry by its uid attribute and return a store for it.

        A connection opened here is unbound again when the lookup fails.

        Raises:
            LDAPStoreError: If no entry or more than one entry matches
        """
        opened_here = connection is None
        if opened_here:
            connection = LDAPConnector(config).connect()

        uid_attribute = config.get('uid_attribute', 'uid')
        user_filter = config.get('user_filter', '(objectClass=person)')
        search_filter = f"(&{user_filter}({uid_attribute}={escape_filter_chars(uid)}))"
        search_base = config.get('user_base_dn', '')

        logger.debug(f"Searching user with filter: {search_filter} in base: {search_base}")
        try:
            try:
                connection.search(search_base=search_base, search_filter=search_filter,
                                  search_scope=SUBTREE, attributes=[])
            except LDAPException as e:
                raise LDAPStoreError(f"User search failed: {e}")

            entries = connection.entries
            if len(entries) != 1:
                raise LDAPStoreError(f"Expected one user for {uid_attribute}={uid}, found {len(entries)}")
        except LDAPStoreError:
            if opened_here:
                connection.unbind()
            raise
        return cls(config, str(entries[0].entry_dn), connection)

    def _get_connection(self) -> Connection:
        if self.connection is None:
            self.connection = LDAPConnector(self.config).connect()
        return self.connection

    def get_attributes(self) -> Dict[str, List[str]]:
        connection = self._get_connection()
        try:
            success = connection.search(
                search_base=self.user_dn,
                search_filter='(objectClass=*)',
                search_scope=BASE,
                attributes=['*']
            )
        except LDAPException as e:
            raise LDAPStoreError(f"Failed to read {self.user_dn}: {e}")

        if not success or not connection.entries:
            raise LDAPStoreError(f"User entry not found: {self.user_dn}")

        entry = connection.entries[0]
        attributes = CaseInsensitiveDict()
        for name in entry.entry_attributes:
            attributes[name] = [str(value) for value in entry[name].values]
        return attributes

    def _modify(self, changes: Dict[str, Any], description: str, ignore_results: tuple = ()) -> None:
        connection = self._get_connection()
        try:
            success = connection.modify(self.user_dn, changes)
        except LDAPException as e:
            raise LDAPStoreError(f"Failed to {description} on {self.user_dn}: {e}")
        if not success and connection.result.get('result') not in ignore_results:
            raise LDAPStoreError(f"Failed to {description} on {self.user_dn}: {connection.result}")

    def set_attribute(self, key: str, values: List[str]) -> None:
        self._modify({key: [(MODIFY_REPLACE, list(values))]}, f"set {key}")
        logger.debug(f"Replaced {key} on {self.user_dn}")

    def remove_attribute(self, key: str) -> None:
        self._modify({key: [(MODIFY_DELETE, [])]}, f"remove {key}", ignore_results=(NO_SUCH_ATTRIBUTE,))
        logger.debug(f"Removed {key} from {self.user_dn}")

    def close(self):
        """Unbind the connection, if any."""
        if self.connection is not None:
            try:
                self.connection.unbind()
            except LDAPException as e:
                logger.warning(f"Error closing LDAP connection: {e}")
            finally:
                self.connection = None

