"""LDAP directory source backed by ldap3."""

import math
import ssl
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from ldap3 import BASE, LEVEL, NONE, SUBTREE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPException

from ldap_poller.directory.source import SearchScope
from ldap_poller.errors import ConnectionFailure
from ldap_poller.models.config import LDAPConfig
from ldap_poller.models.entry import Entry
from ldap_poller.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()

_SCOPES = {"base": BASE, "level": LEVEL, "subtree": SUBTREE}


class LdapConnection:
    """A bound ldap3 connection that streams search results as entries."""

    def __init__(self, connection: Connection, page_size: int | None = None):
        """
        Initialize the connection wrapper.

        Args:
            connection: Bound ldap3 connection
            page_size: Page size for the simple paged results control, or None
        """
        self._connection = connection
        self._page_size = page_size

    def search(
        self,
        base: str,
        scope: SearchScope,
        search_filter: str,
        attributes: list[str],
    ) -> Iterator[Entry]:
        """
        Search the directory, yielding entries as they arrive.

        Args:
            base: Search base DN
            scope: Search scope
            search_filter: LDAP filter
            attributes: Attributes to request

        Yields:
            Entries with values split into string and binary form

        Raises:
            ConnectionFailure: If the search fails
        """
        log.info(
            "searching_directory",
            base=base,
            scope=scope,
            search_filter=search_filter,
            page_size=self._page_size,
        )

        entry_count = 0
        try:
            if self._page_size:
                responses = self._connection.extend.standard.paged_search(
                    search_base=base,
                    search_filter=search_filter,
                    search_scope=_SCOPES[scope],
                    attributes=attributes,
                    paged_size=self._page_size,
                    generator=True,
                )
            else:
                self._connection.search(
                    search_base=base,
                    search_filter=search_filter,
                    search_scope=_SCOPES[scope],
                    attributes=attributes,
                )
                responses = self._connection.response or []

            for response in responses:
                # Skip referrals and intermediate responses
                if response.get("type") != "searchResEntry":
                    continue
                entry_count += 1
                yield Entry.from_raw(response["dn"], response.get("raw_attributes") or {})
        except LDAPException as e:
            log.error("directory_search_failed", base=base, error=str(e))
            raise ConnectionFailure(f"Search below {base} failed: {e}") from e

        log.info("directory_search_finished", base=base, entry_count=entry_count)


class LdapDirectorySource:
    """Hands out bound connections to the configured LDAP server."""

    def __init__(self, config: LDAPConfig):
        """
        Initialize the directory source.

        Args:
            config: LDAP configuration with URL, credentials and TLS settings
        """
        self._config = config
        log.info(
            "ldap_directory_source_initialized",
            url=str(config.url),
            starttls=config.connection.tls.starttls,
        )

    @contextmanager
    def connect(self) -> Iterator[LdapConnection]:
        """
        Open and bind a connection, unbinding it on exit.

        Yields:
            Bound connection

        Raises:
            ConnectionFailure: If the connection cannot be opened or bound
        """
        open_connection = exponential_backoff_retry(
            max_retries=self._config.connection.connect_retries,
            base_delay=1.0,
            max_delay=30.0,
            exceptions=(ConnectionFailure,),
        )(self._open)
        connection = open_connection()
        try:
            yield LdapConnection(connection, self._config.searches.page_size)
        finally:
            self._release(connection)

    def _open(self) -> Connection:
        config = self._config
        try:
            server = Server(
                str(config.url).rstrip("/"),
                get_info=NONE,
                tls=self._tls(),
                connect_timeout=config.connection.timeout,
            )
            connection = Connection(
                server,
                user=config.search_user or None,
                password=config.search_password.get_secret_value() or None,
                receive_timeout=math.ceil(config.connection.operation_timeout),
                raise_exceptions=True,
                read_only=True,
            )
            connection.open()
        except LDAPException as e:
            log.error("ldap_connect_failed", url=str(config.url), error=str(e))
            raise ConnectionFailure(f"Connecting to {config.url} failed: {e}") from e

        # The socket is open from here on and is closed on any failure
        try:
            if config.connection.tls.starttls:
                connection.start_tls()
            bound = connection.bind()
        except LDAPException as e:
            self._release(connection)
            log.error("ldap_connect_failed", url=str(config.url), error=str(e))
            raise ConnectionFailure(f"Connecting to {config.url} failed: {e}") from e
        if not bound:
            self._release(connection)
            raise ConnectionFailure(f"Bind failed: {connection.result}")

        log.info("ldap_connected", url=str(config.url), user=config.search_user or None)
        return connection

    @staticmethod
    def _release(connection: Connection) -> None:
        try:
            connection.unbind()
        except LDAPException as e:
            log.warning("ldap_unbind_failed", error=str(e))

    def _tls(self) -> Tls | None:
        tls = self._config.connection.tls
        if self._config.url.scheme != "ldaps" and not tls.starttls:
            return None
        return Tls(
            validate=ssl.CERT_NONE if tls.no_tls_verify else ssl.CERT_REQUIRED,
            ca_certs_file=tls.root_certificates_path,
            local_private_key_file=tls.client_key_path,
            local_certificate_file=tls.client_certificate_path,
        )
