"""Directory access: the source contract and its LDAP implementation."""

from ldap_poller.directory.ldap_client import LdapConnection, LdapDirectorySource
from ldap_poller.directory.source import DirectoryConnection, DirectorySource

__all__ = ["DirectoryConnection", "DirectorySource", "LdapConnection", "LdapDirectorySource"]
