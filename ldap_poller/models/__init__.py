"""Data models for the LDAP poller."""

from ldap_poller.models.config import (
    AppConfig,
    AttributeConfig,
    CacheMethod,
    ConnectionConfig,
    LDAPConfig,
    LoggingConfig,
    SearchConfig,
    TLSConfig,
)
from ldap_poller.models.entry import AttributeAccessor, Entry, EntityId, EntitySnapshot

__all__ = [
    "AppConfig",
    "AttributeAccessor",
    "AttributeConfig",
    "CacheMethod",
    "ConnectionConfig",
    "Entry",
    "EntityId",
    "EntitySnapshot",
    "LDAPConfig",
    "LoggingConfig",
    "SearchConfig",
    "TLSConfig",
]
