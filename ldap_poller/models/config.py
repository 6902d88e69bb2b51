"""Configuration models for the LDAP poller."""

from enum import Enum
from typing import Literal

from pydantic import AnyUrl, BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheMethod(str, Enum):
    """How observed entries are compared against previous observations."""

    TRACKED_ATTRIBUTES = "tracked_attributes"
    DISABLED = "disabled"


class TLSConfig(BaseModel):
    """TLS settings for the directory connection."""

    root_certificates_path: str | None = Field(
        default=None, description="Path to a PEM bundle of trusted CA certificates"
    )
    client_key_path: str | None = Field(
        default=None, description="Path to the client private key for mutual TLS"
    )
    client_certificate_path: str | None = Field(
        default=None, description="Path to the client certificate for mutual TLS"
    )
    starttls: bool = Field(
        default=False, description="Use the StartTLS extended operation on a plain connection"
    )
    no_tls_verify: bool = Field(
        default=False, description="Disable verification of server certificates"
    )


class ConnectionConfig(BaseModel):
    """Configuration for how to connect to the directory server."""

    timeout: float | None = Field(
        default=None, gt=0, description="Connect timeout in seconds. Infinite if unset."
    )
    operation_timeout: float = Field(
        default=30.0, gt=0, description="Timeout for a single LDAP operation in seconds"
    )
    connect_retries: int = Field(
        default=2, ge=0, le=10, description="Retries of the open and bind step"
    )
    tls: TLSConfig = Field(default_factory=TLSConfig)


class SearchConfig(BaseModel):
    """Bases and filters to use for searches."""

    user_base: str = Field(default=..., description="Search base used when enumerating users")
    user_filter: str = Field(
        default="(objectClass=*)", description="Search filter used when enumerating users"
    )
    scope: Literal["base", "level", "subtree"] = Field(
        default="subtree", description="Search scope relative to the base"
    )
    page_size: int | None = Field(
        default=None, ge=1, description="Enables the simple paged results control when set"
    )


class AttributeConfig(BaseModel):
    """Names of attributes used to identify entries and detect changes."""

    pid: str = Field(
        default=..., min_length=1, description="Attribute holding the immutable unique id"
    )
    updated: str | None = Field(
        default=None, description="Attribute holding the most recent modification time"
    )
    additional: list[str] = Field(
        default_factory=list, description="Additional attributes to fetch for each entry"
    )
    filter_attributes: bool = Field(
        default=True,
        description="If True, only fetch configured attributes. If False, fetch all.",
    )
    attrs_to_track: list[str] = Field(
        default_factory=list, description="Attributes whose change marks an entry as changed"
    )

    def tracked(self) -> list[str]:
        """Return the tracked attributes, including the update attribute if set."""
        tracked = list(dict.fromkeys(self.attrs_to_track))
        if self.updated and self.updated not in tracked:
            tracked.append(self.updated)
        return tracked

    def as_list(self) -> list[str]:
        """Return the attribute projection the server should return."""
        names = [self.pid]
        if self.updated:
            names.append(self.updated)
        if self.filter_attributes:
            names.extend(self.additional)
            names.extend(self.attrs_to_track)
        else:
            # Operational attributes such as entryUUID are not covered by "*"
            names.insert(0, "*")
        return list(dict.fromkeys(names))

    @classmethod
    def example(cls) -> "AttributeConfig":
        """Construct a sample configuration suitable for tests and docs."""
        return cls(
            pid="entryUUID",
            updated="modifyTimestamp",
            additional=["cn", "admin"],
            attrs_to_track=["enabled"],
        )


class LDAPConfig(BaseModel):
    """Configuration for polling one directory."""

    url: AnyUrl = Field(default=..., description="Server URL (ldap, ldaps or ldapi scheme)")
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    search_user: str = Field(default="", description="Bind DN of the search user")
    search_password: SecretStr = Field(
        default=SecretStr(""), description="Password of the search user"
    )
    searches: SearchConfig
    attributes: AttributeConfig
    cache_method: CacheMethod = Field(default=CacheMethod.TRACKED_ATTRIBUTES)
    check_for_deleted_entries: bool = Field(
        default=False, description="Report entries that disappear between full scans"
    )
    interval: float = Field(default=60.0, gt=0, description="Delay between cycles in seconds")
    channel_capacity: int = Field(
        default=1024, ge=1, description="Capacity of the bounded event channel"
    )

    @field_validator("url")
    @classmethod
    def validate_scheme(cls, v: AnyUrl) -> AnyUrl:
        """Only LDAP schemes are accepted."""
        if v.scheme not in ("ldap", "ldaps", "ldapi"):
            raise ValueError(f"Unsupported URL scheme: {v.scheme}")
        return v


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the LDAP_POLLER_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="LDAP_POLLER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    ldap: LDAPConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    cache_path: str | None = Field(
        default=None, description="File the cache is checkpointed to and restored from"
    )
    checkpoint_interval: float = Field(
        default=300.0, gt=0, description="Seconds between cache checkpoints"
    )
