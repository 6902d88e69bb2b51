"""Error types raised while polling a directory."""


class PollerError(Exception):
    """Base class for errors raised by the poller."""

    pass


class MissingAttribute(PollerError):
    """Raised when a required attribute is absent from an entry."""

    def __init__(self, attribute: str, dn: str | None = None):
        self.attribute = attribute
        self.dn = dn
        super().__init__(f"Missing attribute {attribute!r}" + (f" in {dn}" if dn else ""))


class Malformed(PollerError):
    """Raised when an attribute is present but its value fails to parse."""

    def __init__(self, attribute: str, value: str | None = None):
        self.attribute = attribute
        self.value = value
        super().__init__(f"Malformed value for attribute {attribute!r}: {value!r}")


class ConnectionFailure(PollerError):
    """Raised when connecting, binding or searching against the directory fails."""

    pass


class PersistenceFailure(PollerError):
    """Raised when a cache cannot be serialized, deserialized, saved or loaded."""

    pass
