"""Parsing and formatting of LDAP Generalized Time values (RFC 4517, 3.3.13)."""

import re
from datetime import datetime, timedelta, timezone

_GENERALIZED_TIME = re.compile(
    r"^(?P<year>\d{4})(?P<month>\d{2})(?P<day>\d{2})(?P<hour>\d{2})"
    r"(?:(?P<minute>\d{2})(?:(?P<second>\d{2}))?)?"
    r"(?:[.,](?P<fraction>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}(?:\d{2})?)$"
)


def parse_generalized_time(value: str) -> datetime:
    """Parse a Generalized Time string into an aware UTC datetime.

    Args:
        value: Attribute value such as ``20240115143000Z`` or
            ``20240115143000.5+0100``

    Returns:
        Timezone-aware datetime normalized to UTC

    Raises:
        ValueError: If the value does not follow the Generalized Time syntax
    """
    match = _GENERALIZED_TIME.match(value.strip())
    if match is None:
        raise ValueError(f"Not a Generalized Time value: {value!r}")

    parts = match.groupdict()
    base = datetime(
        int(parts["year"]),
        int(parts["month"]),
        int(parts["day"]),
        int(parts["hour"]),
        int(parts["minute"] or 0),
        int(parts["second"] or 0),
    )

    # The fraction applies to the last component that is present
    if parts["fraction"]:
        fraction = float(f"0.{parts['fraction']}")
        if parts["second"] is not None:
            base += timedelta(seconds=fraction)
        elif parts["minute"] is not None:
            base += timedelta(minutes=fraction)
        else:
            base += timedelta(hours=fraction)

    tz = parts["tz"]
    if tz == "Z":
        offset = timedelta(0)
    else:
        sign = 1 if tz[0] == "+" else -1
        offset = sign * timedelta(hours=int(tz[1:3]), minutes=int(tz[3:5] or 0))

    return base.replace(tzinfo=timezone(offset)).astimezone(timezone.utc)


def format_generalized_time(value: datetime) -> str:
    """Format a datetime as a UTC Generalized Time string for search filters.

    Naive datetimes are assumed to already be in UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y%m%d%H%M%SZ")
