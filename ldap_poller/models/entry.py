"""Pydantic models for directory entries and stored entry snapshots."""

from collections.abc import Mapping, Sequence
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ldap_poller.errors import Malformed
from ldap_poller.utils.generalized_time import parse_generalized_time

# Stable unique identifier of a directory entity, compared byte for byte
EntityId = bytes


class AttributeAccessor:
    """Uniform read access over string and binary attribute mappings.

    An attribute may be present in either mapping or in both. The string form
    takes precedence, since the same attribute can be returned as text by one
    query and as binary by another.

    Subclasses provide ``dn``, ``attrs`` (name to string values) and
    ``bin_attrs`` (name to byte values).
    """

    def attr_first(self, name: str) -> str | None:
        """Get the first string value of an attribute."""
        values = self.attrs.get(name)
        if not values:
            return None
        return values[0]

    def bin_attr_first(self, name: str) -> bytes | None:
        """Get the first value of an attribute in binary form.

        The string value, encoded as UTF-8, is preferred over the binary value
        when both exist for the same attribute name.
        """
        if name in self.attrs:
            values = self.attrs[name]
            return values[0].encode("utf-8") if values else None
        values = self.bin_attrs.get(name)
        if not values:
            return None
        return values[0]

    def bool_first(self, name: str) -> bool | None:
        """Get the first value of an attribute interpreted as an LDAP boolean.

        Raises:
            Malformed: If the value is neither ``TRUE`` nor ``FALSE``
        """
        value = self.attr_first(name)
        if value is None:
            return None
        if value == "TRUE":
            return True
        if value == "FALSE":
            return False
        raise Malformed(name, value)

    def time_first(self, name: str) -> datetime | None:
        """Get the first value of an attribute parsed as Generalized Time.

        Raises:
            Malformed: If the value is not a valid Generalized Time
        """
        value = self.attr_first(name)
        if value is None:
            return None
        try:
            return parse_generalized_time(value)
        except ValueError as e:
            raise Malformed(name, value) from e

    def values_bytes(self, name: str) -> tuple[bytes, ...] | None:
        """Get all values of an attribute in binary form, string form preferred.

        This is the byte-level reading used to compare tracked attributes.
        """
        if name in self.attrs:
            return tuple(value.encode("utf-8") for value in self.attrs[name])
        if name in self.bin_attrs:
            return tuple(self.bin_attrs[name])
        return None


class Entry(AttributeAccessor, BaseModel):
    """A single entry returned by a directory search."""

    dn: str = Field(default=..., description="Distinguished name of the entry")
    attrs: dict[str, list[str]] = Field(
        default_factory=dict, description="Attribute values that are valid UTF-8"
    )
    bin_attrs: dict[str, list[bytes]] = Field(
        default_factory=dict, description="Attribute values that are not valid UTF-8"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "dn": "uid=jdoe,ou=people,dc=example,dc=com",
                "attrs": {"cn": ["Jane Doe"], "enabled": ["TRUE"]},
                "bin_attrs": {"objectGUID": ["k3vzKuDrQuC67rwIc1mI1g=="]},
            }
        }
    }

    @classmethod
    def from_raw(cls, dn: str, raw_attributes: Mapping[str, Sequence[bytes]]) -> "Entry":
        """Build an entry from raw attribute values as returned by a search.

        An attribute is stored in string form when every value decodes as
        UTF-8, otherwise in binary form.

        Args:
            dn: Distinguished name of the entry
            raw_attributes: Attribute name to list of raw byte values

        Returns:
            Entry with values split into string and binary mappings
        """
        attrs: dict[str, list[str]] = {}
        bin_attrs: dict[str, list[bytes]] = {}
        for name, values in raw_attributes.items():
            raw_values = [bytes(value) for value in values]
            try:
                attrs[name] = [value.decode("utf-8") for value in raw_values]
            except UnicodeDecodeError:
                bin_attrs[name] = raw_values
        return cls(dn=dn, attrs=attrs, bin_attrs=bin_attrs)

    def snapshot(self) -> "EntitySnapshot":
        """Take an immutable copy of this entry's attributes."""
        return EntitySnapshot(
            dn=self.dn,
            attrs={name: tuple(values) for name, values in self.attrs.items()},
            bin_attrs={name: tuple(values) for name, values in self.bin_attrs.items()},
        )


class EntitySnapshot(AttributeAccessor, BaseModel):
    """Stored copy of an entry used for diffing and previous-value reporting."""

    model_config = ConfigDict(frozen=True)

    dn: str = Field(default=..., description="Distinguished name at the time of the snapshot")
    attrs: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    bin_attrs: dict[str, tuple[bytes, ...]] = Field(default_factory=dict)

    def to_entry(self) -> Entry:
        """Convert the snapshot back into a mutable entry."""
        return Entry(
            dn=self.dn,
            attrs={name: list(values) for name, values in self.attrs.items()},
            bin_attrs={name: list(values) for name, values in self.bin_attrs.items()},
        )
