"""Change detection for identifying new, changed, and unchanged entries."""

from typing import Annotated, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ldap_poller.errors import MissingAttribute
from ldap_poller.models.config import AttributeConfig, CacheMethod
from ldap_poller.models.entry import AttributeAccessor, Entry, EntityId, EntitySnapshot

log = structlog.stdlib.get_logger()


class TrackedAttributeDiff(BaseModel):
    """Keep a snapshot per entity and diff the tracked attributes against it."""

    kind: Literal["tracked_attribute_diff"] = "tracked_attribute_diff"
    entries: dict[EntityId, EntitySnapshot] = Field(
        default_factory=dict, description="Snapshots of entities believed to exist"
    )


class Disabled(BaseModel):
    """Retain nothing and forward every entry unconditionally."""

    kind: Literal["disabled"] = "disabled"


Strategy = Annotated[TrackedAttributeDiff | Disabled, Field(discriminator="kind")]


def strategy_for(method: CacheMethod) -> TrackedAttributeDiff | Disabled:
    """Create an empty strategy for the configured cache method."""
    match method:
        case CacheMethod.TRACKED_ATTRIBUTES:
            return TrackedAttributeDiff()
        case CacheMethod.DISABLED:
            return Disabled()
    raise ValueError(f"Unknown cache method: {method}")


class Missing(BaseModel):
    """The entity was not known before this observation."""

    model_config = ConfigDict(frozen=True)


class Unchanged(BaseModel):
    """No tracked attribute differs from the stored snapshot."""

    model_config = ConfigDict(frozen=True)


class Changed(BaseModel):
    """At least one tracked attribute differs from the stored snapshot."""

    model_config = ConfigDict(frozen=True)

    previous: EntitySnapshot = Field(default=..., description="Snapshot before replacement")


Classification = Missing | Unchanged | Changed


class ChangeDetector:
    """Classifies entries against the snapshots held by a strategy."""

    def __init__(self, identity_attribute: str, tracked_attributes: list[str]):
        """
        Initialize change detector.

        Args:
            identity_attribute: Attribute holding the entity's unique id
            tracked_attributes: Attributes whose change marks an entity as changed
        """
        self._identity_attribute = identity_attribute
        self._tracked_attributes = list(dict.fromkeys(tracked_attributes))

    @classmethod
    def from_config(cls, attributes: AttributeConfig) -> "ChangeDetector":
        """Create a detector from attribute configuration.

        The update-timestamp attribute, if configured, is tracked as well.
        """
        return cls(attributes.pid, attributes.tracked())

    @property
    def tracked_attributes(self) -> list[str]:
        return list(self._tracked_attributes)

    def entity_id(self, entry: AttributeAccessor) -> EntityId:
        """
        Resolve the entity id of an entry.

        Args:
            entry: Entry to read the identity attribute from

        Returns:
            The identity attribute's first value as bytes

        Raises:
            MissingAttribute: If the identity attribute is absent
        """
        entity_id = entry.bin_attr_first(self._identity_attribute)
        if entity_id is None:
            raise MissingAttribute(self._identity_attribute, entry.dn)
        return entity_id

    def classify(
        self, strategy: TrackedAttributeDiff | Disabled, entry: Entry
    ) -> Classification:
        """
        Classify an entry against the strategy's stored state.

        A first-seen entity is stored and reported as Missing. A known entity
        whose tracked attributes differ has its snapshot replaced and is
        reported as Changed with the replaced snapshot. Otherwise the entity
        is Unchanged and its snapshot is left untouched.

        Args:
            strategy: Strategy holding the stored snapshots
            entry: Entry from the current scan

        Returns:
            Missing, Unchanged, or Changed

        Raises:
            MissingAttribute: If the identity attribute is absent
        """
        entity_id = self.entity_id(entry)

        match strategy:
            case Disabled():
                return Missing()
            case TrackedAttributeDiff(entries=entries):
                previous = entries.get(entity_id)
                if previous is None:
                    entries[entity_id] = entry.snapshot()
                    return Missing()
                changed = self._changed_attributes(entry, previous)
                if not changed:
                    return Unchanged()
                log.debug(
                    "entry_changed",
                    entity_id=entity_id,
                    dn=entry.dn,
                    changed_attributes=changed,
                )
                entries[entity_id] = entry.snapshot()
                return Changed(previous=previous)
        raise TypeError(f"Unknown strategy: {type(strategy).__name__}")

    def _changed_attributes(
        self, entry: Entry, previous: EntitySnapshot
    ) -> list[str]:
        # Values are compared in server order, no canonicalization
        return [
            name
            for name in self._tracked_attributes
            if entry.values_bytes(name) != previous.values_bytes(name)
        ]
