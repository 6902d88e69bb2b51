"""Cache state shared between the polling loop and checkpointing."""

import base64
import binascii
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Literal

import structlog
from pydantic import BaseModel, Field, ValidationError

from ldap_poller.errors import PersistenceFailure
from ldap_poller.models.config import CacheMethod
from ldap_poller.models.entry import EntityId, EntitySnapshot
from ldap_poller.sync.change_detector import (
    Disabled,
    Strategy,
    TrackedAttributeDiff,
    strategy_for,
)

log = structlog.stdlib.get_logger()


class Cache(BaseModel):
    """Time of the last cycle plus the strategy's stored entity snapshots."""

    last_cycle_start_time: datetime | None = Field(
        default=None, description="Start time of the last completed cycle"
    )
    strategy: Strategy = Field(default_factory=TrackedAttributeDiff)
    # Only meaningful between start and end of one comparison
    missing: set[EntityId] = Field(default_factory=set, exclude=True)

    @classmethod
    def new(cls, method: CacheMethod) -> "Cache":
        """Create an empty cache for the given cache method."""
        return cls(strategy=strategy_for(method))

    @property
    def method(self) -> CacheMethod:
        match self.strategy:
            case TrackedAttributeDiff():
                return CacheMethod.TRACKED_ATTRIBUTES
            case Disabled():
                return CacheMethod.DISABLED
        raise TypeError(f"Unknown strategy: {type(self.strategy).__name__}")

    def entity_ids(self) -> set[EntityId]:
        """Return a copy of the ids of all entities believed to exist."""
        match self.strategy:
            case TrackedAttributeDiff(entries=entries):
                return set(entries)
            case Disabled():
                return set()
        raise TypeError(f"Unknown strategy: {type(self.strategy).__name__}")

    def forget(self, entity_ids: Iterable[EntityId]) -> None:
        """Drop the stored snapshots of the given entities."""
        match self.strategy:
            case TrackedAttributeDiff(entries=entries):
                for entity_id in entity_ids:
                    entries.pop(entity_id, None)
            case Disabled():
                pass

    def to_json(self) -> str:
        """
        Serialize the cache into a self-contained JSON document.

        Returns:
            JSON string holding the last cycle start time and strategy contents

        Raises:
            PersistenceFailure: If serialization fails
        """
        try:
            return _CacheDocument.from_cache(self).model_dump_json()
        except (TypeError, ValueError) as e:
            raise PersistenceFailure(f"Failed to serialize cache: {e}") from e

    @classmethod
    def from_json(cls, data: str | bytes) -> "Cache":
        """
        Restore a cache from a document produced by :meth:`to_json`.

        Args:
            data: JSON document

        Returns:
            Cache equivalent to the one that was serialized

        Raises:
            PersistenceFailure: If the document cannot be parsed or decoded
        """
        try:
            return _CacheDocument.model_validate_json(data).to_cache()
        except (ValidationError, binascii.Error, ValueError) as e:
            raise PersistenceFailure(f"Failed to deserialize cache: {e}") from e


def _encode(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _decode(value: str) -> bytes:
    return base64.b64decode(value, validate=True)


class _SnapshotRecord(BaseModel):
    """Persisted form of one entity snapshot. Binary values are base64."""

    entity_id: str
    dn: str
    attrs: dict[str, list[str]] = Field(default_factory=dict)
    bin_attrs: dict[str, list[str]] = Field(default_factory=dict)


class _CacheDocument(BaseModel):
    """Persisted form of a cache."""

    last_cycle_start_time: datetime | None = None
    strategy: Literal["tracked_attribute_diff", "disabled"]
    entries: list[_SnapshotRecord] = Field(default_factory=list)

    @classmethod
    def from_cache(cls, cache: Cache) -> "_CacheDocument":
        records: list[_SnapshotRecord] = []
        if isinstance(cache.strategy, TrackedAttributeDiff):
            for entity_id, snapshot in cache.strategy.entries.items():
                records.append(
                    _SnapshotRecord(
                        entity_id=_encode(entity_id),
                        dn=snapshot.dn,
                        attrs={name: list(values) for name, values in snapshot.attrs.items()},
                        bin_attrs={
                            name: [_encode(value) for value in values]
                            for name, values in snapshot.bin_attrs.items()
                        },
                    )
                )
        return cls(
            last_cycle_start_time=cache.last_cycle_start_time,
            strategy=cache.strategy.kind,
            entries=records,
        )

    def to_cache(self) -> Cache:
        if self.strategy == "disabled":
            if self.entries:
                raise ValueError("A disabled cache cannot hold entries")
            return Cache(last_cycle_start_time=self.last_cycle_start_time, strategy=Disabled())

        entries: dict[EntityId, EntitySnapshot] = {}
        for record in self.entries:
            entity_id = _decode(record.entity_id)
            if entity_id in entries:
                raise ValueError(f"Duplicate entity id {entity_id.hex()}")
            entries[entity_id] = EntitySnapshot(
                dn=record.dn,
                attrs={name: tuple(values) for name, values in record.attrs.items()},
                bin_attrs={
                    name: tuple(_decode(value) for value in values)
                    for name, values in record.bin_attrs.items()
                },
            )
        return Cache(
            last_cycle_start_time=self.last_cycle_start_time,
            strategy=TrackedAttributeDiff(entries=entries),
        )


class SyncCache:
    """A cache guarded by a lock, shared by the polling loop and exports.

    The polling loop takes the lock for each single classification step and
    for committing the cycle start time. Exports take it for one
    serialization, so a checkpoint never observes a half-applied step.
    """

    def __init__(self, cache: Cache | None = None):
        """
        Initialize the shared cache.

        Args:
            cache: Initial cache state. An empty tracked-attribute cache if None.
        """
        self._cache: Cache = cache if cache is not None else Cache()
        self._lock = threading.Lock()

    @classmethod
    def restore(cls, data: str | bytes) -> "SyncCache":
        """Create a shared cache from an exported document.

        Raises:
            PersistenceFailure: If the document is invalid
        """
        cache = Cache.from_json(data)
        log.info(
            "cache_restored",
            method=cache.method.value,
            entity_count=len(cache.entity_ids()),
            last_cycle_start_time=cache.last_cycle_start_time,
        )
        return cls(cache)

    @contextmanager
    def write(self) -> Iterator[Cache]:
        """Hold the lock and give mutable access to the cache."""
        with self._lock:
            yield self._cache

    def snapshot(self) -> Cache:
        """Return a deep copy of the cache taken under the lock."""
        with self._lock:
            return self._cache.model_copy(deep=True)

    def export(self) -> str:
        """Serialize a consistent snapshot of the cache.

        Raises:
            PersistenceFailure: If serialization fails
        """
        with self._lock:
            return self._cache.to_json()

    @property
    def last_cycle_start_time(self) -> datetime | None:
        with self._lock:
            return self._cache.last_cycle_start_time

    def commit_cycle_start(self, start_time: datetime) -> None:
        """Record the start time of a finished cycle."""
        with self._lock:
            self._cache.last_cycle_start_time = start_time
