"""Change detection, comparison cycles and the polling loop."""

from ldap_poller.sync.cache import Cache, SyncCache
from ldap_poller.sync.cache_store import CacheStore
from ldap_poller.sync.change_detector import (
    ChangeDetector,
    Changed,
    Classification,
    Disabled,
    Missing,
    TrackedAttributeDiff,
    Unchanged,
)
from ldap_poller.sync.comparison import ComparisonCycle
from ldap_poller.sync.cycle_driver import CycleDriver
from ldap_poller.sync.models import ChangedEntry, CycleReport, Event, NewEntry, RemovedEntry

__all__ = [
    "Cache",
    "CacheStore",
    "ChangeDetector",
    "Changed",
    "ChangedEntry",
    "Classification",
    "ComparisonCycle",
    "CycleDriver",
    "CycleReport",
    "Disabled",
    "Event",
    "Missing",
    "NewEntry",
    "RemovedEntry",
    "SyncCache",
    "TrackedAttributeDiff",
    "Unchanged",
]
