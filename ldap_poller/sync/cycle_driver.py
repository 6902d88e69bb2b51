"""Polling loop that turns repeated directory scans into change events."""

import queue
import threading
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from ldap_poller.directory.ldap_client import LdapDirectorySource
from ldap_poller.directory.source import DirectorySource
from ldap_poller.errors import ConnectionFailure, Malformed, MissingAttribute
from ldap_poller.models.config import LDAPConfig
from ldap_poller.models.entry import Entry
from ldap_poller.sync.cache import Cache, SyncCache
from ldap_poller.sync.change_detector import ChangeDetector, Changed, Missing, Unchanged
from ldap_poller.sync.comparison import ComparisonCycle
from ldap_poller.sync.models import ChangedEntry, CycleReport, Event, NewEntry, RemovedEntry
from ldap_poller.utils.generalized_time import format_generalized_time

log = structlog.stdlib.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CycleDriver:
    """Orchestrates polling cycles between a directory source and consumers.

    Each cycle connects, runs one search, classifies every returned entry
    against the shared cache and puts New/Changed/Removed events on a
    bounded queue. A full queue blocks the scan until the consumer catches up.
    """

    def __init__(
        self,
        config: LDAPConfig,
        source: DirectorySource | None = None,
        cache: SyncCache | None = None,
        events: "queue.Queue[Event] | None" = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the cycle driver.

        Args:
            config: LDAP configuration
            source: Directory source (an ldap3-backed source if None)
            cache: Shared cache (an empty cache for the configured method if None)
            events: Queue events are put on (bounded by channel_capacity if None)
            clock: Returns the current time, used to stamp cycle starts
        """
        self._config = config
        self._source: DirectorySource = (
            source if source is not None else LdapDirectorySource(config)
        )
        self.cache: SyncCache = cache if cache is not None else SyncCache(
            Cache.new(config.cache_method)
        )
        self.events: queue.Queue[Event] = (
            events if events is not None else queue.Queue(maxsize=config.channel_capacity)
        )
        self._detector = ChangeDetector.from_config(config.attributes)
        self._clock = clock

        log.info(
            "cycle_driver_initialized",
            cache_method=config.cache_method.value,
            check_for_deleted_entries=config.check_for_deleted_entries,
            tracked_attributes=self._detector.tracked_attributes,
        )

    def search_filter(self, last_cycle_start_time: datetime | None) -> tuple[str, bool]:
        """
        Build the search filter for the next cycle.

        The filter is narrowed to entries updated since the last cycle's start
        only when deletion detection is off, since a narrowed scan would
        report every untouched entity as deleted.

        Args:
            last_cycle_start_time: Start time of the last completed cycle

        Returns:
            Tuple of (filter, whether the filter was narrowed)
        """
        user_filter = self._config.searches.user_filter.strip()
        if not user_filter.startswith("("):
            user_filter = f"({user_filter})"

        updated = self._config.attributes.updated
        if (
            self._config.check_for_deleted_entries
            or last_cycle_start_time is None
            or not updated
        ):
            return user_filter, False

        since = format_generalized_time(last_cycle_start_time)
        return f"(&{user_filter}({updated}>={since}))", True

    def run_once(self) -> CycleReport:
        """
        Perform one polling cycle.

        Connection and search failures abort the cycle and are recorded in
        the report. Entries missing the identity attribute or carrying a
        malformed update timestamp are skipped.

        Returns:
            CycleReport with the cycle's results
        """
        # Captured before the scan so entries modified during it are not missed
        start_time = self._clock()
        log.info("cycle_started", start_time=start_time)

        counts = {"seen": 0, "new": 0, "changed": 0, "unchanged": 0, "removed": 0, "skipped": 0}
        errors: list[str] = []
        incremental = False

        try:
            with self._source.connect() as connection:
                search_filter, incremental = self.search_filter(
                    self.cache.last_cycle_start_time
                )
                entries = connection.search(
                    self._config.searches.user_base,
                    self._config.searches.scope,
                    search_filter,
                    self._config.attributes.as_list(),
                )

                with self.cache.write() as cache:
                    cycle = ComparisonCycle(cache, self._detector)
                    cycle.start_comparison()

                for entry in entries:
                    counts["seen"] += 1
                    self._classify(cycle, entry, counts)

                if self._config.check_for_deleted_entries:
                    with self.cache.write():
                        removed = cycle.end_comparison()
                    for entity_id in sorted(removed):
                        log.info("entry_removed", entity_id=entity_id)
                        self.events.put(RemovedEntry(entity_id=entity_id))
                    counts["removed"] = len(removed)

                self.cache.commit_cycle_start(start_time)

        except ConnectionFailure as e:
            errors.append(f"Cycle failed: {e}")
            log.error("cycle_failed", error=str(e), entries_seen=counts["seen"])

        end_time = self._clock()
        report = CycleReport(
            entries_seen=counts["seen"],
            entries_new=counts["new"],
            entries_changed=counts["changed"],
            entries_unchanged=counts["unchanged"],
            entries_removed=counts["removed"],
            entries_skipped=counts["skipped"],
            incremental=incremental,
            duration_seconds=max((end_time - start_time).total_seconds(), 0.0),
            start_time=start_time,
            end_time=end_time,
            errors=errors,
        )

        log.info(
            "cycle_completed",
            success=report.success,
            incremental=incremental,
            entries_seen=report.entries_seen,
            entries_new=report.entries_new,
            entries_changed=report.entries_changed,
            entries_removed=report.entries_removed,
            entries_skipped=report.entries_skipped,
            duration_seconds=report.duration_seconds,
        )
        return report

    def _classify(self, cycle: ComparisonCycle, entry: Entry, counts: dict[str, int]) -> None:
        try:
            with self.cache.write():
                # A present entity stays known even when its entry is skipped below
                cycle.mark_observed(entry)
                if self._config.attributes.updated:
                    entry.time_first(self._config.attributes.updated)
                classification = cycle.observe(entry)
        except (MissingAttribute, Malformed) as e:
            counts["skipped"] += 1
            log.warning("entry_skipped", dn=entry.dn, error=str(e))
            return

        # Events are put outside the lock, a full queue must not block readers
        match classification:
            case Missing():
                counts["new"] += 1
                self.events.put(NewEntry(entry=entry))
            case Changed(previous=previous):
                counts["changed"] += 1
                self.events.put(ChangedEntry(entry=entry, previous=previous))
            case Unchanged():
                counts["unchanged"] += 1

    def run_forever(self, stop: threading.Event | None = None) -> None:
        """
        Run cycles until ``stop`` is set, waiting ``interval`` between them.

        Args:
            stop: Event that ends the loop. Runs indefinitely if None.
        """
        stop = stop if stop is not None else threading.Event()
        log.info("polling_started", interval=self._config.interval)

        while not stop.is_set():
            try:
                self.run_once()
            except Exception as e:
                log.exception("cycle_crashed", error=str(e))
            stop.wait(self._config.interval)

        log.info("polling_stopped")

    def export_cache(self) -> str:
        """Serialize a consistent snapshot of the cache for checkpointing."""
        return self.cache.export()
