"""One full classification pass over a cache, including deletion detection."""

import structlog

from ldap_poller.models.entry import Entry, EntityId
from ldap_poller.sync.cache import Cache
from ldap_poller.sync.change_detector import ChangeDetector, Classification

log = structlog.stdlib.get_logger()


class ComparisonCycle:
    """Tracks which known entities were observed during one scan.

    Usage is strictly ``start_comparison()``, then ``observe()`` for every
    entry of the scan, then ``end_comparison()``. Deletions reported by
    ``end_comparison()`` are only sound when the scan enumerated the source
    completely, without an "updated since" filter.
    """

    def __init__(self, cache: Cache, detector: ChangeDetector):
        """
        Initialize a comparison cycle.

        Args:
            cache: Cache to classify against and update
            detector: Change detector used for each observed entry
        """
        self._cache = cache
        self._detector = detector
        self._started = False
        self._ended = False

    def start_comparison(self) -> None:
        """Mark every currently known entity as expected but not yet observed."""
        if self._started:
            raise RuntimeError("Comparison already started")
        self._cache.missing = self._cache.entity_ids()
        self._started = True
        log.debug("comparison_started", expected_count=len(self._cache.missing))

    def observe(self, entry: Entry) -> Classification:
        """
        Mark an entry as observed and classify it.

        Observing an entity twice, or one that was never cached, leaves the
        missing set untouched.

        Args:
            entry: Entry from the scan

        Returns:
            Classification of the entry

        Raises:
            MissingAttribute: If the identity attribute is absent
            RuntimeError: If called outside of a started comparison
        """
        self.mark_observed(entry)
        return self._detector.classify(self._cache.strategy, entry)

    def mark_observed(self, entry: Entry) -> EntityId:
        """
        Mark an entry as present in the scan without classifying it.

        Used for entries that are skipped after their id was resolved, so
        they are not reported as removed.

        Returns:
            The entry's entity id

        Raises:
            MissingAttribute: If the identity attribute is absent
            RuntimeError: If called outside of a started comparison
        """
        if not self._started or self._ended:
            raise RuntimeError("observe() called outside of an active comparison")
        entity_id = self._detector.entity_id(entry)
        self._cache.missing.discard(entity_id)
        return entity_id

    def end_comparison(self) -> set[EntityId]:
        """
        Finish the comparison and report entities that were never observed.

        The reported entities are dropped from the cache.

        Returns:
            Ids of entities known at the start but not observed since

        Raises:
            RuntimeError: If the comparison was not started or already ended
        """
        if not self._started or self._ended:
            raise RuntimeError("end_comparison() called outside of an active comparison")
        removed = self._cache.missing
        self._cache.missing = set()
        self._cache.forget(removed)
        self._ended = True
        log.debug("comparison_ended", removed_count=len(removed))
        return removed
