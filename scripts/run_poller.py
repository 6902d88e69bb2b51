#!/usr/bin/env python3
"""
Run the LDAP poller.

This script repeatedly polls the configured directory:
- Restores the cache from the checkpoint file, if one exists
- Classifies entries as new, changed or removed and prints the events
- Checkpoints the cache periodically and on exit

Usage:
    python scripts/run_poller.py [--config CONFIG_PATH] [--cache-path PATH] [--once]
"""

import argparse
import queue
import sys
import threading
import time

import structlog

from ldap_poller.errors import PersistenceFailure
from ldap_poller.models.config import AppConfig
from ldap_poller.sync.cache_store import CacheStore
from ldap_poller.sync.cycle_driver import CycleDriver
from ldap_poller.sync.models import ChangedEntry, Event, NewEntry, RemovedEntry
from ldap_poller.utils.config_loader import ConfigLoader, ConfigurationError
from ldap_poller.utils.logging_config import configure_logging_from

log = structlog.stdlib.get_logger()


def build_driver(config: AppConfig, store: CacheStore | None) -> CycleDriver:
    """
    Create a cycle driver, seeded from the checkpoint when possible.

    A checkpoint written with a different cache method is ignored.
    """
    cache = store.load() if store is not None else None
    checkpoint_method = cache.snapshot().method if cache is not None else None
    if checkpoint_method is not None and checkpoint_method != config.ldap.cache_method:
        log.warning(
            "Ignoring checkpoint with different cache method",
            checkpoint_method=checkpoint_method.value,
            configured_method=config.ldap.cache_method.value,
        )
        cache = None
    return CycleDriver(config.ldap, cache=cache)


def print_event(event: Event) -> None:
    """Print a received event on stdout."""
    match event:
        case NewEntry(entry=entry):
            print(f"NEW      {entry.dn}")
        case ChangedEntry(entry=entry, previous=previous):
            print(f"CHANGED  {entry.dn} (was {previous.dn})")
        case RemovedEntry(entity_id=entity_id):
            print(f"REMOVED  {entity_id.hex()}")


def checkpoint(driver: CycleDriver, store: CacheStore | None) -> None:
    """Save the cache, logging instead of raising on failure."""
    if store is None:
        return
    try:
        store.save(driver.cache)
    except PersistenceFailure as e:
        log.error("Checkpoint failed", error=str(e))


def run(config: AppConfig, once: bool = False) -> int:
    """
    Run the poller until interrupted, or for a single cycle.

    Returns:
        Process exit code
    """
    store = CacheStore(config.cache_path) if config.cache_path else None
    driver = build_driver(config, store)

    if once:
        consumer_stop = threading.Event()
        consumer = threading.Thread(
            target=consume, args=(driver.events, consumer_stop), daemon=True
        )
        consumer.start()
        report = driver.run_once()
        consumer_stop.set()
        consumer.join()
        checkpoint(driver, store)
        return 0 if report.success else 1

    stop = threading.Event()
    worker = threading.Thread(target=driver.run_forever, args=(stop,), name="poller", daemon=True)
    worker.start()
    log.info("Poller started", interval=config.ldap.interval)

    last_checkpoint = time.monotonic()
    try:
        while worker.is_alive():
            try:
                print_event(driver.events.get(timeout=1.0))
            except queue.Empty:
                pass
            if time.monotonic() - last_checkpoint >= config.checkpoint_interval:
                checkpoint(driver, store)
                last_checkpoint = time.monotonic()
    except KeyboardInterrupt:
        log.info("Interrupted, stopping poller")
    finally:
        stop.set()
        checkpoint(driver, store)

    return 0


def consume(events: "queue.Queue[Event]", stop: threading.Event) -> None:
    """Print events until ``stop`` is set and the queue is drained."""
    while not (stop.is_set() and events.empty()):
        try:
            print_event(events.get(timeout=0.1))
        except queue.Empty:
            continue


def main():
    """Main entry point for the poller script."""
    parser = argparse.ArgumentParser(description="Poll an LDAP directory for changed entries")
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--cache-path",
        type=str,
        help="Checkpoint file for the cache (overrides cache_path in the config)",
        default=None,
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit",
    )

    args = parser.parse_args()

    loader = ConfigLoader()
    try:
        config = loader.load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.cache_path:
        config.cache_path = args.cache_path

    configure_logging_from(config.logging)
    loader.validate_config(config)

    try:
        sys.exit(run(config, once=args.once))
    except PersistenceFailure as e:
        log.error("Failed to restore cache", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
