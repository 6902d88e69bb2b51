"""Property-based tests for logging functionality.

Every log line rendered by the poller's logging configuration must carry
a timestamp, the severity level, the event name and the event's context.
"""

import json
import logging
from datetime import datetime

import pytest
import structlog
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from ldap_poller.models.config import LoggingConfig
from ldap_poller.utils.logging_config import (
    configure_logging,
    configure_logging_from,
    encode_binary_values,
)


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.reset_defaults()


def _last_json_line(output: str) -> dict:
    lines = [line for line in output.strip().splitlines() if line]
    assert lines, "Expected at least one log line"
    try:
        return json.loads(lines[-1])
    except json.JSONDecodeError as e:
        raise AssertionError(f"Log output is not valid JSON: {lines[-1]}") from e


@given(
    log_level=st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    error_message=st.text(min_size=1, max_size=200),
)
@settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_log_format_contains_required_fields(
    capsys: pytest.CaptureFixture[str],
    log_level: str,
    error_message: str,
) -> None:
    """
    *For any* logged event, the JSON line contains timestamp, severity level,
    event name and the attached error message.
    """
    configure_logging(log_level="DEBUG", json_logs=True)
    capsys.readouterr()

    log = structlog.stdlib.get_logger("test_logger")
    getattr(log, log_level.lower())("cycle_failed", error=error_message)

    log_entry = _last_json_line(capsys.readouterr().out)

    assert "timestamp" in log_entry, f"Log entry missing 'timestamp' field. Log entry: {log_entry}"
    try:
        datetime.fromisoformat(log_entry["timestamp"].replace("Z", "+00:00"))
    except (ValueError, AttributeError) as e:
        raise AssertionError(
            f"Timestamp is not in valid ISO format: {log_entry['timestamp']}"
        ) from e

    assert log_entry["level"].upper() == log_level, (
        f"Log level mismatch. Expected: {log_level}, Got: {log_entry['level']}"
    )
    assert log_entry["event"] == "cycle_failed"
    assert log_entry["error"] == error_message


@given(
    entity_count=st.integers(min_value=0, max_value=10_000),
    dn=st.text(min_size=1, max_size=80),
)
@settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_log_format_preserves_context(
    capsys: pytest.CaptureFixture[str],
    entity_count: int,
    dn: str,
) -> None:
    """*For any* context passed as keyword arguments, the values appear unchanged."""
    configure_logging(log_level="INFO", json_logs=True)
    capsys.readouterr()

    log = structlog.stdlib.get_logger("test_logger")
    log.warning("entry_skipped", dn=dn, entity_count=entity_count)

    log_entry = _last_json_line(capsys.readouterr().out)

    assert log_entry["dn"] == dn
    assert log_entry["entity_count"] == entity_count
    assert log_entry["func_name"] == "test_log_format_preserves_context"
    assert "lineno" in log_entry


def test_log_level_filters_lower_severities(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(log_level="WARNING", json_logs=True)
    capsys.readouterr()

    log = structlog.stdlib.get_logger("test_logger")
    log.info("cycle_started")
    log.debug("comparison_started")

    assert capsys.readouterr().out.strip() == ""


def test_log_file_receives_json_lines(tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
    log_file = tmp_path / "poller.log"
    configure_logging_from(
        LoggingConfig(log_level="INFO", json_logs=True, log_file=str(log_file))
    )

    log = structlog.stdlib.get_logger("test_logger")
    log.info("cache_saved", path="/var/lib/poller/cache.json")

    for handler in logging.root.handlers:
        handler.flush()

    log_entry = _last_json_line(log_file.read_text(encoding="utf-8"))
    assert log_entry["event"] == "cache_saved"
    assert log_entry["path"] == "/var/lib/poller/cache.json"
    assert _last_json_line(capsys.readouterr().out)["event"] == "cache_saved"


def test_console_format_is_not_json(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(log_level="INFO", json_logs=False)
    capsys.readouterr()

    structlog.stdlib.get_logger("test_logger").info("polling_started", interval=60)

    output = capsys.readouterr().out
    assert "polling_started" in output
    with pytest.raises(json.JSONDecodeError):
        json.loads(output.strip().splitlines()[-1])


@given(entity_id=st.binary(min_size=1, max_size=32))
@settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_binary_entity_ids_are_logged_as_hex(
    capsys: pytest.CaptureFixture[str],
    entity_id: bytes,
) -> None:
    """*For any* binary entity id, the JSON line carries its hex encoding."""
    configure_logging(log_level="INFO", json_logs=True)
    capsys.readouterr()

    structlog.stdlib.get_logger("test_logger").info("entry_removed", entity_id=entity_id)

    log_entry = _last_json_line(capsys.readouterr().out)
    assert log_entry["entity_id"] == entity_id.hex()


def test_encode_binary_values_leaves_other_values_alone() -> None:
    event_dict = {"event": "entry_changed", "entity_id": b"\x93\x7b", "dn": "uid=a", "count": 2}

    assert encode_binary_values(None, "info", event_dict) == {
        "event": "entry_changed",
        "entity_id": "937b",
        "dn": "uid=a",
        "count": 2,
    }
