"""Property-based tests for change detection."""

import pytest
import structlog
from hypothesis import given
from hypothesis import strategies as st

from ldap_poller.errors import MissingAttribute
from ldap_poller.models.config import AttributeConfig, CacheMethod
from ldap_poller.models.entry import Entry
from ldap_poller.sync.change_detector import (
    ChangeDetector,
    Changed,
    Disabled,
    Missing,
    TrackedAttributeDiff,
    Unchanged,
    strategy_for,
)

log = structlog.stdlib.get_logger()


def make_entry(pid: str, **attrs: str | list[str]) -> Entry:
    values = {name: value if isinstance(value, list) else [value] for name, value in attrs.items()}
    return Entry(dn=f"uid={pid},ou=users,dc=example,dc=org", attrs={"id": [pid], **values})


@st.composite
def entry_strategy(draw):
    """Generate entries with an id and a handful of string attributes."""
    pid = draw(st.text(min_size=1, max_size=10, alphabet="0123456789abcdef"))
    attrs = draw(
        st.dictionaries(
            st.sampled_from(["X", "Y", "cn", "mail"]),
            st.lists(st.text(max_size=10), min_size=1, max_size=3),
        )
    )
    return make_entry(pid, **attrs)


@pytest.fixture
def detector() -> ChangeDetector:
    return ChangeDetector("id", ["X"])


@given(entry=entry_strategy())
def test_first_observation_is_missing_then_unchanged(entry: Entry):
    """For any entry, the first observation is Missing and repeating the same
    entry is Unchanged."""
    log.info("test_first_observation_is_missing_then_unchanged", dn=entry.dn)

    detector = ChangeDetector("id", ["X", "Y"])
    strategy = TrackedAttributeDiff()

    assert detector.classify(strategy, entry) == Missing()
    assert detector.entity_id(entry) in strategy.entries
    assert detector.classify(strategy, entry) == Unchanged()
    assert detector.classify(strategy, entry) == Unchanged()


def test_tracked_attribute_change_is_reported(detector: ChangeDetector):
    strategy = TrackedAttributeDiff()
    detector.classify(strategy, make_entry("1", X="1"))

    result = detector.classify(strategy, make_entry("1", X="2"))

    assert isinstance(result, Changed)
    assert result.previous.attr_first("X") == "1", "Changed carries the replaced snapshot"
    assert strategy.entries[b"1"].attr_first("X") == "2", "Snapshot is replaced"


def test_untracked_attribute_change_is_ignored(detector: ChangeDetector):
    strategy = TrackedAttributeDiff()
    detector.classify(strategy, make_entry("1", X="1", cn="Old Name"))

    assert detector.classify(strategy, make_entry("1", X="1", cn="New Name")) == Unchanged()
    # Unchanged leaves the stored snapshot alone
    assert strategy.entries[b"1"].attr_first("cn") == "Old Name"


@pytest.mark.parametrize(
    "before, after",
    [
        ({"X": "1"}, {}),
        ({}, {"X": "1"}),
        ({"X": ["a", "b"]}, {"X": ["b", "a"]}),
        ({"X": ["a"]}, {"X": ["a", "b"]}),
    ],
)
def test_value_list_differences_are_changes(detector: ChangeDetector, before, after):
    strategy = TrackedAttributeDiff()
    detector.classify(strategy, make_entry("1", **before))

    assert isinstance(detector.classify(strategy, make_entry("1", **after)), Changed)


def test_string_and_binary_forms_compare_equal(detector: ChangeDetector):
    strategy = TrackedAttributeDiff()
    detector.classify(strategy, make_entry("1", X="1"))

    as_binary = Entry(dn="uid=1", attrs={"id": ["1"]}, bin_attrs={"X": [b"1"]})

    assert detector.classify(strategy, as_binary) == Unchanged()


def test_entities_are_keyed_by_id_not_dn(detector: ChangeDetector):
    strategy = TrackedAttributeDiff()
    detector.classify(strategy, Entry(dn="uid=old", attrs={"id": ["1"], "X": ["1"]}))

    result = detector.classify(strategy, Entry(dn="uid=renamed", attrs={"id": ["1"], "X": ["1"]}))

    assert result == Unchanged()
    assert len(strategy.entries) == 1


@given(entry=entry_strategy())
def test_disabled_strategy_always_reports_missing(entry: Entry):
    """With caching disabled every observation is Missing."""
    detector = ChangeDetector("id", ["X"])
    strategy = Disabled()

    assert detector.classify(strategy, entry) == Missing()
    assert detector.classify(strategy, entry) == Missing()


def test_missing_identity_attribute(detector: ChangeDetector):
    strategy = TrackedAttributeDiff()
    entry = Entry(dn="uid=nobody", attrs={"X": ["1"]})

    with pytest.raises(MissingAttribute) as exc_info:
        detector.classify(strategy, entry)

    assert exc_info.value.attribute == "id"
    assert exc_info.value.dn == "uid=nobody"
    assert strategy.entries == {}, "Nothing is stored for an entry without id"


def test_binary_identity_attribute():
    detector = ChangeDetector("objectGUID", [])
    guid = bytes([147, 123, 243, 42, 224, 235, 66, 224])
    entry = Entry(dn="cn=Jane Doe", bin_attrs={"objectGUID": [guid]})

    assert detector.entity_id(entry) == guid


def test_from_config_tracks_update_attribute():
    detector = ChangeDetector.from_config(AttributeConfig.example())

    assert detector.tracked_attributes == ["enabled", "modifyTimestamp"]


def test_strategy_for_method():
    assert isinstance(strategy_for(CacheMethod.TRACKED_ATTRIBUTES), TrackedAttributeDiff)
    assert isinstance(strategy_for(CacheMethod.DISABLED), Disabled)
