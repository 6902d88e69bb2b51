"""Data models for events and cycle reports."""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from ldap_poller.models.entry import Entry, EntityId, EntitySnapshot


class NewEntry(BaseModel):
    """An entity observed for the first time."""

    kind: Literal["new"] = "new"
    entry: Entry = Field(default=..., description="The entry as currently returned")


class ChangedEntry(BaseModel):
    """An entity whose tracked attributes changed since the last observation."""

    kind: Literal["changed"] = "changed"
    entry: Entry = Field(default=..., description="The entry as currently returned")
    previous: EntitySnapshot = Field(default=..., description="The entry as last stored")


class RemovedEntry(BaseModel):
    """An entity that was not returned by a full scan."""

    kind: Literal["removed"] = "removed"
    entity_id: EntityId = Field(default=..., description="Id of the removed entity")


Event = Annotated[NewEntry | ChangedEntry | RemovedEntry, Field(discriminator="kind")]


class CycleReport(BaseModel):
    """Report of one polling cycle."""

    entries_seen: int = Field(default=0, ge=0, description="Entries returned by the search")
    entries_new: int = Field(default=0, ge=0, description="Entries observed for the first time")
    entries_changed: int = Field(default=0, ge=0, description="Entries with changed attributes")
    entries_unchanged: int = Field(default=0, ge=0, description="Entries without changes")
    entries_removed: int = Field(default=0, ge=0, description="Entities no longer returned")
    entries_skipped: int = Field(default=0, ge=0, description="Entries skipped due to errors")
    incremental: bool = Field(default=False, description="Whether the search was narrowed")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Cycle duration in seconds")
    start_time: datetime = Field(..., description="Cycle start timestamp")
    end_time: datetime = Field(..., description="Cycle end timestamp")
    errors: list[str] = Field(
        default_factory=list, description="Errors that aborted the cycle"
    )

    @property
    def total_changes(self) -> int:
        """Get total number of emitted events."""
        return self.entries_new + self.entries_changed + self.entries_removed

    @property
    def success(self) -> bool:
        """Check if the cycle completed without aborting."""
        return len(self.errors) == 0
