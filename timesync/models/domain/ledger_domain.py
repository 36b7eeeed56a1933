"""
Posted-entry ledger domain models.

Stored documents keep the camelCase field names of the existing ledger
files so older deployments load without conversion.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

LedgerState = Literal["pending", "confirmed"]


class TimeEntry(BaseModel):
    """A time entry as written to (and echoed back by) the time-tracking system."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    id: str | None = None
    task_id: str = Field("", alias="taskid")
    project_id: str = Field("", alias="projectid")
    module_id: str = Field("", alias="moduleid")
    worktype_id: str = Field("", alias="worktypeid")
    person_id: str | None = Field(None, alias="personid")
    date: str = ""
    hours: float = Field(0.0, alias="time")
    description: str = ""
    billable: bool = True
    created: str | None = None
    updated: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Request body for POST /time/."""
        payload = self.model_dump(by_alias=True, exclude={"id", "created", "updated"})
        if payload.get("personid") is None:
            payload.pop("personid", None)
        return payload


class LedgerRecord(BaseModel):
    """One posted (or in-flight) time entry for a (user, fingerprint) pair."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    meeting_id: str
    fingerprint: str | None = None
    user_id: str
    subject: str | None = None
    start_time: str | None = None
    duration_seconds: int | None = None
    time_entry: TimeEntry | None = None
    raw_response: Any = None
    posted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    state: LedgerState = "confirmed"

    @field_validator("posted_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    @property
    def key(self) -> str:
        """Dedup key; legacy records were keyed by the raw calendar id only."""
        return self.fingerprint or self.meeting_id

    def has_time_entry(self) -> bool:
        return self.state == "confirmed" and self.time_entry is not None

    def recorded_duration_seconds(self) -> int | None:
        """Attended seconds at posting time, falling back to the posted hours."""
        if self.duration_seconds is not None:
            return self.duration_seconds
        if self.time_entry is not None:
            return int(round(self.time_entry.hours * 3600))
        return None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
