from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class TimeEntry(BaseModel):
    id: int = Field(..., description="Store-assigned identifier.")
    project_name: str = Field(
        ..., min_length=1, description="Free-text project label."
    )
    start_time: datetime = Field(..., description="When tracking started.")
    end_time: Optional[datetime] = Field(
        None, description="When tracking stopped, None while running."
    )
    description: Optional[str] = Field(
        None, description="Optional note about the work."
    )

    @model_validator(mode="after")
    def _check_interval(self) -> "TimeEntry":
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("end_time must not be earlier than start_time")
        return self

    @property
    def is_running(self) -> bool:
        return self.end_time is None

    def duration(self, now: Optional[datetime] = None) -> timedelta:
        """Elapsed time; a running entry is measured up to ``now``."""
        end = self.end_time
        if end is None:
            end = now or datetime.now()
        return max(end - self.start_time, timedelta(0))


class TimeEntryList(BaseModel):
    entries: List[TimeEntry]
