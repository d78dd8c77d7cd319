"""Live counter response schemas."""
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_serializer


def _iso_utc(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CountSnapshot(BaseModel):
    """Connection counts at one instant; sent to every live stream."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total_connections: int = Field(alias="totalConnections")
    unique_visitors: int = Field(alias="uniqueVisitors")
    timestamp: datetime

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return _iso_utc(value)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class StatusOut(CountSnapshot):
    """Out-of-band status document (GET /health)."""
    status: str = "ok"
