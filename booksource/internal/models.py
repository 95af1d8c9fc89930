from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def utcnow_naive() -> datetime:
    """Current UTC time without tzinfo, the form SQLite hands back."""
    return datetime.now(UTC).replace(tzinfo=None)


class QuotaCounter(SQLModel, table=True):
    """Durable per-provider, per-day call counter. Keys embed the UTC date."""

    __tablename__ = "quota_counter"  # pyright: ignore[reportAssignmentType]

    key: str = Field(primary_key=True)
    value: int = 0
    expires_at: datetime
    updated_at: datetime = Field(default_factory=utcnow_naive)
