from datetime import datetime, timezone
from typing import Optional

from beanie import PydanticObjectId
from bson import ObjectId

from paywall.utils.errors import InvalidArgumentError


def utcnow() -> datetime:
    """Naive UTC timestamp, comparable with datetimes read back from MongoDB."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def add_years(value: datetime, years: int) -> datetime:
    """Shift a timestamp by whole calendar years; Feb 29 lands on Feb 28."""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)


def parse_object_id(value: Optional[str], label: str = "ID") -> PydanticObjectId:
    if not value or not ObjectId.is_valid(value):
        raise InvalidArgumentError(f"Invalid {label} format")
    return PydanticObjectId(value)
