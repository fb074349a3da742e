"""Common Pydantic schemas and base classes."""

from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from sling.time_utils import utc_now


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class TimestampSchema(BaseSchema):
    """Schema with timestamp fields."""

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


def generate_market_id() -> str:
    """Generate unique market ID with 'mkt_' prefix."""
    return f"mkt_{uuid4().hex[:16]}"


def generate_participation_id() -> str:
    """Generate unique participation ID with 'stk_' prefix."""
    return f"stk_{uuid4().hex[:16]}"


def generate_outstanding_balance_id() -> str:
    """Generate unique outstanding balance ID with 'obl_' prefix."""
    return f"obl_{uuid4().hex[:16]}"
