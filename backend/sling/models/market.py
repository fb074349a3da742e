"""Market database model."""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
)

from sling.database.base import Base
from sling.models.base import TimestampMixin


class MarketRecord(Base, TimestampMixin):
    """Stored market row. The ``version`` column guards against lost updates."""

    __tablename__ = "markets"

    id = Column(String(64), primary_key=True)
    community_id = Column(String(128), nullable=False, index=True)
    creator_id = Column(String(256), nullable=False)
    title = Column(String(500), nullable=False, default="")

    # Outcomes
    options = Column(JSON, nullable=False)
    odds = Column(JSON, nullable=False)
    deadline = Column(DateTime(timezone=True), nullable=False)

    # Lifecycle
    status = Column(String(20), nullable=False, default="open")
    winner_option = Column(String(200), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    # Aggregate pool
    pool_by_option = Column(JSON, nullable=False, default=dict)
    total_pool = Column(Integer, nullable=False, default=0)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'settled', 'voided', 'cancelled')",
            name="valid_market_status",
        ),
        CheckConstraint(
            "winner_option IS NULL OR status = 'settled'",
            name="winner_only_when_settled",
        ),
        CheckConstraint("total_pool >= 0", name="non_negative_pool"),
        Index("idx_markets_community_status", "community_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<MarketRecord {self.id} ({self.status})>"
