"""Participation database model."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)

from sling.database.base import Base


class ParticipationRecord(Base):
    """Individual stake row."""

    __tablename__ = "participations"

    id = Column(String(64), primary_key=True)

    # References
    market_id = Column(
        String(64),
        ForeignKey("markets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    community_id = Column(String(128), nullable=False)
    user_id = Column(String(256), nullable=False)

    # Stake details
    chosen_option = Column(String(200), nullable=False)
    stake_amount = Column(Integer, nullable=False)
    locked_odds = Column(String(16), nullable=True)

    # Settlement
    is_winner = Column(Boolean, nullable=True)
    final_payout = Column(Integer, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("stake_amount > 0", name="positive_stake"),
        CheckConstraint(
            "final_payout IS NULL OR final_payout >= 0",
            name="non_negative_payout",
        ),
        Index("idx_participations_community_user", "community_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<ParticipationRecord {self.user_id} {self.stake_amount} on {self.chosen_option}>"
