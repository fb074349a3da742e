"""Outstanding balance database model."""

from sqlalchemy import (
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


class OutstandingBalanceRecord(Base):
    """Points one member owes another from a settled market."""

    __tablename__ = "outstanding_balances"

    id = Column(String(64), primary_key=True)

    # References
    market_id = Column(
        String(64),
        ForeignKey("markets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    community_id = Column(String(128), nullable=False)

    # Parties
    payer_id = Column(String(256), nullable=False)
    payee_id = Column(String(256), nullable=False)

    amount = Column(Integer, nullable=False)
    winner_option = Column(String(200), nullable=False)
    market_title = Column(String(500), nullable=False, default="")

    status = Column(String(20), nullable=False, default="pending")
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_outstanding_amount"),
        CheckConstraint("payer_id <> payee_id", name="distinct_parties"),
        CheckConstraint(
            "status IN ('pending', 'paid', 'resolved')",
            name="valid_outstanding_status",
        ),
        Index("idx_outstanding_payer_status", "payer_id", "status"),
        Index("idx_outstanding_payee_status", "payee_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<OutstandingBalanceRecord {self.payer_id} owes {self.payee_id} "
            f"{self.amount} ({self.status})>"
        )
