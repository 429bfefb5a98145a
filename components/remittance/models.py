"""Remittance ledger models for the database."""

import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Numeric, event
from sqlalchemy.orm import relationship

from components.core.database import Base, utcnow
from components.core.errors import ImmutableRecordError


class RemittanceStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    COMPLETED = "COMPLETED"  # fully settled (outgoing) or fully allocated (incoming)
    PAID = "PAID"  # paid out to the recipient (incoming only)
    CANCELLED = "CANCELLED"


OPEN_STATUSES = (RemittanceStatus.PENDING.value, RemittanceStatus.PARTIAL.value)


class OutgoingRemittance(Base):
    """Money owed to a recipient abroad (Canada to Iran), settled down over time."""
    __tablename__ = "outgoing_remittances"

    id = Column(Integer, primary_key=True, index=True)
    remittance_code = Column(String(20), unique=True, nullable=True)

    sender_name = Column(String(255), nullable=False)
    sender_phone = Column(String(50), nullable=True)
    recipient_name = Column(String(255), nullable=False)
    recipient_phone = Column(String(50), nullable=True)
    recipient_iban = Column(String(50), nullable=True)
    recipient_bank = Column(String(255), nullable=True)

    amount_irr = Column(Numeric(20, 2), nullable=False)
    buy_rate_cad = Column(Numeric(20, 6), nullable=False)  # Toman per CAD
    equivalent_cad = Column(Numeric(20, 2), nullable=False)  # amount_irr / buy_rate_cad
    received_cad = Column(Numeric(20, 2), nullable=False, default=0)
    fee_cad = Column(Numeric(20, 2), nullable=False, default=0)

    settled_amount_irr = Column(Numeric(20, 2), nullable=False, default=0)
    remaining_irr = Column(Numeric(20, 2), nullable=False)
    total_profit_cad = Column(Numeric(20, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=RemittanceStatus.PENDING.value, index=True)

    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(Integer, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Optimistic concurrency stamp, bumped by every conditional update
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    settlements = relationship(
        "Settlement", back_populates="outgoing", order_by="Settlement.id", lazy="selectin"
    )


class IncomingRemittance(Base):
    """Funds received (Iran to Canada) that can be allocated to outgoing debts."""
    __tablename__ = "incoming_remittances"

    id = Column(Integer, primary_key=True, index=True)
    remittance_code = Column(String(20), unique=True, nullable=True)

    sender_name = Column(String(255), nullable=False)
    sender_phone = Column(String(50), nullable=True)
    recipient_name = Column(String(255), nullable=False)
    recipient_phone = Column(String(50), nullable=True)

    amount_irr = Column(Numeric(20, 2), nullable=False)
    sell_rate_cad = Column(Numeric(20, 6), nullable=False)  # Toman per CAD
    equivalent_cad = Column(Numeric(20, 2), nullable=False)  # amount_irr / sell_rate_cad
    fee_cad = Column(Numeric(20, 2), nullable=False, default=0)  # deducted before payout
    paid_cad = Column(Numeric(20, 2), nullable=False, default=0)

    allocated_irr = Column(Numeric(20, 2), nullable=False, default=0)
    remaining_irr = Column(Numeric(20, 2), nullable=False)
    status = Column(String(20), nullable=False, default=RemittanceStatus.PENDING.value, index=True)

    payment_method = Column(String(50), nullable=False, default="CASH")
    payment_reference = Column(String(255), nullable=True)

    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    paid_at = Column(DateTime, nullable=True)
    paid_by = Column(Integer, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(Integer, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    # Relationships
    settlements = relationship(
        "Settlement", back_populates="incoming", order_by="Settlement.id", lazy="selectin"
    )


class Settlement(Base):
    """Append-only ledger entry linking one incoming to one outgoing remittance."""
    __tablename__ = "remittance_settlements"

    id = Column(Integer, primary_key=True, index=True)
    outgoing_remittance_id = Column(Integer, ForeignKey("outgoing_remittances.id"), nullable=False, index=True)
    incoming_remittance_id = Column(Integer, ForeignKey("incoming_remittances.id"), nullable=False, index=True)

    settled_amount_irr = Column(Numeric(20, 2), nullable=False)
    outgoing_buy_rate = Column(Numeric(20, 6), nullable=False)  # rate captured at commit
    incoming_sell_rate = Column(Numeric(20, 6), nullable=False)  # rate captured at commit
    profit_cad = Column(Numeric(20, 2), nullable=False)

    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    # Relationships
    outgoing = relationship("OutgoingRemittance", back_populates="settlements")
    incoming = relationship("IncomingRemittance", back_populates="settlements")


@event.listens_for(Settlement, "before_update")
def _reject_settlement_update(mapper, connection, target):
    raise ImmutableRecordError(f"Settlement {target.id} is immutable and cannot be updated")


@event.listens_for(Settlement, "before_delete")
def _reject_settlement_delete(mapper, connection, target):
    raise ImmutableRecordError(f"Settlement {target.id} is immutable and cannot be deleted")
