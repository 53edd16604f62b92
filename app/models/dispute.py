from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.db.session import Base
from app.models.enums import DisputeStatus


class Dispute(Base):
    __tablename__ = "disputes"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(String(32), ForeignKey("bookings.id"), nullable=False, index=True)

    initiator_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reason = Column(String, nullable=False)
    description = Column(Text, nullable=False)

    status = Column(String, nullable=False, default=DisputeStatus.OPEN.value)
    resolution = Column(String, nullable=True)
    refund_amount_cents = Column(Integer, nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    opened_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime, nullable=True)

    booking = relationship("Booking", back_populates="disputes")
    messages = relationship(
        "DisputeMessage",
        back_populates="dispute",
        order_by="DisputeMessage.id",
    )


class DisputeMessage(Base):
    __tablename__ = "dispute_messages"

    id = Column(Integer, primary_key=True, index=True)
    dispute_id = Column(Integer, ForeignKey("disputes.id"), nullable=False, index=True)

    author_id = Column(Integer, nullable=False)
    author_role = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)

    dispute = relationship("Dispute", back_populates="messages")
