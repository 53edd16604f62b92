from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from app.db.session import Base
from app.models.enums import PaymentStatus
from app.utils.clock import utcnow


class PaymentRecord(Base):
    __tablename__ = "payment_records"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(String(32), ForeignKey("bookings.id"), nullable=False, index=True)

    authorization_id = Column(String, nullable=True, index=True)
    capture_id = Column(String, nullable=True)

    authorized_amount_cents = Column(Integer, nullable=False, default=0)
    captured_amount_cents = Column(Integer, nullable=False, default=0)
    refunded_amount_cents = Column(Integer, nullable=False, default=0)

    status = Column(String, nullable=False, default=PaymentStatus.AUTHORIZED.value)
    failure_reason = Column(String, nullable=True)

    authorized_at = Column(DateTime, nullable=True)
    captured_at = Column(DateTime, nullable=True)
    # newest provider event applied to this record
    last_event_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("captured_amount_cents <= authorized_amount_cents", name="ck_captured_le_authorized"),
        CheckConstraint("refunded_amount_cents <= captured_amount_cents", name="ck_refunded_le_captured"),
    )

    booking = relationship("Booking", back_populates="payments")
    refunds = relationship("RefundRequest", back_populates="payment", order_by="RefundRequest.id")

    @property
    def refundable_cents(self):
        return self.captured_amount_cents - self.refunded_amount_cents


class RefundRequest(Base):
    __tablename__ = "refund_requests"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payment_records.id"), nullable=False, index=True)

    request_token = Column(String, unique=True, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    refund_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    payment = relationship("PaymentRecord", back_populates="refunds")


class ProcessedPaymentEvent(Base):
    __tablename__ = "processed_payment_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String, unique=True, nullable=False)
    event_type = Column(String, nullable=False)
    authorization_id = Column(String, nullable=True)
    occurred_at = Column(DateTime, nullable=True)
    outcome = Column(String, nullable=False)
    received_at = Column(DateTime, nullable=False, default=utcnow)
