import uuid

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.db.session import Base
from app.models.enums import BookingStatus, PaymentStatus
from app.utils.clock import utcnow


def new_booking_id():
    return uuid.uuid4().hex


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(32), primary_key=True, default=new_booking_id)

    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)

    status = Column(String, nullable=False, default=BookingStatus.PENDING.value)
    cancellation_reason = Column(String, nullable=True)

    # Schedule
    scheduled_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    # Locations
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    delivery_lat = Column(Float, nullable=False)
    delivery_lng = Column(Float, nullable=False)
    distance_miles = Column(Float, nullable=False)

    # Fixed at creation
    quoted_amount_cents = Column(Integer, nullable=False)

    # Status timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    accepted_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    disputed_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    # Optimistic concurrency counter
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    requester = relationship("User", foreign_keys=[requester_id])
    provider = relationship("User", foreign_keys=[provider_id])
    service = relationship("Service", back_populates="bookings")

    payments = relationship(
        "PaymentRecord",
        back_populates="booking",
        order_by="PaymentRecord.id",
    )
    status_events = relationship(
        "BookingStatusEvent",
        back_populates="booking",
        order_by="BookingStatusEvent.id",
    )
    disputes = relationship("Dispute", back_populates="booking", order_by="Dispute.id")

    @property
    def payment(self):
        """The current non-failed payment record, if any."""
        for record in reversed(self.payments):
            if record.status != PaymentStatus.FAILED.value:
                return record
        return None


class BookingStatusEvent(Base):
    __tablename__ = "booking_status_events"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(String(32), ForeignKey("bookings.id"), nullable=False, index=True)

    from_status = Column(String, nullable=True)
    to_status = Column(String, nullable=False)
    actor_id = Column(Integer, nullable=True)
    actor_role = Column(String, nullable=False)
    reason = Column(String, nullable=True)
    occurred_at = Column(DateTime, nullable=False)

    booking = relationship("Booking", back_populates="status_events")
