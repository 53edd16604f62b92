from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from app.db.session import Base


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)

    # Ownership
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    description = Column(String)

    # Pricing fields (cents)
    base_rate_cents = Column(Integer, nullable=False, default=0)
    per_mile_rate_cents = Column(Integer, nullable=False, default=0)
    hourly_rate_cents = Column(Integer, nullable=False, default=0)

    active = Column(Boolean, nullable=False, default=True)

    provider = relationship("User", back_populates="services")
    bookings = relationship("Booking", back_populates="service")
