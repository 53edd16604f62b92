# Import every model so Base.metadata and the mapper registry are complete
from app.db.session import Base
from app.models.user import User
from app.models.service import Service
from app.models.booking import Booking, BookingStatusEvent
from app.models.payment import PaymentRecord, RefundRequest, ProcessedPaymentEvent
from app.models.dispute import Dispute, DisputeMessage
