import resend

from app.core import config
from app.core.logging_config import get_logger
from app.utils.pricing import from_cents

logger = get_logger()

SUBJECTS = {
    "booking.created": "Booking request received",
    "booking.accepted": "Your booking was accepted",
    "booking.in_progress": "Your drone service has started",
    "booking.completed": "Your drone service is complete",
    "booking.cancelled": "Booking cancelled",
    "booking.refunded": "Booking refunded",
    "booking.disputed": "A dispute was opened",
    "booking.resolved_captured": "Dispute resolved",
    "booking.resolved_refunded": "Dispute resolved with a refund",
    "dispute.opened": "A dispute was opened",
    "dispute.responded": "New reply on your dispute",
    "dispute.resolved": "Dispute resolved",
}


class Notifier:
    """
    Fire-and-forget messaging collaborator.

    ``notify`` never raises: delivery failures are logged and the booking
    flow carries on.
    """

    def notify(self, event: str, booking, **context):
        try:
            self.send(event, booking, **context)
        except Exception as e:
            logger.bind(log_type="notification").error(
                f"Notification failed | Event={event} | Booking={booking.id} | {e}"
            )

    def send(self, event: str, booking, **context):
        raise NotImplementedError


class LogNotifier(Notifier):

    def send(self, event, booking, **context):
        logger.bind(log_type="notification").info(
            f"{event} | Booking={booking.id} | Status={booking.status} | {context or ''}"
        )


class EmailNotifier(Notifier):

    def __init__(self, api_key=None, sender=None):
        resend.api_key = api_key or config.RESEND_API_KEY
        self.sender = sender or config.NOTIFICATION_FROM_EMAIL

    def send(self, event, booking, **context):
        recipients = [u.email for u in (booking.requester, booking.provider) if u is not None]
        if not recipients:
            return

        html = (
            f"<p>Booking <strong>{booking.id}</strong> is now "
            f"<strong>{booking.status}</strong>.</p>"
            f"<p>Quoted amount: {from_cents(booking.quoted_amount_cents)} {config.PAYMENT_CURRENCY}</p>"
        )
        if context.get("reason"):
            html += f"<p>Reason: {context['reason']}</p>"

        resend.Emails.send({
            "from": self.sender,
            "to": recipients,
            "subject": SUBJECTS.get(event, "Booking update"),
            "html": html,
        })

        logger.bind(log_type="notification").info(
            f"Email sent | Event={event} | Booking={booking.id} | To={len(recipients)}"
        )


def get_notifier() -> Notifier:
    if config.RESEND_API_KEY:
        return EmailNotifier()
    return LogNotifier()
