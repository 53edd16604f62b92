import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.dependencies import get_db, get_gateway, get_notifier, get_current_actor, require_role
from app.core.exceptions import MalformedWebhook, Unauthorized
from app.core.logging_config import get_logger
from app.models.enums import EventOutcome, Role
from app.models.payment import PaymentRecord
from app.schemas.payment import CheckoutOrderCreate, PaymentRecordOut, ReauthorizeRequest
from app.services.payment_coordinator import PaymentCoordinator
from app.services.state_machine import Actor, is_party
from app.utils.pricing import from_cents, to_cents

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger()


def get_payment_coordinator(
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
    notifier=Depends(get_notifier),
) -> PaymentCoordinator:
    return PaymentCoordinator(db, gateway, notifier)


def payment_out(record: PaymentRecord) -> PaymentRecordOut:
    return PaymentRecordOut(
        booking_id=record.booking_id,
        authorization_id=record.authorization_id,
        status=record.status,
        authorized_amount=from_cents(record.authorized_amount_cents),
        captured_amount=from_cents(record.captured_amount_cents),
        refunded_amount=from_cents(record.refunded_amount_cents),
        failure_reason=record.failure_reason,
        authorized_at=record.authorized_at,
        captured_at=record.captured_at,
    )


# ---------------------------------------------------------------------
# CHECKOUT ORDER (client-side authorization)
# ---------------------------------------------------------------------
@router.post("/orders")
def create_checkout_order(
    data: CheckoutOrderCreate,
    actor: Actor = Depends(require_role(Role.REQUESTER)),
    gateway=Depends(get_gateway),
):
    receipt = data.receipt or f"skymarket_{uuid.uuid4().hex[:20]}"
    order = gateway.create_checkout_order(to_cents(data.amount), receipt)

    logger.bind(log_type="payment").info(
        f"Checkout order created | Requester={actor.id} | Order={order['order_id']}"
    )
    return {"message": "Proceed with checkout", **order}


# ---------------------------------------------------------------------
# PAYMENT STATUS
# ---------------------------------------------------------------------
@router.get("/{booking_id}", response_model=PaymentRecordOut)
def get_payment(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    record = coordinator.get_record(booking_id)
    if not is_party(record.booking, actor):
        raise Unauthorized("You are not a party to this booking")
    return payment_out(record)


# ---------------------------------------------------------------------
# MANUAL CAPTURE RETRY (Admin)
# ---------------------------------------------------------------------
@router.post("/{booking_id}/capture", response_model=PaymentRecordOut)
def capture(
    booking_id: str,
    actor: Actor = Depends(require_role(Role.ADMIN)),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    logger.bind(log_type="audit").info(f"Manual capture | Admin={actor.id} | Booking={booking_id}")
    return payment_out(coordinator.capture(booking_id))


# ---------------------------------------------------------------------
# RE-AUTHORIZE (Requester)
# ---------------------------------------------------------------------
@router.post("/{booking_id}/reauthorize", response_model=PaymentRecordOut)
def reauthorize(
    booking_id: str,
    data: ReauthorizeRequest,
    actor: Actor = Depends(require_role(Role.REQUESTER)),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    booking = coordinator.get_record(booking_id).booking
    if booking.requester_id != actor.id:
        raise Unauthorized("You are not the requester of this booking")
    return payment_out(coordinator.reauthorize(booking_id, data.payment_token))


# ---------------------------------------------------------------------
# PROVIDER WEBHOOK
# ---------------------------------------------------------------------
@router.post("/webhook")
async def payment_webhook(
    request: Request,
    gateway=Depends(get_gateway),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    body = await request.body()

    try:
        event = gateway.parse_webhook(body, request.headers)
    except MalformedWebhook as e:
        # Acknowledge so the provider does not keep redelivering it
        logger.bind(log_type="payment").error(f"Malformed webhook acknowledged → {e.message}")
        return {"status": "ok", "outcome": EventOutcome.IGNORED.value}

    outcome = coordinator.apply_event(event)

    logger.bind(log_type="payment").info(
        f"Webhook processed | Event={event.event_id} | Type={event.event_type} | Outcome={outcome}"
    )
    return {"status": "ok", "outcome": outcome}
