from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.dependencies import get_db, get_gateway, get_notifier, get_current_actor, require_role
from app.models.booking import Booking
from app.models.enums import Role
from app.schemas.booking import (
    BookingCreate,
    BookingOut,
    Location,
    RefundCreate,
    StatusEventOut,
    TransitionRequest,
)
from app.services.booking_service import BookingService
from app.services.state_machine import Actor
from app.utils.pricing import from_cents

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
    notifier=Depends(get_notifier),
) -> BookingService:
    return BookingService(db, gateway, notifier)


def booking_out(b: Booking) -> BookingOut:
    payment = b.payment or (b.payments[-1] if b.payments else None)
    return BookingOut(
        id=b.id,
        status=b.status,
        requester_id=b.requester_id,
        provider_id=b.provider_id,
        service_id=b.service_id,
        scheduled_at=b.scheduled_at,
        duration_minutes=b.duration_minutes,
        pickup=Location(lat=b.pickup_lat, lng=b.pickup_lng),
        delivery=Location(lat=b.delivery_lat, lng=b.delivery_lng),
        distance_miles=b.distance_miles,
        quoted_amount=from_cents(b.quoted_amount_cents),
        cancellation_reason=b.cancellation_reason,
        created_at=b.created_at,
        accepted_at=b.accepted_at,
        started_at=b.started_at,
        completed_at=b.completed_at,
        cancelled_at=b.cancelled_at,
        refunded_at=b.refunded_at,
        disputed_at=b.disputed_at,
        resolved_at=b.resolved_at,
        payment_status=payment.status if payment else None,
    )


# ---------------------------------------------------------------------
# CREATE BOOKING
# ---------------------------------------------------------------------
@router.post("/", response_model=BookingOut, status_code=201)
def create_booking(
    data: BookingCreate,
    actor: Actor = Depends(require_role(Role.REQUESTER)),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.create(
        actor,
        provider_id=data.provider_id,
        service_id=data.service_id,
        scheduled_at=data.scheduled_at,
        duration_minutes=data.duration_minutes,
        pickup=(data.pickup.lat, data.pickup.lng),
        delivery=(data.delivery.lat, data.delivery.lng),
        quoted_amount=data.quoted_amount,
        payment_token=data.payment_token,
    )
    return booking_out(booking)


# ---------------------------------------------------------------------
# MY BOOKINGS
# ---------------------------------------------------------------------
@router.get("/my", response_model=list[BookingOut])
def my_bookings(
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return [booking_out(b) for b in service.list_for(actor)]


@router.get("/{booking_id}", response_model=BookingOut)
def get_booking(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return booking_out(service.get_for(booking_id, actor))


@router.get("/{booking_id}/history", response_model=list[StatusEventOut])
def booking_history(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return service.history(booking_id, actor)


# ---------------------------------------------------------------------
# TRANSITION
# ---------------------------------------------------------------------
@router.post("/{booking_id}/transition", response_model=BookingOut)
def transition_booking(
    booking_id: str,
    data: TransitionRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return booking_out(service.transition(booking_id, data.status, actor))


# ---------------------------------------------------------------------
# REFUND REQUEST
# ---------------------------------------------------------------------
@router.post("/{booking_id}/refund", response_model=BookingOut)
def refund_booking(
    booking_id: str,
    data: RefundCreate,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.refund_booking(
        booking_id,
        actor,
        amount=data.amount,
        request_token=data.request_token,
    )
    return booking_out(booking)
