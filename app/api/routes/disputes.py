from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.dependencies import get_db, get_gateway, get_notifier, get_current_actor, require_role
from app.core.logging_config import get_logger
from app.models.dispute import Dispute
from app.models.enums import Role
from app.schemas.dispute import (
    DisputeCreate,
    DisputeMessageOut,
    DisputeOut,
    DisputeResolve,
    DisputeRespond,
)
from app.services.dispute_resolver import DisputeResolver
from app.services.state_machine import Actor
from app.utils.pricing import from_cents

router = APIRouter(prefix="/disputes", tags=["Disputes"])
logger = get_logger()


def get_dispute_resolver(
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
    notifier=Depends(get_notifier),
) -> DisputeResolver:
    return DisputeResolver(db, gateway, notifier)


def dispute_out(d: Dispute) -> DisputeOut:
    return DisputeOut(
        id=d.id,
        booking_id=d.booking_id,
        initiator_id=d.initiator_id,
        reason=d.reason,
        description=d.description,
        status=d.status,
        resolution=d.resolution,
        refund_amount=from_cents(d.refund_amount_cents) if d.refund_amount_cents is not None else None,
        opened_at=d.opened_at,
        resolved_at=d.resolved_at,
        messages=[DisputeMessageOut.model_validate(m) for m in d.messages],
    )


# =====================================================================
# OPEN DISPUTE (Requester)
# =====================================================================
@router.post("/bookings/{booking_id}", response_model=DisputeOut, status_code=201)
def open_dispute(
    booking_id: str,
    data: DisputeCreate,
    actor: Actor = Depends(get_current_actor),
    resolver: DisputeResolver = Depends(get_dispute_resolver),
):
    dispute = resolver.open_dispute(booking_id, actor, data.reason.value, data.description)
    return dispute_out(dispute)


# =====================================================================
# OPEN DISPUTES QUEUE (Admin)
# =====================================================================
@router.get("/open", response_model=list[DisputeOut])
def open_disputes(
    actor: Actor = Depends(require_role(Role.ADMIN)),
    resolver: DisputeResolver = Depends(get_dispute_resolver),
):
    logger.bind(log_type="audit").info(f"Admin listed open disputes | Admin={actor.id}")
    return [dispute_out(d) for d in resolver.list_open()]


@router.get("/{dispute_id}", response_model=DisputeOut)
def get_dispute(
    dispute_id: int,
    actor: Actor = Depends(get_current_actor),
    resolver: DisputeResolver = Depends(get_dispute_resolver),
):
    return dispute_out(resolver.get_for(dispute_id, actor))


# =====================================================================
# RESPOND
# =====================================================================
@router.post("/{dispute_id}/responses", response_model=DisputeOut)
def respond(
    dispute_id: int,
    data: DisputeRespond,
    actor: Actor = Depends(get_current_actor),
    resolver: DisputeResolver = Depends(get_dispute_resolver),
):
    return dispute_out(resolver.respond(dispute_id, actor, data.message))


# =====================================================================
# RESOLVE (Admin / Arbitrator)
# =====================================================================
@router.post("/{dispute_id}/resolve", response_model=DisputeOut)
def resolve(
    dispute_id: int,
    data: DisputeResolve,
    actor: Actor = Depends(get_current_actor),
    resolver: DisputeResolver = Depends(get_dispute_resolver),
):
    dispute = resolver.resolve(dispute_id, actor, data.resolution.value, data.refund_amount)
    return dispute_out(dispute)
