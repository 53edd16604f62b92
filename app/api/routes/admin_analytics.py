from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import func

from app.core.dependencies import get_db, require_role
from app.core.logging_config import get_logger
from app.models.booking import Booking
from app.models.enums import PaymentStatus, Role
from app.models.payment import PaymentRecord
from app.models.service import Service
from app.services.state_machine import Actor
from app.utils.pricing import from_cents

router = APIRouter(prefix="/admin-analytics", tags=["Admin Analytics"])
logger = get_logger()


# =====================================================================
# 1. NET REVENUE (captured minus refunded)
# =====================================================================
@router.get("/revenue/total")
def total_revenue(actor: Actor = Depends(require_role(Role.ADMIN)), db: Session = Depends(get_db)):
    captured, refunded = db.query(
        func.coalesce(func.sum(PaymentRecord.captured_amount_cents), 0),
        func.coalesce(func.sum(PaymentRecord.refunded_amount_cents), 0),
    ).filter(
        PaymentRecord.status.in_([PaymentStatus.CAPTURED.value, PaymentStatus.REFUNDED.value])
    ).one()

    net = from_cents(int(captured) - int(refunded))

    logger.bind(log_type="audit").info(f"Admin checked total revenue → {net}")

    return {
        "captured": from_cents(int(captured)),
        "refunded": from_cents(int(refunded)),
        "net_revenue": net,
    }


# =====================================================================
# 2. BOOKINGS BY STATUS
# =====================================================================
@router.get("/bookings/status-count")
def bookings_by_status(actor: Actor = Depends(require_role(Role.ADMIN)), db: Session = Depends(get_db)):
    results = (
        db.query(Booking.status, func.count(Booking.id).label("booking_count"))
        .group_by(Booking.status)
        .all()
    )

    logger.bind(log_type="audit").info("Admin checked booking count per status")

    return {r.status: r.booking_count for r in results}


# =====================================================================
# 3. REVENUE PER SERVICE
# =====================================================================
@router.get("/revenue/services")
def revenue_per_service(actor: Actor = Depends(require_role(Role.ADMIN)), db: Session = Depends(get_db)):
    net = func.sum(PaymentRecord.captured_amount_cents - PaymentRecord.refunded_amount_cents)

    results = (
        db.query(Service.id, Service.name, net.label("revenue"))
        .join(Booking, Booking.service_id == Service.id)
        .join(PaymentRecord, PaymentRecord.booking_id == Booking.id)
        .filter(PaymentRecord.status.in_([PaymentStatus.CAPTURED.value, PaymentStatus.REFUNDED.value]))
        .group_by(Service.id, Service.name)
        .order_by(net.desc())
        .all()
    )

    logger.bind(log_type="audit").info("Admin checked revenue per service")

    return [
        {"service_id": r.id, "service_name": r.name, "revenue": from_cents(int(r.revenue or 0))}
        for r in results
    ]
