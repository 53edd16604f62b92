from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.dependencies import get_db, require_role
from app.core.exceptions import NotFound, Unauthorized
from app.core.logging_config import get_logger
from app.models.enums import Role
from app.models.service import Service
from app.schemas.booking import QuoteOut, QuoteRequest
from app.schemas.service import ServiceCreate, ServiceOut
from app.services.state_machine import Actor
from app.utils.geo import distance_miles, validate_location
from app.utils.pricing import from_cents, quote_for_service, to_cents

router = APIRouter(prefix="/services", tags=["Services"])
logger = get_logger()


def service_out(service: Service) -> ServiceOut:
    return ServiceOut(
        id=service.id,
        provider_id=service.provider_id,
        name=service.name,
        description=service.description,
        base_rate=from_cents(service.base_rate_cents),
        per_mile_rate=from_cents(service.per_mile_rate_cents),
        hourly_rate=from_cents(service.hourly_rate_cents),
        active=service.active,
    )


def get_active_service(db: Session, service_id: int) -> Service:
    service = db.query(Service).filter(
        Service.id == service_id,
        Service.active == True
    ).first()
    if not service:
        raise NotFound("Service not found", details={"service_id": service_id})
    return service


# =====================================================================
# CREATE SERVICE  (Provider Only)
# =====================================================================
@router.post("/", response_model=ServiceOut, status_code=201)
def create_service(
    data: ServiceCreate,
    actor: Actor = Depends(require_role(Role.PROVIDER)),
    db: Session = Depends(get_db),
):
    service = Service(
        provider_id=actor.id,
        name=data.name,
        description=data.description,
        base_rate_cents=to_cents(data.base_rate),
        per_mile_rate_cents=to_cents(data.per_mile_rate),
        hourly_rate_cents=to_cents(data.hourly_rate),
        active=True,
    )
    db.add(service)
    db.commit()
    db.refresh(service)

    logger.info(f"Service Created | Provider={actor.id} | Service={service.id}")
    return service_out(service)


# =====================================================================
# LIST ACTIVE SERVICES
# =====================================================================
@router.get("/", response_model=list[ServiceOut])
def list_services(provider_id: int | None = None, db: Session = Depends(get_db)):
    query = db.query(Service).filter(Service.active == True)
    if provider_id is not None:
        query = query.filter(Service.provider_id == provider_id)
    return [service_out(s) for s in query.order_by(Service.id).all()]


@router.get("/{service_id}", response_model=ServiceOut)
def get_service(service_id: int, db: Session = Depends(get_db)):
    return service_out(get_active_service(db, service_id))


# =====================================================================
# QUOTE
# =====================================================================
@router.post("/quote", response_model=QuoteOut)
def quote(data: QuoteRequest, db: Session = Depends(get_db)):
    service = get_active_service(db, data.service_id)

    validate_location(data.pickup.lat, data.pickup.lng, "pickup")
    validate_location(data.delivery.lat, data.delivery.lng, "delivery")

    distance = distance_miles(data.pickup.lat, data.pickup.lng, data.delivery.lat, data.delivery.lng)

    return QuoteOut(
        service_id=service.id,
        distance_miles=round(distance, 3),
        duration_minutes=data.duration_minutes,
        total=quote_for_service(service, distance, data.duration_minutes),
    )


# =====================================================================
# DEACTIVATE SERVICE (Owner Only)
# =====================================================================
@router.delete("/{service_id}")
def deactivate_service(
    service_id: int,
    actor: Actor = Depends(require_role(Role.PROVIDER)),
    db: Session = Depends(get_db),
):
    service = get_active_service(db, service_id)

    if service.provider_id != actor.id:
        raise Unauthorized("You do not own this service")

    service.active = False
    db.commit()

    logger.info(f"Service Deactivated | Provider={actor.id} | Service={service.id}")
    return {"message": "Service deactivated"}
