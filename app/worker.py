"""
Celery worker and beat schedule for SkyMarket.

The only periodic job is the capture-window sweep; all booking operations
stay request-driven.
"""
from celery import Celery
from celery.schedules import crontab

from app.core import config
from app.core.logging_config import get_logger
from app.db import base  # noqa: F401  registers every model
from app.db.session import SessionLocal
from app.services.payment_coordinator import PaymentCoordinator
from app.utils.notifications import get_notifier
from app.utils.razorpay_client import RazorpayGateway

logger = get_logger()

celery_app = Celery("skymarket", broker=config.REDIS_URL, backend=config.REDIS_URL)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

# Celery Beat Schedule
celery_app.conf.beat_schedule = {
    # Expire lapsed authorizations, retry pending captures - every hour
    "payment-authorization-sweep": {
        "task": "app.worker.sweep_payment_authorizations",
        "schedule": crontab(minute=0),
        "options": {"queue": "payments"},
    },
}

celery_app.conf.task_routes = {
    "app.worker.*": {"queue": "payments"},
}


def run_sweep(session_factory=SessionLocal, gateway=None, notifier=None):
    db = session_factory()
    try:
        coordinator = PaymentCoordinator(
            db,
            gateway or RazorpayGateway(),
            notifier=notifier or get_notifier(),
        )
        return coordinator.sweep_authorizations()
    finally:
        db.close()


@celery_app.task(name="app.worker.sweep_payment_authorizations", ignore_result=False)
def sweep_payment_authorizations():
    summary = run_sweep()
    logger.bind(log_type="payment").info(f"Scheduled sweep complete | {summary}")
    return summary
