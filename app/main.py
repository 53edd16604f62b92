from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.db import base  # noqa: F401  registers every model
from app.api.routes import auth, services, bookings, disputes, payments, admin_analytics
from app.core.exceptions import DomainError

# ⭐ Import logging system
from app.core.logging_config import get_logger

logger = get_logger()

app = FastAPI(
    title="SkyMarket Booking API",
    version="1.0.0",
    description="Drone service bookings, payments and disputes"
)


# ⭐ Request Logging Middleware
@app.middleware("http")
async def log_requests(request, call_next):
    logger.info(f"REQUEST: {request.method} {request.url}")

    try:
        response = await call_next(request)
        logger.info(f"RESPONSE: {response.status_code} {request.url}")
        return response

    except Exception as e:
        logger.error(f"ERROR: {request.url} -> {str(e)}")
        raise e


# ⭐ Domain errors → JSON with code and caller action
@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    level = "ERROR" if exc.status_code >= 500 else "WARNING"
    logger.log(level, f"{exc.code}: {request.method} {request.url} -> {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


# ⭐ CORS (important for frontend)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Can restrict later for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------- ROUTERS --------
app.include_router(auth.router)
app.include_router(services.router)
app.include_router(bookings.router)
app.include_router(disputes.router)
app.include_router(payments.router)
app.include_router(admin_analytics.router)


@app.get("/", tags=["Root"])
def root():
    return {"message": "Backend running successfully"}
