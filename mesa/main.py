from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from mesa.core.config import get_settings
from mesa.core.errors import EngineError, engine_error_handler
from mesa.routers.health import router as health_router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if settings.SCHEDULER_ENABLED:
        from mesa.scheduler.sweep_job import build_scheduler

        scheduler = build_scheduler()
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info(f"Reservation sweep every {settings.SWEEP_INTERVAL_SECONDS}s")
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)


app = FastAPI(
    title=settings.APP_NAME,
    description="Restaurant reservations API - Table allocation, deposits for peak hours, and walk-in waitlist.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(EngineError, engine_error_handler)


# Global exception handler for unhandled errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected server errors with structured response."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
            "request_id": request.headers.get("X-Request-ID"),
        }
    )

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for now
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
from mesa.routers.availability import router as availability_router
from mesa.routers.reservations import router as reservations_router
from mesa.routers.payments import router as payments_router
from mesa.routers.tables import router as tables_router
from mesa.routers.waitlist import router as waitlist_router
from mesa.routers.policy import router as policy_router
from mesa.routers.operating_hours import router as operating_hours_router
from mesa.routers.verification import router as verification_router

app.include_router(health_router)
app.include_router(availability_router, prefix="/api")
app.include_router(reservations_router, prefix="/api")
app.include_router(payments_router, prefix="/api")
app.include_router(tables_router, prefix="/api")
app.include_router(waitlist_router, prefix="/api")
app.include_router(policy_router, prefix="/api")
app.include_router(operating_hours_router, prefix="/api")
app.include_router(verification_router, prefix="/api")

@app.get("/")
def read_root():
    return {
        "message": "Welcome to MesaFeliz API",
        "docs": "/docs",
        "health": "/health"
    }
