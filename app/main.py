"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import clients, court_groups, courts, expenses, ledger, reports, reservations
from app.core.config import settings
from app.core.database import init_db
from app.services.change_feed import change_feed
from app.services.scheduler import ledger_audit_scheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting court booking back office")
    logger.info(f"Debug mode: {settings.DEBUG}")

    await init_db()
    await ledger_audit_scheduler.start()

    yield

    # Shutdown
    logger.info("Shutting down court booking back office")
    await ledger_audit_scheduler.stop()


# Create FastAPI app
app = FastAPI(
    title="Court Ledger",
    description="Court reservations, multi-tender payments and revenue reports",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(reservations.router)
app.include_router(courts.router)
app.include_router(court_groups.router)
app.include_router(clients.router)
app.include_router(expenses.router)
app.include_router(ledger.router)
app.include_router(reports.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "ledger_audit_running": ledger_audit_scheduler.running,
        "change_feed_subscribers": change_feed.subscriber_count,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
