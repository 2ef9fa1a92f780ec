from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
from pathlib import Path
import logging

from marketplace.config import get_settings
from marketplace.database import engine
from marketplace.migrations import run_migrations
from marketplace.api import auth, health, products, purchases, villager

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    logger.info("Starting up application...")

    logger.info("Applying database migrations...")
    run_migrations(engine)

    yield

    # Shutdown
    logger.info("Shutting down application...")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Marketplace backend connecting produce sellers (villagers) with buyers:

    - **Accounts**: Registration, login with JWT access tokens and rotating refresh tokens
    - **Product Management**: Listings with images, restocking and deletion
    - **Purchases**: Atomic purchase endpoint with race condition handling
    - **Low-Stock Tracking**: Low-stock episodes per product with email alerts to the owner
    - **Sales History**: Per-product transaction log

    ## Features

    ### Stock Management & Race Condition Handling
    Stock is validated and decremented under a row lock with a versioned UPDATE,
    and the sale is recorded in the same database transaction.
    When several buyers race for the last kilograms, only the purchases that fit succeed.

    ### Background Processing
    Low-stock alert emails are sent by Celery workers, so a mail outage never
    fails a purchase.

    ### Caching
    Product details are cached in Redis and invalidated on every stock change.
    """,
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(auth.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(purchases.router, prefix="/api/v1")
app.include_router(villager.router, prefix="/api/v1")

# Serve uploaded product images
Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/api/v1/health"
    }
