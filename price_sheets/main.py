"""
Shopify Price Sheets - Main Application
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .dependencies import init_dependencies, close_dependencies
from .routes import (
    stores_router,
    export_router,
    imports_router,
    usage_router,
    webhooks_router,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting Shopify Price Sheets...")
    await init_dependencies()
    logger.info("Application ready")
    yield
    logger.info("Shutting down...")
    await close_dependencies()


# Create app
app = FastAPI(
    title="Shopify Price Sheets",
    description="Bulk export and import of variant prices as spreadsheets",
    version="1.0.0",
    lifespan=lifespan
)

# Include routers
app.include_router(stores_router)
app.include_router(export_router)
app.include_router(imports_router)
app.include_router(usage_router)
app.include_router(webhooks_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "price_sheets.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
