import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from api.routers import catalog, reconciliation
from config import settings
from models import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    init_db()
    logger.info(f"Catalog database ready at {settings.database_url}")
    yield

app = FastAPI(
    title=settings.app_name,
    description="Reconcile scraped product records with the catalog",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(reconciliation.router, prefix="/api/v1/reconciliation", tags=["reconciliation"])
app.include_router(catalog.router, prefix="/api/v1/catalog", tags=["catalog"])


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}
