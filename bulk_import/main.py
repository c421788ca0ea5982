import logging
from fastapi import FastAPI
from bulk_import.config import get_settings
from bulk_import.api.routes import batches

settings = get_settings()

# Configure application logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Set log level for package modules
logger = logging.getLogger("bulk_import")
logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)

app = FastAPI(
    title=settings.app_name,
    description="Bulk import of web pages and documents into the knowledge base",
    version="0.1.0",
)

# Include routers
app.include_router(batches.router, prefix="/api/batches", tags=["Bulk Import"])


@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": "0.1.0",
        "endpoints": {
            "batches": "/api/batches",
            "health": "/health",
            "docs": "/docs",
            "redoc": "/redoc",
        },
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.app_name}
