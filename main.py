from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from clinic_queue.config.settings import settings
from clinic_queue.api.queue import router as queue_router
from clinic_queue.services.queue_engine import get_queue_engine, reset_queue_engine
import logging

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    # Startup
    logger.info("Starting clinic queue engine...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Clinic backend: {settings.clinic_api_base_url}")

    engine = get_queue_engine()
    app.state.queue_engine = engine
    engine.start()

    yield

    # Shutdown
    logger.info("Shutting down clinic queue engine...")
    await engine.stop()
    reset_queue_engine()
    logger.info("Queue sync stopped")


# Initialize FastAPI app
app = FastAPI(
    title="Clinic Queue Engine",
    description="Patient-queue prioritization and consultation-assignment engine for the clinic front desk.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(queue_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    engine = getattr(app.state, "queue_engine", None)
    engine_status = engine.status() if engine else None

    return {
        "status": "ok",
        "service": settings.service_name,
        "version": "1.0.0",
        "dependencies": {
            "clinic_backend": (
                "unknown"
                if engine_status is None or engine_status.last_synced_at is None
                else "error" if engine_status.last_error else "connected"
            ),
            "sync_loop": (
                "running" if engine_status and engine_status.running else "stopped"
            ),
        },
    }


@app.get("/")
async def root():
    return {
        "message": "Clinic Queue Engine",
        "description": "Ranks waiting patients and matches them to available doctors",
        "version": "1.0.0",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.service_port,
        reload=settings.environment == "development",
    )
