from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from database.supabase import db
from config import get_settings
from routes import workflow, assignments, execution, client_approval, clients, notifications, users
import logging

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for the app"""
    # Startup
    await db.connect(
        settings.rest_base_url,
        settings.supabase_anon_key,
        data_source=settings.data_source,
        timeout=settings.request_timeout_seconds,
        local_latency_ms=settings.local_latency_ms,
        approval_token_days=settings.approval_token_days
    )
    logger.info(f"CrewTech Backend started ({db.repository.name} data source)")
    yield
    # Shutdown
    await db.disconnect()
    logger.info("CrewTech Backend stopped")

# Create FastAPI app
app = FastAPI(
    title="CrewTech API",
    description="Aviation crew mission workflow: quotes, client approval, assignments, invoicing",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict to specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(workflow.router)
app.include_router(assignments.router)
app.include_router(execution.router)
app.include_router(client_approval.router)
app.include_router(clients.router)
app.include_router(notifications.router)
app.include_router(users.router)

@app.get("/")
async def root():
    return {
        "message": "CrewTech API",
        "version": "1.0.0",
        "status": "running"
    }

@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "data_source": db.repository.name if db.repository else None
    }
