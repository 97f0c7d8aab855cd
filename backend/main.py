import asyncio
import logging

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from database import engine, get_db, Base
from routers import *
from models import *
from core.config import settings
from background import cleanup_stale_sessions

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Chunked Upload API",
    description="Chunked large-file upload, reconstruction and Google Drive handoff",
    version="1.0.0"
)

origins = settings.ORIGIN.split(",") if settings.ORIGIN else ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": {"message": "Internal server error", "retryable": True}}
    )


@app.on_event("startup")
async def startup_event():
    """Check the database connection and start the session sweeper"""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        logger.info("Database connection successful")
    except Exception as e:
        logger.error("Database connection failed: %s", e)

    if settings.ENABLE_BACKGROUND_SWEEPER:
        app.state.sweeper_task = asyncio.create_task(cleanup_stale_sessions())


@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "sweeper_task", None)
    if task:
        task.cancel()


@app.get("/")
async def root():
    return {"message": "Welcome to the Chunked Upload API"}


app.include_router(upload_router)
app.include_router(maintenance_router)


@app.get("/health")
async def health_check(request: Request, db: Session = Depends(get_db)):
    """Database reachability and sweeper state"""
    task = getattr(request.app.state, "sweeper_task", None)
    sweeper = "running" if task and not task.done() else "stopped"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check query failed: %s", e)
        return {"status": "unhealthy", "database": "disconnected", "sweeper": sweeper, "error": str(e)}
    return {"status": "healthy", "database": "connected", "sweeper": sweeper}
