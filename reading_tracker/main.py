"""
Reading Tracker - FastAPI Server
Postgres-backed tracker configured from the environment.

Run with: uvicorn reading_tracker.main:app
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import create_app
from .database import Database, ensure_tables
from .logger import get_logger
from .tracker import build_postgres_tracker

logger = get_logger("main")

database = Database()
tracker = build_postgres_tracker(database)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    await database.connect()
    await ensure_tables(database)
    logger.info("Server started")
    yield
    # Shutdown
    await tracker.drain()
    logger.info("Server shutting down")
    await database.disconnect()


app = create_app(tracker, lifespan=lifespan)

# CORS for the reader frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
