"""Launchpad Job Service - FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from launchpad.config import settings
from launchpad.api.v1.router import v1_router
from launchpad.api.v1.health import router as health_root_router
from launchpad.api.v1 import health as health_api
from launchpad.api.v1 import jobs as jobs_api
from launchpad.jobs.in_process_queue import InProcessQueue
from launchpad.jobs.sweeper import RetentionSweeper

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info(f"Starting Launchpad Job Service on port {settings.api_port}")

    queue = InProcessQueue()
    sweeper = RetentionSweeper(queue.store)
    logger.info(f"Registered job types: {', '.join(queue.registry.types())}")

    await queue.start()
    await sweeper.start()

    # Wire queue into API endpoints
    jobs_api.set_dispatcher(queue)
    health_api.set_queue(queue)
    app.state.queue = queue
    app.state.sweeper = sweeper

    yield

    logger.info("Shutting down Launchpad Job Service")
    jobs_api.set_dispatcher(None)
    health_api.set_queue(None)
    await sweeper.stop()
    await queue.stop()


app = FastAPI(
    title="Launchpad Job Service",
    description="Background project generation, template validation and deployment jobs",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
