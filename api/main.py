#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
FastAPI Web Server - REST API for the translation memory service.

App creation, router includes, startup/shutdown events and the in-process
replication worker.

Usage:
    uvicorn api.main:app --host 0.0.0.0 --port 8000
"""

import asyncio
import sys
import time
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.logging_config import get_logger
from config.settings import settings

logger = get_logger(__name__)

from api.deps import get_coordinator, get_queue, get_registry, start_time
from api.ttm_router import router as ttm_router
from ttmserver.exceptions import ConfigurationError

# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Translation Memory API",
    description="Fuzzy translation suggestions and replicated translation memory writes",
    version="1.0.0",
)

app.include_router(ttm_router)


@app.get("/health")
async def health_check():
    """Basic liveness check"""
    return {
        "status": "healthy",
        "version": app.version,
        "uptime_seconds": time.time() - start_time,
    }


# =============================================================================
# Startup / Shutdown Events
# =============================================================================

_worker_task: Optional[asyncio.Task] = None


def drain_replication_queue() -> int:
    """Run the queued replication jobs; errors are logged, never raised."""
    try:
        return get_queue().drain(get_coordinator())
    except ConfigurationError as e:
        logger.error(f"Replication worker stopped a job: {e}")
    except Exception:
        logger.exception("Replication worker hit an unexpected error")
    return 0


@app.on_event("startup")
async def startup_validate_services():
    """Fail fast on a broken service configuration."""
    registry = get_registry()
    try:
        registry.validate()
    except ConfigurationError as e:
        logger.error(f"Startup: invalid TTM configuration: {e}")
        raise


@app.on_event("startup")
async def startup_replication_worker():
    """Drain the replication queue in the background."""
    global _worker_task
    if not settings.ttm_run_worker:
        logger.info("Startup: replication worker disabled")
        return

    async def _replication_loop():
        while True:
            await asyncio.sleep(settings.ttm_worker_interval)
            if not len(get_queue()):
                continue
            processed = await asyncio.to_thread(drain_replication_queue)
            logger.debug(f"Replication worker ran {processed} job(s)")

    _worker_task = asyncio.create_task(_replication_loop())


@app.on_event("shutdown")
async def shutdown_replication_worker():
    """Stop the worker; queued jobs are lost with the process."""
    global _worker_task
    if _worker_task is not None:
        _worker_task.cancel()
        _worker_task = None
        pending = len(get_queue())
        if pending:
            logger.warning(f"Shutdown: {pending} replication job(s) not run")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host="0.0.0.0", port=8000)
