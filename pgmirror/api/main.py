"""FastAPI operator surface for the mirror sync worker"""

import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from loguru import logger
from pydantic import BaseModel, Field

from ..cdc.manager import MirrorSyncWorker, create_worker
from ..config.settings import get_settings
from ..exceptions import ConfigurationError, UnknownTableError

settings = get_settings()

logger.remove()
logger.add(sys.stderr, level=settings.log_level)


_worker: Optional[MirrorSyncWorker] = None


def get_worker() -> MirrorSyncWorker:
    """Get or create the sync worker"""
    global _worker
    if _worker is None:
        _worker = create_worker(settings)
    return _worker


def set_worker(worker: Optional[MirrorSyncWorker]) -> None:
    global _worker
    _worker = worker


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.sync_autostart:
        await run_in_threadpool(get_worker().start)
    yield
    if _worker is not None:
        await run_in_threadpool(_worker.close)


app = FastAPI(
    title="pgmirror",
    description="PostgreSQL NOTIFY driven replication into a Supabase mirror",
    version="0.1.0",
    lifespan=lifespan
)


class SyncControlRequest(BaseModel):
    """Sync control request"""
    action: str


class ManualSyncRequest(BaseModel):
    """Manual (bulk) sync request"""
    table: Optional[str] = None
    limit: Optional[int] = Field(None, gt=0)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.get("/sync/status")
async def get_sync_status():
    """Get worker health and stats"""
    try:
        worker = get_worker()
    except ConfigurationError as e:
        return {
            "status": "not_configured",
            "message": str(e)
        }
    return {
        "status": "success",
        **worker.get_health_status()
    }


@app.get("/sync/tables")
async def list_tables():
    """List replicated tables"""
    try:
        worker = get_worker()
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"tables": [config.to_dict() for config in worker.registry]}


@app.post("/sync/control")
async def control_sync(request: SyncControlRequest):
    """Control the worker (start/stop/restart)"""
    try:
        worker = get_worker()

        if request.action == "start":
            await run_in_threadpool(worker.start)
            return {"status": "success", "message": "Mirror sync started"}

        elif request.action == "stop":
            await run_in_threadpool(worker.stop)
            return {"status": "success", "message": "Mirror sync stopped"}

        elif request.action == "restart":
            await run_in_threadpool(worker.stop)
            await run_in_threadpool(worker.start)
            return {"status": "success", "message": "Mirror sync restarted"}

        else:
            raise HTTPException(status_code=400, detail=f"Unknown action: {request.action}")

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error controlling mirror sync: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/sync/manual")
async def manual_sync(request: ManualSyncRequest):
    """Bulk sync one table, or all tables when none is given"""
    try:
        worker = get_worker()
        summaries = await run_in_threadpool(worker.manual_sync, request.table, request.limit)
    except (UnknownTableError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error running manual sync: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "status": "success" if all(summary.success for summary in summaries) else "partial",
        "tables": [summary.to_dict() for summary in summaries]
    }
