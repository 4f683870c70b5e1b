#!/usr/bin/env python3
"""
adb-insight - FastAPI backend for the device dashboard
"""

import asyncio
import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import load_settings, require_api_secret
from device_monitor import DeviceMonitor
from errors import ChannelError, InvalidInputError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Module-level monitor singleton; set during startup
monitor: DeviceMonitor = None
_api_secret: str = ""


class RunRequest(BaseModel):
    args: List[str] = Field(default_factory=list)


class ListPackagesRequest(BaseModel):
    include_system: bool = False


class AppNameRequest(BaseModel):
    packageName: str = ""


class ResolvePackagesRequest(BaseModel):
    packageNames: List[str] = Field(default_factory=list)


class FreshMonitoringRequest(BaseModel):
    clear: bool = False


@asynccontextmanager
async def lifespan(app: FastAPI):
    global monitor, _api_secret
    # FatalConfigurationError propagates here and stops the server at startup
    settings = load_settings()
    _api_secret = require_api_secret(settings)
    monitor = DeviceMonitor.from_settings(settings)
    logger.info(f"Telemetry store degraded: {monitor.store.degraded}")
    yield


app = FastAPI(title="adb-insight Server", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-API-Secret"],
    allow_credentials=True,
)


@app.exception_handler(InvalidInputError)
async def _invalid_input(request: Request, exc: InvalidInputError):
    logger.warning(f"Rejected request to {request.url.path}: {exc}")
    return JSONResponse(status_code=400, content={"ok": False, "stderr": str(exc)})


@app.exception_handler(ChannelError)
async def _channel_error(request: Request, exc: ChannelError):
    logger.error(f"Error in {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"ok": False, "stderr": str(exc)})


async def verify_secret(x_api_secret: Optional[str] = Header(default=None)):
    expected = (_api_secret or "").encode()
    if not x_api_secret or not secrets.compare_digest(x_api_secret.encode(), expected):
        logger.warning("Forbidden attempt without valid secret")
        raise HTTPException(status_code=403, detail="Forbidden: Invalid Secret")


@app.get("/health")
async def health():
    return {
        "status": "OK",
        "message": "ADB Backend Server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "ready": monitor is not None,
    }


@app.post("/adb/run", dependencies=[Depends(verify_secret)])
async def run_adb(body: RunRequest):
    result = await asyncio.to_thread(monitor.run_command, body.args)
    return JSONResponse(status_code=200 if result.succeeded else 500, content=result.to_dict())


@app.post("/adb/list-packages", dependencies=[Depends(verify_secret)])
async def list_packages(body: ListPackagesRequest = None):
    include_system = body.include_system if body else False
    logger.info("Listing installed packages...")
    packages = await monitor.list_packages(include_system=include_system)
    return {
        "ok": True,
        "packages": [p.to_dict() for p in packages],
        "count": len(packages),
    }


@app.post("/adb/get-app-name", dependencies=[Depends(verify_secret)])
async def get_app_name(body: AppNameRequest):
    resolved = await asyncio.to_thread(monitor.resolve_package, body.packageName)
    return {"ok": True, **resolved.to_dict()}


@app.post("/adb/resolve-packages", dependencies=[Depends(verify_secret)])
async def resolve_packages(body: ResolvePackagesRequest):
    names = await monitor.resolve_packages(body.packageNames)
    return {
        "ok": True,
        "appNames": {pid: r.display_name for pid, r in names.items()},
        "packages": [r.to_dict() for r in names.values()],
    }


@app.post("/adb/run-performance-check", dependencies=[Depends(verify_secret)])
async def run_performance_check():
    logger.info("Running performance analysis...")
    result = await asyncio.to_thread(monitor.capture_performance_snapshot)
    history = [s.to_dict() for s in result["history"]]
    return {
        "ok": True,
        "current": result["current"].to_dict(),
        "history": history,
        "session_id": result["session_id"],
        "total_records": len(history),
    }


@app.post("/adb/start-fresh-monitoring", dependencies=[Depends(verify_secret)])
async def start_fresh_monitoring(body: FreshMonitoringRequest = None):
    clear = body.clear if body else False
    logger.info("Starting fresh monitoring session...")
    result = await asyncio.to_thread(monitor.start_fresh_session, clear)
    return {
        "ok": True,
        "message": (
            f"Started fresh monitoring session. "
            f"Cleared {result['cleared_count']} old records."
        ),
        "session_id": result["session_id"],
        "cleared_count": result["cleared_count"],
    }


@app.get("/adb/performance-history", dependencies=[Depends(verify_secret)])
async def performance_history(limit: int = 50, session_id: Optional[str] = None):
    history = await asyncio.to_thread(monitor.get_history, limit, session_id)
    return {
        "ok": True,
        "history": [s.to_dict() for s in history],
        "count": len(history),
        "session_id": session_id or "all",
    }


@app.delete("/adb/clear-performance-data", dependencies=[Depends(verify_secret)])
async def clear_performance_data():
    logger.info("Clearing all performance data...")
    count = await asyncio.to_thread(monitor.clear_all_telemetry)
    return {
        "ok": True,
        "message": f"Cleared {count} performance records.",
        "deleted_count": count,
    }


@app.get("/adb/session-info", dependencies=[Depends(verify_secret)])
async def session_info():
    return {"ok": True, **monitor.session_info().to_dict()}


def serve(host: str = "127.0.0.1", port: int = 5000) -> None:
    import uvicorn
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    serve(port=load_settings().port)
