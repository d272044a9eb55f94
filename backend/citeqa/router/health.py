# backend/citeqa/router/health.py
from __future__ import annotations
import time

from fastapi import APIRouter

router = APIRouter()
startup_time = time.time()


@router.get("/health")
async def health_check():
    """Basic health check - service is running"""
    return {"status": "ok", "uptime_seconds": time.time() - startup_time}
