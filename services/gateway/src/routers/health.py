"""Health check endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from packages.core.src.config import get_config
from packages.database.src.session import get_db_session

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Basic health check."""
    return {
        "status": "healthy",
        "service": "admissions-crm-gateway",
        "version": "0.1.0",
    }


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db_session)) -> dict[str, Any]:
    """Readiness check for Kubernetes."""
    config = get_config()
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        return {
            "status": "not_ready",
            "reason": f"Database unavailable: {e}",
        }

    return {
        "status": "ready",
        "environment": config.environment.value,
        "automation_enabled": config.enable_automation,
    }
