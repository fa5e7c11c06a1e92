"""Admissions CRM Gateway.

Serves automation rule management, lead event intake, the time-based
sweep, execution history and metrics under ``/api/v1/automation``.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

import structlog  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from packages.core.src.config import get_config  # noqa: E402
from packages.database.src.session import close_db, init_db  # noqa: E402

from .errors import register_error_handlers  # noqa: E402
from .routers import automation, health  # noqa: E402

logger = structlog.get_logger()
config = get_config()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info(
        "admissions_crm_starting",
        environment=config.environment.value,
        automation_enabled=config.enable_automation,
        action_timeout_seconds=config.action_timeout_seconds,
    )

    problems = config.validate_production_requirements()
    for problem in problems:
        logger.error("production_config_error", error=problem)
    if problems and config.is_production:
        raise RuntimeError(f"Production configuration errors: {'; '.join(problems)}")

    await init_db()
    yield
    await close_db()
    logger.info("admissions_crm_stopped")


app = FastAPI(title="Admissions CRM API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)

app.include_router(health.router, tags=["Health"])
app.include_router(automation.router, prefix="/api/v1/automation", tags=["Automation"])


def run() -> None:
    """Run the gateway under uvicorn (``GATEWAY_HOST``/``GATEWAY_PORT``)."""
    import uvicorn

    uvicorn.run(
        "services.gateway.src.main:app",
        host=os.getenv("GATEWAY_HOST", "0.0.0.0"),
        port=int(os.getenv("GATEWAY_PORT", "8000")),
        reload=config.is_development,
    )


if __name__ == "__main__":
    run()
