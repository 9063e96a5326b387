import logging
from typing import Dict

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from . import telemetry_pipeline  # noqa: F401
from .config import Settings, get_settings
from .db.monitoring import get_pool_snapshot
from .db.session import get_engine, init_schema
from .logging_config import configure_logging
from .plan_routes import router as plan_router
from .schedule_routes import router as schedule_router


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="Insanus Planner Backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(schedule_router)
app.include_router(plan_router)

settings_snapshot = get_settings()
logger.info("Backend starting with persistence mode: %s", settings_snapshot.persistence_mode)
logger.info("Default student timezone: %s", settings_snapshot.default_timezone)


@app.on_event("startup")
def ensure_schema() -> None:
    if get_settings().persistence_mode == "database" and get_settings().database_url:
        init_schema()


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "persistence_mode": settings.persistence_mode}


@app.get("/healthz/database")
def database_health(settings: Settings = Depends(get_settings)) -> Dict[str, object]:
    try:
        engine = get_engine()
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {
        "status": "ok",
        "persistence_mode": settings.persistence_mode,
        **get_pool_snapshot(engine),
    }
