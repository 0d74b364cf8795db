import logging
from typing import Dict

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .analytics_routes import router as analytics_router
from .config import Settings, get_settings
from .logging_config import configure_logging
from .narrative import resolve_mode


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="StudyPulse Analytics Backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(analytics_router)

settings_snapshot = get_settings()
logger.info("Analytics backend starting (timezone=%s)", settings_snapshot.analytics_timezone)
logger.info("Narrative mode: %s", resolve_mode(settings_snapshot))


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "narrative_mode": resolve_mode(settings)}
