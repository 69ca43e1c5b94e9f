"""
Point d'entrée du service local embarqué (journal de classe offline + suivi de trajet).
Démarrage : uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import app.models  # noqa: F401 (enregistre les tables du cache dans Base.metadata)
from app.config import settings
from app.dependencies import build_services
from app.routers import diary, driver, session
from app.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Construit les services, démarre le scheduler ; libère GPS, heartbeat et session HTTP à l'arrêt."""
    services = build_services()
    app.state.services = services
    start_scheduler(services.sync_coordinator)
    yield
    services.trip_controller.shutdown()
    stop_scheduler()
    services.remote_client.close()


app = FastAPI(
    title="School Device Core API",
    description="Service local de l'app mobile : journal de classe offline-first et suivi de trajet chauffeur",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Appelé en loopback par la coquille mobile (WebView / émulateur)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1|10\.0\.2\.2)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(diary.router)
app.include_router(diary.profile_router)
app.include_router(driver.router)
app.include_router(session.router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour que la réponse 500
    passe par CORSMiddleware (headers CORS présents côté WebView).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que le service local est opérationnel."""
    return {"status": "ok", "service": "School Device Core API", "version": "0.1.0"}
