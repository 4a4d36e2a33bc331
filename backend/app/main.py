"""
Point d'entrée principal de l'API Roster.
Démarrage : uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.database import init_catalog
from app.routers import rosters, students
from app.services.errors import RosterError
from app.services.roster_domains import STAFF, STUDENTS

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Crée le catalogue fixe (registre des types, compteurs, comptes) au démarrage."""
    init_catalog()
    yield


app = FastAPI(
    title="Roster API",
    description="Formulaires dynamiques pour les classes d'élèves et le personnel",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : tous les ports localhost en développement (à restreindre en production).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(students.router)
app.include_router(rosters.build_router(STUDENTS))
app.include_router(rosters.build_router(STAFF))


@app.exception_handler(RosterError)
async def roster_error_handler(request: Request, exc: RosterError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Erreur de stockage sur %s : %s", request.url.path, exc.details)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "details": exc.details},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour garantir que la réponse 500
    passe bien par CORSMiddleware (qui injecte les headers CORS).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "Roster API", "version": "0.1.0"}
