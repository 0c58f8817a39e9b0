from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import init_db
from .errors import DomainError

from .api.activities import router as activities_router
from .api.groups import router as groups_router
from .api.polls import router as polls_router

logger = logging.getLogger(__name__)


def create_app(create_tables: bool = True) -> FastAPI:
    app = FastAPI(
        title="Group Polls API",
        version=settings.app_version,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Startup ---
    if create_tables:
        @app.on_event("startup")
        def _startup() -> None:
            # Creates tables for all registered SQLModel models (idempotent)
            init_db()

    # --- Domain errors -> same {"detail": ...} envelope FastAPI uses ---
    @app.exception_handler(DomainError)
    async def domain_error_handler(request, exc: DomainError):  # noqa: ANN001
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    # --- Health / meta ---
    @app.get("/health", tags=["meta"])
    def health() -> Dict[str, Any]:
        return {"ok": True, "env": settings.env}

    @app.get("/version", tags=["meta"])
    def version() -> Dict[str, Any]:
        return {"version": settings.app_version}

    app.include_router(groups_router)
    app.include_router(polls_router)
    app.include_router(activities_router)

    return app


app = create_app()


def run() -> None:
    logging.basicConfig(level=getattr(logging, str(settings.log_level).upper(), logging.INFO))
    import uvicorn

    # init_db is handled by the FastAPI startup hook.
    uvicorn.run(
        "groupvote.main:app",
        host=settings.host,
        port=int(settings.port),
        reload=bool(settings.reload),
    )
