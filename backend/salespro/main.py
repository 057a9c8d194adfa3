import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .diagnostics import DiagnosticLevel
from .errors import RemoteUnavailable
from .logging_config import configure_logging
from .profile_routes import get_services, router as profile_router
from .services import Services, build_services


configure_logging()
logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        active: Optional[Services] = getattr(app.state, "services", None)
        if active is None:
            active = build_services(get_settings())
            app.state.services = active
        await active.start()
        try:
            yield
        finally:
            await active.stop()

    app = FastAPI(title="SalesPro Profile Backend", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if services is not None:
        app.state.services = services

    @app.get("/healthz")
    def health(services: Services = Depends(get_services)) -> Dict[str, Any]:
        return {"status": "ok", "remote": "configured" if services.remote.is_configured else "offline"}

    @app.get("/healthz/database")
    async def database_health(services: Services = Depends(get_services)) -> Dict[str, str]:
        if not services.remote.is_configured:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Database is not configured.",
            )
        try:
            (await services.remote.ping()).raise_for_status()
        except RemoteUnavailable as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Database unreachable: {exc.reason}",
            ) from exc
        return {"status": "ok"}

    @app.get("/healthz/agent")
    def agent_health(services: Services = Depends(get_services)) -> Dict[str, Any]:
        report = services.health.latest.as_dict()
        report["enabled"] = services.health.enabled
        report["auto_fix"] = services.health.auto_fix
        return report

    @app.get("/api/diagnostics")
    def diagnostics(
        level: Optional[DiagnosticLevel] = Query(default=None),
        services: Services = Depends(get_services),
    ) -> List[Dict[str, Any]]:
        return [event.as_dict() for event in services.diagnostics.recent(level)]

    app.include_router(profile_router)
    return app


app = create_app()
