import uvicorn
from fastapi import FastAPI

from app.api.routes.health import router as health_router
from app.api.routes.pvp_async import router as pvp_async_router
from app.api.routes.pvp_challenges import router as pvp_challenges_router
from app.api.routes.pvp_history import router as pvp_history_router
from app.api.routes.pvp_sessions import router as pvp_sessions_router
from app.core.config import get_settings
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level, json_logs=settings.app_env != "dev")

    app = FastAPI(
        title="Quiz PvP API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.include_router(health_router)
    app.include_router(pvp_sessions_router)
    app.include_router(pvp_async_router)
    app.include_router(pvp_challenges_router)
    app.include_router(pvp_history_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
