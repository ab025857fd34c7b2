from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from villages.config import get_settings
from villages.infrastructure.database import engine, initialize_database
from villages.infrastructure.logging import configure_logging
from villages.infrastructure.realtime import build_realtime_services
from villages.infrastructure.security import JWTIdentityProvider
from villages.interfaces.api.dependencies import IdentityProvider
from villages.interfaces.api.routes import register_routes


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Prepare the database and the realtime registry, release them on shutdown."""

    configure_logging()
    initialize_database()
    app.state.realtime.start()
    yield
    await app.state.realtime.stop()
    engine.dispose()


def create_app(identity_provider: IdentityProvider | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = get_settings()
    app = FastAPI(title="Villages notifications", lifespan=lifespan)
    app.state.identity_provider = identity_provider or JWTIdentityProvider(settings)
    app.state.realtime = build_realtime_services(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


app = create_app()
