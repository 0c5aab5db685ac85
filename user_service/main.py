from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from user_service.base_microservice import (
    BaseMicroservice, create_engine, create_session_factory, init_models
)
from user_service.config import Settings, get_settings
from user_service.auth.errors import register_exception_handlers
from user_service.auth.jwt import TokenCodec
from user_service.auth.middleware import AccessGuard
from user_service.auth.passwords import PasswordHasher
from user_service.auth.router import router as auth_router
from user_service.auth.store import SQLAlchemyUserStore, UserStore
from user_service.auth.users import SessionManager

# Create shared base microservice instance
base_service = BaseMicroservice("main")


def create_app(settings: Optional[Settings] = None, store: Optional[UserStore] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Service configuration, read from the environment when omitted
        store: User store; a SQLAlchemy store on ``settings.database_url``
            is created when omitted
    """
    settings = settings or get_settings()
    engine = None
    if store is None:
        engine = create_engine(settings.database_url)
        store = SQLAlchemyUserStore(create_session_factory(engine))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables on startup and dispose of the engine on shutdown."""
        base_service.log_event("service.startup", {
            "service": "user-service",
            "environment": settings.environment
        })
        if engine is not None:
            try:
                await init_models(engine)
            except Exception as e:
                base_service.log_error(e, context="Database initialisation")
                raise
        yield
        if engine is not None:
            await engine.dispose()
        base_service.log_event("service.shutdown", {"service": "user-service"})

    app = FastAPI(
        title="User Service",
        description="Registration, login and session tokens for user accounts",
        lifespan=lifespan
    )

    codec = TokenCodec(settings)
    app.state.settings = settings
    app.state.token_codec = codec
    app.state.access_guard = AccessGuard(codec)
    app.state.session_manager = SessionManager(
        store=store,
        codec=codec,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        settings=settings,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(auth_router, prefix="/api/auth", tags=["auth"])

    @app.get("/health", tags=["health"])
    async def health_check():
        return {"status": "ok", "service": "user-service"}

    return app


# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("user_service.main:create_app", factory=True, host="0.0.0.0", port=get_settings().port, reload=True)
