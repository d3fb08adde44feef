"""
Before Send Backend - FastAPI Application
Tone check and rewrite service for draft messages
"""
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from before_send import __version__
from before_send.auth import BearerTokenResolver, SessionResolver
from before_send.config import Settings, get_settings
from before_send.database import build_engine, build_session_factory, init_db
from before_send.exceptions import CheckError, ServerError
from before_send.routers import check
from before_send.services import (
    AnalysisEngine,
    CheckService,
    DurableResultStore,
    EphemeralResultStore,
    ResultStore,
    build_rate_limiter,
)

LOG_FORMAT = "%(asctime)s - [%(levelname)s] - %(name)s - %(message)s"

logger = logging.getLogger(__name__)


def build_check_service(settings: Settings) -> CheckService:
    """Wire the pipeline components from configuration"""
    db_engine = build_engine(settings.database_url, echo=settings.debug)
    init_db(db_engine)

    store = ResultStore(
        ephemeral=EphemeralResultStore(ttl=timedelta(seconds=settings.temp_result_ttl_seconds)),
        durable=DurableResultStore(build_session_factory(db_engine), engine=db_engine),
        history_limit=settings.history_limit,
    )

    return CheckService(
        engine=AnalysisEngine.from_settings(settings),
        rate_limiter=build_rate_limiter(settings),
        store=store,
        analysis_timeout=settings.analysis_timeout_seconds,
    )


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[CheckService] = None,
    session_resolver: Optional[SessionResolver] = None,
) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, closing rate limiter and database connections")
        await app.state.check_service.close()

    app = FastAPI(
        title="Before Send API",
        description="Tone analysis and rewrite suggestions for messages before they are sent",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.check_service = service or build_check_service(settings)
    app.state.session_resolver = session_resolver or BearerTokenResolver(settings.session_tokens)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CheckError)
    async def check_error_handler(request: Request, exc: CheckError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        error = ServerError()
        return JSONResponse(status_code=error.status_code, content=error.to_body())

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "before-send-api"}

    app.include_router(check.router, prefix="/api", tags=["check"])

    return app
