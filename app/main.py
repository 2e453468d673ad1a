import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import Settings, get_settings
from app.core.errors import register_exception_handlers
from app.core.security import TokenCodec
from app.db.dynamo import Database
from app.routers import ai, auth, dashboard, health
from app.routers.transactions import expenses_router, incomes_router
from app.utils.advisor import Advisor
from app.utils.analyzer import FinanceAnalyzer
from app.utils.llm import LLMClient
from app.utils.storage import AvatarStorage

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    llm: Optional[LLMClient] = None,
    storage: Optional[AvatarStorage] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title=settings.PROJECT_NAME, debug=settings.DEBUG)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        max_age=3600,
    )
    register_exception_handlers(app, debug=settings.DEBUG)

    app.state.settings = settings
    app.state.database = database or Database(settings)
    app.state.token_codec = TokenCodec.from_settings(settings)
    app.state.storage = storage or AvatarStorage.from_settings(settings)
    app.state.advisor = Advisor(
        FinanceAnalyzer(),
        llm=llm or LLMClient.from_settings(settings),
        max_tips=settings.MAX_TIPS,
    )

    # Root endpoint
    @app.get("/")
    def root():
        return {"message": f"Welcome to {settings.PROJECT_NAME} API"}

    # Register routers
    prefix = settings.API_PREFIX
    app.include_router(health.router, prefix=prefix, tags=["Health"])  # /api/health
    app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["Auth"])
    app.include_router(incomes_router, prefix=f"{prefix}/incomes", tags=["Incomes"])
    app.include_router(expenses_router, prefix=f"{prefix}/expenses", tags=["Expenses"])
    app.include_router(dashboard.router, prefix=f"{prefix}/dashboard", tags=["Dashboard"])
    app.include_router(ai.router, prefix=f"{prefix}/ai", tags=["AI"])

    logger.info(f"{settings.PROJECT_NAME} started with API prefix {prefix}")
    return app


app = create_app()
