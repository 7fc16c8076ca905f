import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from phishtrainer.api import routes
from phishtrainer.config import settings
from phishtrainer.core.analyzer import AnalysisMemo
from phishtrainer.core.providers import build_classifier, build_generator
from phishtrainer.database import init_db
from phishtrainer.logging_utils import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, debug=settings.DEBUG)
    logger.info("🚀 Starting %s...", settings.APP_NAME)
    if app.state.init_db:
        init_db()
        logger.info("✓ Database initialized")
    yield
    # Shutdown
    logger.info("👋 Shutting down %s...", settings.APP_NAME)


def create_app(generator=None, classifier=None, init_database: bool = True) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan
    )

    # Providers are chosen once per process
    app.state.generator = generator or build_generator(settings)
    app.state.classifier = classifier or build_classifier(settings)
    app.state.analysis_memo = AnalysisMemo()
    app.state.init_db = init_database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes.router, prefix=settings.API_PREFIX, tags=["Training"])

    @app.get("/")
    def root():
        return {
            "message": f"{settings.APP_NAME} API",
            "version": settings.VERSION,
            "docs": "/docs"
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("phishtrainer.main:app", host="0.0.0.0", port=8000, reload=False)
