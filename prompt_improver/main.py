import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .core.config import settings
from .db.session import check_db_health, dispose_engine
from .errors import PromptImproverError
from .llm_providers import list_available_providers, validate_provider_config
from .middleware.error_handler import (
    database_exception_handler,
    generic_exception_handler,
    prompt_improver_exception_handler,
    validation_exception_handler,
)
from .routers import tasks

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Prompt Improver API (Multi-Agent Collaboration)",
    description="Engineer, Reviewer and Lead agents iteratively improve a prompt",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(PromptImproverError, prompt_improver_exception_handler)
app.add_exception_handler(SQLAlchemyError, database_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(tasks.router)


@app.on_event("startup")
async def startup_event():
    """Validate configuration on startup."""
    logger.info("Starting Prompt Improver API...")
    settings.validate_production_config()

    current = validate_provider_config(settings.MODEL_PROVIDER)
    if not current["valid"]:
        logger.warning(
            f"Default provider {settings.MODEL_PROVIDER} is missing {', '.join(current['missing'])}; "
            "tasks must supply their own api_key"
        )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Prompt Improver API...")
    await dispose_engine()


@app.get("/health", response_class=ORJSONResponse)
async def health(db: bool = False):
    """Health check endpoint. Pass ?db=true to include a database round trip."""
    health_data = {
        "status": "ok",
        "env": settings.APP_ENV,
    }
    if db:
        healthy, latency_ms, error = await check_db_health()
        health_data["database"] = {
            "healthy": healthy,
            "latency_ms": round(latency_ms, 1),
            "error": error if settings.DEBUG else None,
        }
        if not healthy:
            health_data["status"] = "degraded"
    return health_data


@app.get("/providers", response_class=ORJSONResponse)
async def get_providers():
    """Get status of configured LLM providers."""
    current = settings.MODEL_PROVIDER
    current_validation = validate_provider_config(current)

    return {
        "current_provider": current,
        "current_model": settings.MODEL_NAME,
        "current_valid": current_validation["valid"],
        "current_missing": current_validation["missing"],
        "providers": list_available_providers(),
    }
