"""Curriculum Engine — FastAPI Application.

All routes under /api/v1.
"""

from typing import Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from curriculum_engine.config import get_settings
from curriculum_engine.llm.config import ConfigurationError
from curriculum_engine.llm.service import create_llm_services
from curriculum_engine.models.schemas import (
    GenerateCurriculumRequest,
    GenerateCurriculumResponse,
    HealthResponse,
    ProviderStatusResponse,
)
from curriculum_engine.orchestrator.engine import PipelineTimeoutError
from curriculum_engine.orchestrator.graph import CurriculumAgent, CurriculumGenerationError
from curriculum_engine.storage.curriculum_store import create_curriculum_store
from curriculum_engine.utils.logger import get_run_logs, has_run_logs, setup_logging

# ─── Setup ───
settings = get_settings()
setup_logging(settings.LOG_LEVEL)
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Curriculum Engine",
    description="Interview curriculum generation with resilient multi-provider LLM invocation",
    version="1.0.0",
)

# ─── CORS ───
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)

_agent: Optional[CurriculumAgent] = None


def get_curriculum_agent() -> CurriculumAgent:
    """Process-wide agent; LLM services and the store are shared by every run."""
    global _agent
    if _agent is None:
        services = create_llm_services(settings)
        _agent = CurriculumAgent(services, create_curriculum_store(settings), settings)
    return _agent


# ─── POST /api/v1/curriculum/generate — Run the pipeline ───
@app.post("/api/v1/curriculum/generate", response_model=GenerateCurriculumResponse)
async def generate_curriculum(
    request: GenerateCurriculumRequest,
    agent: CurriculumAgent = Depends(get_curriculum_agent),
):
    """Generate a curriculum and return its id with quality metadata."""
    profile = request.user_profile.model_dump(exclude_none=True) if request.user_profile else None
    try:
        state = await agent.generate_with_state(request.user_input, profile)
    except PipelineTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))

    return GenerateCurriculumResponse(
        run_id=state["run_id"],
        curriculum_id=state["curriculum_id"],
        quality=state.get("quality"),
        best_effort=state.get("best_effort", False),
        refinement_attempts=state.get("refinement_attempts", 0),
        warnings=list(state.get("warnings", [])),
    )


# ─── GET /api/v1/providers — Availability and usage ───
@app.get("/api/v1/providers", response_model=ProviderStatusResponse)
async def provider_status(agent: CurriculumAgent = Depends(get_curriculum_agent)):
    services = agent.services
    return ProviderStatusResponse(
        available=services.registry.availability_report(),
        usage=services.usage.snapshot(),
        budget=services.usage.budget_status(),
    )


# ─── GET /api/v1/runs/{run_id}/logs — Run log buffer ───
@app.get("/api/v1/runs/{run_id}/logs")
async def run_logs(run_id: str, since: int = 0):
    if not has_run_logs(run_id):
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    entries = get_run_logs(run_id, since_index=max(since, 0))
    return {"run_id": run_id, "since": since, "entries": entries}


# ─── GET /api/v1/health — Health Check ───
@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check(agent: CurriculumAgent = Depends(get_curriculum_agent)):
    """Return service health and provider availability."""
    providers = agent.services.registry.availability_report()
    status = "ok" if any(providers.values()) else "degraded"
    return HealthResponse(status=status, providers=providers)


# ─── Error Handlers ───
@app.exception_handler(CurriculumGenerationError)
async def generation_error_handler(request: Request, exc: CurriculumGenerationError):
    return JSONResponse(
        status_code=422,
        content={
            "error": "GENERATION_FAILED",
            "message": str(exc),
            "details": {"run_id": exc.run_id, "errors": exc.errors, "warnings": exc.warnings},
        },
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("configuration_invalid", problems=exc.problems)
    return JSONResponse(
        status_code=503,
        content={
            "error": "CONFIGURATION_INVALID",
            "message": "LLM configuration is invalid",
            "details": {"problems": exc.problems},
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "REQUEST_FAILED",
            "message": exc.detail,
            "details": {},
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception", error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": {},
        },
    )


# ─── Startup ───
@app.on_event("startup")
async def startup():
    logger.info("application_startup", version="1.0.0", environment=settings.APP_ENV)


@app.on_event("shutdown")
async def shutdown():
    logger.info("application_shutdown")
