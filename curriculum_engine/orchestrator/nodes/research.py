"""Research nodes: job parsing, company research and their fallback."""

from typing import Any, Mapping

import structlog

from curriculum_engine.models.enums import TaskName
from curriculum_engine.models.schemas import CompanyResearch, ParsedJob
from curriculum_engine.orchestrator.nodes.prompts import company_research_prompt, job_parsing_prompt
from curriculum_engine.orchestrator.runtime import PipelineRuntime
from curriculum_engine.utils.logger import append_run_log

logger = structlog.get_logger(__name__)

FALLBACK_RESEARCH_WARNING = "Using fallback research with limited data"


async def parse_job(state: Mapping[str, Any], runtime: PipelineRuntime) -> dict[str, Any]:
    """Turn the raw job input into a ParsedJob."""
    user_input = (state.get("user_input") or "").strip()
    if not user_input:
        raise ValueError("No valid job data or URL to parse")

    job = await runtime.llm.invoke(TaskName.JOB_PARSING, ParsedJob, job_parsing_prompt(user_input))
    if user_input.startswith(("http://", "https://")) and not job.source_url:
        job = job.model_copy(update={"source_url": user_input})

    append_run_log(state.get("run_id", ""), "INFO", "parse_job", f"Parsed job: {job.title} at {job.company_name}")
    return {"job_data": job.model_dump(mode="json"), "progress": 10}


async def research_company(state: Mapping[str, Any], runtime: PipelineRuntime) -> dict[str, Any]:
    """Company context and typical interview patterns for the role."""
    job = state.get("job_data")
    if not job:
        raise ValueError("Missing job data for company research")

    research = await runtime.llm.invoke(TaskName.COMPANY_RESEARCH, CompanyResearch, company_research_prompt(job))
    return {
        "company_context": research.company.model_dump(mode="json"),
        "role_patterns": research.role.model_dump(mode="json"),
        "progress": 25,
    }


def _placeholder_job(user_input: str) -> dict[str, Any]:
    first_line = next((line.strip() for line in user_input.splitlines() if line.strip()), "")
    title = first_line[:120] or "Unknown Role"
    return ParsedJob(
        title=title,
        company_name="Unknown Company",
        raw_description=user_input or None,
        parsing_confidence=0.0,
    ).model_dump(mode="json")


async def fallback_research(state: Mapping[str, Any], runtime: PipelineRuntime) -> dict[str, Any]:
    """Minimal research placeholders so generation can continue."""
    job = state.get("job_data") or _placeholder_job(state.get("user_input") or "")
    company_name = job.get("company_name") or "Unknown Company"
    logger.warning("fallback_research_used", run_id=state.get("run_id"), company=company_name)

    return {
        "job_data": job,
        "company_context": {
            "name": company_name,
            "industry": "Unknown",
            "size": None,
            "values": [],
            "culture_highlights": [],
            "recent_news": [],
        },
        "role_patterns": {
            "typical_rounds": 4,
            "focus_areas": ["role fundamentals", "behavioral competencies"],
            "interview_formats": ["video"],
            "similar_roles": [],
            "interview_difficulty": "medium",
            "preparation_recommendations": [],
        },
        "warnings": [FALLBACK_RESEARCH_WARNING],
        "progress": 25,
    }
