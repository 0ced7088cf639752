"""Curriculum generation pipeline.

Nodes:
  parse_job → research_company → generate_personas → generate_standard_questions
  → design_structure → generate_rounds → evaluate_quality ⇄ refine_rounds
  → save_curriculum

Research failures recover through fallback_research; any other node failure
recovers through degraded_curriculum, which still ends in save_curriculum.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import structlog
from langgraph.graph import END

from curriculum_engine.config import Settings
from curriculum_engine.llm.service import LLMServices
from curriculum_engine.orchestrator.engine import CompiledPipeline, PipelineGraph
from curriculum_engine.orchestrator.nodes import (
    degraded_curriculum,
    design_structure,
    evaluate_quality,
    fallback_research,
    generate_personas,
    generate_rounds,
    generate_standard_questions,
    parse_job,
    refine_rounds,
    research_company,
    save_curriculum,
)
from curriculum_engine.orchestrator.quality_gate import QualityGate
from curriculum_engine.orchestrator.runtime import PipelineRuntime
from curriculum_engine.orchestrator.state import CurriculumState
from curriculum_engine.storage.curriculum_store import CurriculumStore
from curriculum_engine.utils.logger import append_run_log, init_run_log_buffer

logger = structlog.get_logger(__name__)


class CurriculumGenerationError(Exception):
    """A run finished without a curriculum id; carries every recorded error and warning."""

    def __init__(self, errors: list[str], warnings: list[str], run_id: Optional[str] = None):
        self.errors = errors
        self.warnings = warnings
        self.run_id = run_id
        message = f"Generation failed: {'; '.join(errors) or 'no curriculum was produced'}"
        if warnings:
            message += f" (Warnings: {'; '.join(warnings)})"
        super().__init__(message)


# ─────────────────────────── Build the Graph ───────────────────────────


def build_curriculum_graph() -> PipelineGraph:
    """Declare the curriculum pipeline nodes, edges and recovery targets."""
    graph = PipelineGraph(CurriculumState)

    graph.add_node("parse_job", parse_job, recovery="fallback_research")
    graph.add_node("research_company", research_company, recovery="fallback_research")
    graph.add_node("fallback_research", fallback_research)
    graph.add_node("generate_personas", generate_personas)
    graph.add_node("generate_standard_questions", generate_standard_questions)
    graph.add_node("design_structure", design_structure)
    graph.add_node("generate_rounds", generate_rounds)
    graph.add_node("evaluate_quality", evaluate_quality)
    graph.add_node("refine_rounds", refine_rounds)
    graph.add_node("degraded_curriculum", degraded_curriculum)
    graph.add_node("save_curriculum", save_curriculum, fatal=True)

    graph.set_entry_point("parse_job")
    graph.set_default_recovery("degraded_curriculum")

    graph.add_edge("parse_job", "research_company")
    graph.add_edge("research_company", "generate_personas")
    graph.add_edge("fallback_research", "generate_personas")
    graph.add_edge("generate_personas", "generate_standard_questions")
    graph.add_edge("generate_standard_questions", "design_structure")
    graph.add_edge("design_structure", "generate_rounds")
    graph.add_edge("generate_rounds", "evaluate_quality")
    # evaluate_quality routes by directive only
    graph.add_edge("refine_rounds", "evaluate_quality")
    graph.add_edge("degraded_curriculum", "save_curriculum")
    graph.add_edge("save_curriculum", END)

    return graph


# ─────────────────────────── Pipeline Runner ───────────────────────────


class CurriculumAgent:
    """Runs the curriculum pipeline against shared LLM services and a store."""

    def __init__(
        self,
        services: LLMServices,
        store: CurriculumStore,
        settings: Settings,
        gate: Optional[QualityGate] = None,
    ):
        self.services = services
        self.store = store
        self.settings = settings
        self.runtime = PipelineRuntime(
            llm=services.fallback,
            batch=services.batch,
            store=store,
            gate=gate or QualityGate(),
        )
        self.pipeline: CompiledPipeline = build_curriculum_graph().compile(
            self.runtime, recursion_limit=settings.PIPELINE_RECURSION_LIMIT
        )

    async def run(
        self,
        user_input: str,
        user_profile: Optional[Mapping[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> Mapping[str, Any]:
        """Run the pipeline and return the read-only final state."""
        run_id = run_id or str(uuid.uuid4())
        init_run_log_buffer(run_id)
        logger.info("pipeline_start", run_id=run_id)
        append_run_log(run_id, "INFO", "orchestrator", "Pipeline started")

        initial_state: CurriculumState = {
            "run_id": run_id,
            "user_input": user_input,
            "user_profile": dict(user_profile) if user_profile else None,
            "errors": [],
            "warnings": [],
            "refinement_attempts": 0,
            "best_effort": False,
            "current_step": "starting",
            "progress": 0,
            "start_time": datetime.now(timezone.utc).isoformat(),
        }

        try:
            final_state = await self.pipeline.run(
                initial_state, timeout_seconds=self.settings.PIPELINE_TIMEOUT_SECONDS
            )
        except Exception as e:
            logger.error("pipeline_failed", run_id=run_id, error=str(e))
            append_run_log(run_id, "ERROR", "orchestrator", f"Pipeline failed: {e}")
            raise

        logger.info(
            "pipeline_complete",
            run_id=run_id,
            curriculum_id=final_state.get("curriculum_id"),
            quality=final_state.get("quality"),
            refinement_attempts=final_state.get("refinement_attempts"),
            errors=len(final_state.get("errors", [])),
            warnings=len(final_state.get("warnings", [])),
        )
        append_run_log(run_id, "INFO", "orchestrator", "Pipeline completed")
        return final_state

    async def generate(
        self,
        user_input: str,
        user_profile: Optional[Mapping[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> str:
        """Return the new curriculum id, or raise one aggregated CurriculumGenerationError."""
        state = await self.generate_with_state(user_input, user_profile, run_id)
        return state["curriculum_id"]

    async def generate_with_state(
        self,
        user_input: str,
        user_profile: Optional[Mapping[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> Mapping[str, Any]:
        state = await self.run(user_input, user_profile, run_id)
        if not state.get("curriculum_id"):
            raise CurriculumGenerationError(
                list(state.get("errors", [])),
                list(state.get("warnings", [])),
                run_id=state.get("run_id"),
            )
        return state
