"""Curriculum pipeline nodes."""

from curriculum_engine.orchestrator.nodes.generation import (
    degraded_curriculum,
    design_structure,
    evaluate_quality,
    generate_rounds,
    refine_rounds,
)
from curriculum_engine.orchestrator.nodes.persistence import save_curriculum
from curriculum_engine.orchestrator.nodes.personas import generate_personas, generate_standard_questions
from curriculum_engine.orchestrator.nodes.research import fallback_research, parse_job, research_company

__all__ = [
    "degraded_curriculum",
    "design_structure",
    "evaluate_quality",
    "fallback_research",
    "generate_personas",
    "generate_rounds",
    "generate_standard_questions",
    "parse_job",
    "refine_rounds",
    "research_company",
    "save_curriculum",
]
