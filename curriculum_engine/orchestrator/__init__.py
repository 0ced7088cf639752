"""Orchestrator layer — LangGraph pipeline for curriculum generation."""

from curriculum_engine.orchestrator.engine import (
    CompiledPipeline,
    NodeExecutionError,
    PipelineGraph,
    PipelineTimeoutError,
    RoutingError,
)
from curriculum_engine.orchestrator.graph import CurriculumAgent, CurriculumGenerationError, build_curriculum_graph
from curriculum_engine.orchestrator.quality_gate import QualityGate, RefinementCeilingReached
from curriculum_engine.orchestrator.runtime import PipelineRuntime
from curriculum_engine.orchestrator.state import CurriculumState

__all__ = [
    "CompiledPipeline",
    "CurriculumAgent",
    "CurriculumGenerationError",
    "CurriculumState",
    "NodeExecutionError",
    "PipelineGraph",
    "PipelineRuntime",
    "PipelineTimeoutError",
    "QualityGate",
    "RefinementCeilingReached",
    "RoutingError",
    "build_curriculum_graph",
]
