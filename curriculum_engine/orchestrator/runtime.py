"""Services handed to every pipeline node."""

from dataclasses import dataclass, field

from curriculum_engine.llm.batch import BatchOrchestrator
from curriculum_engine.llm.fallback import FallbackOrchestrator
from curriculum_engine.orchestrator.quality_gate import QualityGate
from curriculum_engine.storage.curriculum_store import CurriculumStore


@dataclass
class PipelineRuntime:
    llm: FallbackOrchestrator
    batch: BatchOrchestrator
    store: CurriculumStore
    gate: QualityGate = field(default_factory=QualityGate)
