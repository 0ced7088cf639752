"""Curriculum generation nodes: structure, rounds, quality gate and refinement."""

from typing import Any, Mapping, Optional

import structlog
from langgraph.types import Command

from curriculum_engine.llm.invoker import GenerationOptions
from curriculum_engine.models.enums import GateState, RoundType, TaskName
from curriculum_engine.models.schemas import (
    GeneratedRound,
    QualityEvaluation,
    RoundContent,
    RoundDefinition,
    RoundPersona,
    StructureDesign,
)
from curriculum_engine.orchestrator.nodes.prompts import quality_prompt, round_prompt, structure_prompt
from curriculum_engine.orchestrator.runtime import PipelineRuntime
from curriculum_engine.utils.logger import append_run_log

logger = structlog.get_logger(__name__)

REFINEMENT_TEMPERATURE_BOOST = 0.2
DEGRADED_WARNING = "Generated degraded curriculum with placeholder content"

SAVE_NODE = "save_curriculum"
REFINE_NODE = "refine_rounds"
DEGRADED_NODE = "degraded_curriculum"


async def design_structure(state: Mapping[str, Any], runtime: PipelineRuntime) -> dict[str, Any]:
    """Decide the rounds of the interview loop."""
    job = state.get("job_data")
    role = state.get("role_patterns")
    if not job or not role:
        raise ValueError("Missing required data for structure design")

    prompt = structure_prompt(job, state.get("company_context") or {}, role, state.get("user_profile"))
    design = await runtime.llm.invoke(TaskName.STRUCTURE_DESIGN, StructureDesign, prompt)

    rounds = sorted(design.rounds, key=lambda r: r.round_number)
    structure = design.model_dump(mode="json")
    structure.update({
        "rounds": [r.model_dump(mode="json") for r in rounds],
        "total_rounds": len(rounds),
        "estimated_total_minutes": sum(r.duration_minutes for r in rounds),
        "generation_strategy": "comprehensive",
    })
    return {"structure": structure, "progress": 45}


def _persona_for(state: Mapping[str, Any], round_type: str) -> Optional[Mapping[str, Any]]:
    return next((p for p in state.get("personas") or [] if p.get("round_type") == round_type), None)


async def _generate_round_batch(
    state: Mapping[str, Any],
    runtime: PipelineRuntime,
    options: GenerationOptions,
    weak_areas: list[str],
) -> list[dict[str, Any]]:
    structure = state.get("structure")
    job = state.get("job_data")
    if not structure or not job:
        raise ValueError("Missing structure or job data for round generation")

    company = state.get("company_context") or {}
    standard_questions = state.get("standard_questions") or {}
    definitions = [RoundDefinition.model_validate(r) for r in structure["rounds"]]
    prompts = [
        round_prompt(
            d.model_dump(mode="json"),
            job,
            company,
            persona=_persona_for(state, d.type.value),
            weak_areas=weak_areas,
            standard_questions=standard_questions.get(d.type.value, []),
        )
        for d in definitions
    ]
    contents = await runtime.batch.invoke_batch(TaskName.ROUND_GENERATION, RoundContent, prompts, options)
    return [
        GeneratedRound.from_content(definition, content).model_dump(mode="json")
        for definition, content in zip(definitions, contents)
    ]


async def generate_rounds(state: Mapping[str, Any], runtime: PipelineRuntime) -> dict[str, Any]:
    """Generate the content of every round concurrently."""
    rounds = await _generate_round_batch(state, runtime, GenerationOptions(), [])
    append_run_log(state.get("run_id", ""), "INFO", "generate_rounds", f"Generated {len(rounds)} rounds")
    return {
        "rounds": rounds,
        "gate_state": GateState.GENERATED.value,
        "refinement_attempts": state.get("refinement_attempts", 0),
        "progress": 65,
    }


async def evaluate_quality(state: Mapping[str, Any], runtime: PipelineRuntime) -> Command:
    """Score the curriculum and route to persistence or refinement."""
    rounds = state.get("rounds")
    job = state.get("job_data")
    if not rounds or not job:
        return Command(update={"errors": ["Missing rounds for evaluation"]}, goto=DEGRADED_NODE)

    gate = runtime.gate
    current = GateState(state.get("gate_state", GateState.GENERATED.value))
    evaluated = gate.advance(current, GateState.EVALUATED)

    evaluation = await runtime.llm.invoke(
        TaskName.QUALITY_EVALUATION,
        QualityEvaluation,
        quality_prompt(job, state.get("company_context") or {}, list(rounds)),
        GenerationOptions(use_cache=False),
    )
    attempts = state.get("refinement_attempts", 0)
    decision = gate.decide(evaluation.overall_score, attempts)
    target = gate.advance(evaluated, decision.target)

    update: dict[str, Any] = {
        "quality": evaluation.overall_score,
        "weak_areas": evaluation.weak_areas,
        "gate_state": target.value,
        "best_effort": target is GateState.PERSISTED_WITH_ERRORS,
        "progress": 80,
    }
    if decision.warning is not None:
        update["warnings"] = [str(decision.warning)]

    logger.info(
        "quality_evaluated",
        run_id=state.get("run_id"),
        score=evaluation.overall_score,
        attempts=attempts,
        decision=target.value,
    )
    append_run_log(
        state.get("run_id", ""), "INFO", "evaluate_quality",
        f"Quality score {evaluation.overall_score} after {attempts} refinement(s): {target.value}",
    )
    return Command(update=update, goto=SAVE_NODE if decision.persist else REFINE_NODE)


async def refine_rounds(state: Mapping[str, Any], runtime: PipelineRuntime) -> dict[str, Any]:
    """Regenerate rounds at a higher temperature, targeting the weak areas."""
    attempts = runtime.gate.next_attempt(state.get("refinement_attempts", 0))
    base_temperature = runtime.llm.llm_config.task_config(TaskName.ROUND_GENERATION).temperature
    options = GenerationOptions(use_cache=False).with_temperature(
        min(base_temperature + REFINEMENT_TEMPERATURE_BOOST, 1.0)
    )
    rounds = await _generate_round_batch(state, runtime, options, list(state.get("weak_areas") or []))
    return {"rounds": rounds, "refinement_attempts": attempts, "progress": 70}


def _placeholder_rounds(structure: Mapping[str, Any]) -> list[dict[str, Any]]:
    rounds = []
    for raw in structure.get("rounds", []):
        definition = RoundDefinition.model_validate(raw)
        rounds.append(GeneratedRound(
            round_number=definition.round_number,
            round_type=definition.type,
            title=definition.title,
            description=f"{definition.type.value} interview focusing on {', '.join(definition.focus_areas) or 'core competencies'}",
            duration_minutes=definition.duration_minutes,
            interviewer_persona=RoundPersona(name="Interviewer", role="Hiring team member"),
        ).model_dump(mode="json"))
    return rounds


def _placeholder_structure() -> dict[str, Any]:
    durations = {
        RoundType.RECRUITER_SCREEN: 30,
        RoundType.BEHAVIORAL_DEEP_DIVE: 45,
        RoundType.CULTURE_VALUES_ALIGNMENT: 45,
        RoundType.STRATEGIC_ROLE_DISCUSSION: 60,
        RoundType.EXECUTIVE_FINAL: 45,
    }
    rounds = [
        RoundDefinition(
            round_number=number,
            type=round_type,
            title=round_type.value.replace("_", " ").title(),
            focus_areas=[],
            duration_minutes=durations[round_type],
        ).model_dump(mode="json")
        for number, round_type in enumerate(RoundType, start=1)
    ]
    return {
        "total_rounds": len(rounds),
        "difficulty_level": "intermediate",
        "rounds": rounds,
        "estimated_total_minutes": sum(durations.values()),
        "generation_strategy": "degraded",
    }


async def degraded_curriculum(state: Mapping[str, Any], runtime: PipelineRuntime) -> dict[str, Any]:
    """Fill in whatever the failed steps left missing so a curriculum can still be saved."""
    update: dict[str, Any] = {
        "best_effort": True,
        "gate_state": GateState.PERSISTED_WITH_ERRORS.value,
        "warnings": [DEGRADED_WARNING],
    }
    if not state.get("job_data"):
        update["job_data"] = {"title": "Unknown Role", "company_name": "Unknown Company", "level": "mid"}
    structure = state.get("structure") or _placeholder_structure()
    if not state.get("structure"):
        update["structure"] = structure
    if not state.get("rounds"):
        update["rounds"] = _placeholder_rounds(structure)

    logger.warning(
        "degraded_curriculum_used",
        run_id=state.get("run_id"),
        failed_node=state.get("failed_node"),
        filled=sorted(k for k in update if k not in ("best_effort", "gate_state", "warnings")),
    )
    return update
