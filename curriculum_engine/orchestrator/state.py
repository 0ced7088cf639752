"""LangGraph state definition for the curriculum generation pipeline."""

import operator
from typing import Annotated, Any, Optional, TypedDict


def merge_rounds(
    existing: Optional[list[dict[str, Any]]],
    new: Optional[list[dict[str, Any]]],
) -> list[dict[str, Any]]:
    """Merge generated rounds by round number; newer rounds replace older ones."""
    merged = {r["round_number"]: r for r in existing or []}
    for round_ in new or []:
        merged[round_["round_number"]] = round_
    return [merged[n] for n in sorted(merged)]


class CurriculumState(TypedDict, total=False):
    """The state that flows through the pipeline.

    This TypedDict is used as the LangGraph StateGraph state schema.
    """
    # ─── Inputs ───
    run_id: str
    user_input: str
    user_profile: Optional[dict[str, Any]]

    # ─── Research ───
    job_data: dict[str, Any]
    company_context: dict[str, Any]
    role_patterns: dict[str, Any]
    personas: list[dict[str, Any]]
    standard_questions: dict[str, list[dict[str, Any]]]  # keyed by round type

    # ─── Generation ───
    structure: dict[str, Any]
    rounds: Annotated[list[dict[str, Any]], merge_rounds]

    # ─── Quality gate ───
    quality: int
    weak_areas: list[str]
    gate_state: str
    refinement_attempts: int
    best_effort: bool

    # ─── Output ───
    curriculum_id: str

    # ─── Pipeline status ───
    errors: Annotated[list[str], operator.add]  # concatenated, never replaced
    warnings: Annotated[list[str], operator.add]
    current_step: str
    progress: int  # 0-100
    failed_node: str
    start_time: str
    end_time: str
