"""Interviewer personas and the standard questions each persona asks."""

from typing import Any, Mapping

import structlog

from curriculum_engine.llm.errors import AllProvidersExhaustedError
from curriculum_engine.models.enums import RoundType, TaskName
from curriculum_engine.models.schemas import InterviewerPersona, StandardQuestion, StandardQuestionSet
from curriculum_engine.orchestrator.nodes.prompts import persona_prompt, standard_questions_prompt
from curriculum_engine.orchestrator.runtime import PipelineRuntime
from curriculum_engine.utils.logger import append_run_log

logger = structlog.get_logger(__name__)

PLACEHOLDER_QUESTIONS_WARNING = "No interviewer personas available; using placeholder standard questions"

FALLBACK_FOLLOW_UPS = ["Can you tell me more about that?", "What was the outcome?"]

FALLBACK_QUESTIONS: dict[RoundType, list[tuple[str, str]]] = {
    RoundType.RECRUITER_SCREEN: [
        ("Why are you interested in this role?", "motivation"),
        ("What do you know about our company?", "motivation"),
        ("Tell me about your background.", "behavioral"),
    ],
    RoundType.BEHAVIORAL_DEEP_DIVE: [
        ("Tell me about a challenging project you worked on.", "behavioral"),
        ("Describe a time you had to work with a difficult team member.", "behavioral"),
    ],
    RoundType.CULTURE_VALUES_ALIGNMENT: [
        ("Which of our values resonates most with you, and why?", "cultural"),
        ("Describe the team environment where you do your best work.", "cultural"),
    ],
    RoundType.STRATEGIC_ROLE_DISCUSSION: [
        ("How would you approach your first 90 days in this role?", "strategic"),
        ("Where do you see the biggest opportunity for this team?", "strategic"),
    ],
    RoundType.EXECUTIVE_FINAL: [
        ("What long-term impact do you want to have here?", "strategic"),
        ("Why is now the right time for you to make this move?", "motivation"),
    ],
}


def fallback_questions(round_type: RoundType) -> list[dict[str, Any]]:
    """Generic questions used when no model could write them."""
    return [
        StandardQuestion(
            id=f"{round_type.value}-fallback-q{number}",
            text=text,
            category=category,
            follow_ups=FALLBACK_FOLLOW_UPS,
            time_allocation_minutes=5,
        ).model_dump(mode="json")
        for number, (text, category) in enumerate(FALLBACK_QUESTIONS[round_type], start=1)
    ]


async def generate_personas(state: Mapping[str, Any], runtime: PipelineRuntime) -> dict[str, Any]:
    """Generate the five interviewer personas as one batch.

    Personas enrich round generation but are not required, so exhausting
    every provider degrades to a warning.
    """
    job = state.get("job_data") or {}
    company = state.get("company_context") or {}
    prompts = [
        persona_prompt(number, round_type, job, company)
        for number, round_type in enumerate(RoundType, start=1)
    ]

    try:
        personas = await runtime.batch.invoke_batch(TaskName.PERSONA_GENERATION, InterviewerPersona, prompts)
    except AllProvidersExhaustedError as e:
        logger.warning("persona_generation_failed", run_id=state.get("run_id"), error=str(e))
        return {"personas": [], "warnings": [f"Persona generation failed: {e}"], "progress": 35}

    append_run_log(state.get("run_id", ""), "INFO", "generate_personas", f"Generated {len(personas)} personas")
    return {"personas": [p.model_dump(mode="json") for p in personas], "progress": 35}


async def generate_standard_questions(state: Mapping[str, Any], runtime: PipelineRuntime) -> dict[str, Any]:
    """Generate the standard questions for each persona's round, keyed by round type.

    Without personas, or when every provider fails, each round gets the
    placeholder question set and the run records a warning.
    """
    personas = list(state.get("personas") or [])
    if not personas:
        return {
            "standard_questions": {rt.value: fallback_questions(rt) for rt in RoundType},
            "warnings": [PLACEHOLDER_QUESTIONS_WARNING],
            "progress": 40,
        }

    prompts = [standard_questions_prompt(p) for p in personas]
    try:
        question_sets = await runtime.batch.invoke_batch(TaskName.QUESTION_GENERATION, StandardQuestionSet, prompts)
    except AllProvidersExhaustedError as e:
        logger.warning("standard_questions_failed", run_id=state.get("run_id"), error=str(e))
        return {
            "standard_questions": {
                p["round_type"]: fallback_questions(RoundType(p["round_type"])) for p in personas
            },
            "warnings": [f"Standard question generation failed: {e}"],
            "progress": 40,
        }

    standard_questions = {}
    for persona, question_set in zip(personas, question_sets):
        round_type = persona["round_type"]
        standard_questions[round_type] = [
            q.model_copy(update={"id": f"{round_type}-q{number}"}).model_dump(mode="json")
            for number, q in enumerate(question_set.questions, start=1)
        ]

    append_run_log(
        state.get("run_id", ""), "INFO", "generate_standard_questions",
        f"Generated standard questions for {len(standard_questions)} rounds",
    )
    return {"standard_questions": standard_questions, "progress": 40}
