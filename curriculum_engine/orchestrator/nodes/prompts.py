"""Prompt builders for the curriculum nodes."""

import json
from typing import Any, Iterable, Mapping, Optional

from curriculum_engine.models.enums import RoundType

ROUND_TYPE_FOCUS: dict[RoundType, str] = {
    RoundType.RECRUITER_SCREEN: "motivation, role fit and logistics",
    RoundType.BEHAVIORAL_DEEP_DIVE: "past behaviour, impact and ownership",
    RoundType.CULTURE_VALUES_ALIGNMENT: "company values and team collaboration",
    RoundType.STRATEGIC_ROLE_DISCUSSION: "strategy, trade-offs and domain depth",
    RoundType.EXECUTIVE_FINAL: "vision, leadership and long-term fit",
}


def _profile_block(profile: Optional[Mapping[str, Any]]) -> str:
    if not profile:
        return ""
    return f"\nCandidate profile: {json.dumps(dict(profile), default=str)}"


def job_parsing_prompt(user_input: str) -> str:
    return (
        "Extract the structured job posting from the text below. "
        "If the level is unclear, infer it from the title.\n\n"
        f"Job input:\n{user_input}"
    )


def company_research_prompt(job: Mapping[str, Any]) -> str:
    return (
        f"Research {job.get('company_name')} for a candidate interviewing as "
        f"{job.get('title')} ({job.get('level')}).\n"
        "Return the company context (industry, size, values, culture highlights, recent news) "
        "and the typical interview process for this role (rounds, focus areas, formats)."
    )


def persona_prompt(
    round_number: int,
    round_type: RoundType,
    job: Mapping[str, Any],
    company: Mapping[str, Any],
) -> str:
    return (
        f"Create the interviewer persona for round {round_number} ({round_type.value}) "
        f"of the {job.get('title')} interview loop at {company.get('name')}.\n"
        f"This round focuses on {ROUND_TYPE_FOCUS[round_type]}.\n"
        f"Company values: {', '.join(company.get('values', []))}\n"
        f"Use id 'persona-{round_number}', round_number {round_number} and round_type '{round_type.value}'."
    )


def structure_prompt(
    job: Mapping[str, Any],
    company: Mapping[str, Any],
    role: Mapping[str, Any],
    profile: Optional[Mapping[str, Any]],
) -> str:
    allowed = ", ".join(rt.value for rt in RoundType)
    return (
        "Design the interview curriculum structure for:\n"
        f"Role: {job.get('title')} ({job.get('level')})\n"
        f"Company: {company.get('name', 'Unknown')}\n"
        f"Typical rounds: {role.get('typical_rounds')}\n"
        f"Focus areas: {', '.join(role.get('focus_areas', []))}\n"
        f"Round types must be one of: {allowed}. Number rounds from 1."
        + _profile_block(profile)
    )


def round_prompt(
    definition: Mapping[str, Any],
    job: Mapping[str, Any],
    company: Mapping[str, Any],
    persona: Optional[Mapping[str, Any]] = None,
    weak_areas: Iterable[str] = (),
    standard_questions: Iterable[Mapping[str, Any]] = (),
) -> str:
    lines = [
        "Generate detailed interview round content:",
        f"Round: {definition['title']} ({definition['type']})",
        f"Duration: {definition['duration_minutes']} minutes",
        f"Focus: {', '.join(definition.get('focus_areas', []))}",
        f"Job: {job.get('title')} at {company.get('name', 'Unknown')}",
    ]
    if persona:
        identity = persona.get("identity", {})
        lines.append(f"Interviewer: {identity.get('name')}, {identity.get('role')}")
    questions = [q["text"] for q in standard_questions]
    if questions:
        lines.append(f"Build on these standard questions: {' | '.join(questions)}")
    weak = list(weak_areas)
    if weak:
        lines.append(f"A previous draft was weak in: {'; '.join(weak)}. Address these explicitly.")
    return "\n".join(lines)


def quality_prompt(job: Mapping[str, Any], company: Mapping[str, Any], rounds: list[Mapping[str, Any]]) -> str:
    return (
        "Evaluate this interview curriculum.\n"
        f"Job: {job.get('title')} at {company.get('name', 'Unknown')}\n"
        f"Level: {job.get('level')}\n"
        f"Rounds: {json.dumps(rounds, default=str)}\n\n"
        "Score 0-100: coverage of requirements (30%), appropriate difficulty (25%), "
        "clear evaluation criteria (20%), realistic progression (15%), completeness (10%). "
        "List the weak areas needing improvement."
    )


def standard_questions_prompt(persona: Mapping[str, Any]) -> str:
    round_type = RoundType(persona["round_type"])
    identity = persona.get("identity", {})
    knowledge = persona.get("knowledge_base", {})
    return (
        f"Generate the standard interview questions for round {persona.get('round_number')} "
        f"({round_type.value}), asked by {identity.get('name')}, {identity.get('role')}.\n"
        f"Personality: {', '.join(identity.get('personality_traits', []))}\n"
        f"Strategic advantages: {', '.join(knowledge.get('strategic_advantages', []))}\n"
        f"Recent developments: {', '.join(knowledge.get('recent_developments', []))}\n"
        f"Competitive context: {knowledge.get('competitive_context', '')}\n"
        "Write 6 questions any interviewer might ask in this round, each with natural follow-ups. "
        "Strong answers should draw on the company context above."
    )
