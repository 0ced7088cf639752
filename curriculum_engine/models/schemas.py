"""All Pydantic models (structured outputs, results and API payloads) for the curriculum engine."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import RoundType


# ──────────────────────────────────────────────────
#  Structured model outputs
# ──────────────────────────────────────────────────

JobLevel = Literal["intern", "entry", "junior", "mid", "senior", "lead", "principal", "staff", "executive"]


class ParsedJob(BaseModel):
    title: str = Field(min_length=1)
    company_name: str = Field(min_length=1)
    level: JobLevel = "mid"
    responsibilities: List[str] = Field(default_factory=list)
    required_skills: List[str] = Field(default_factory=list)
    preferred_skills: List[str] = Field(default_factory=list)
    experience_level: str = ""
    location: str = ""
    work_arrangement: Literal["onsite", "remote", "hybrid"] = "onsite"
    source_url: Optional[str] = None
    raw_description: Optional[str] = None
    parsing_confidence: Optional[float] = None
    id: Optional[str] = None


class CompanyContext(BaseModel):
    name: str = Field(min_length=1)
    industry: str = Field(min_length=1)
    size: Optional[str] = None
    values: List[str] = Field(default_factory=list, max_length=8)
    culture_highlights: List[str] = Field(default_factory=list, max_length=5)
    recent_news: List[str] = Field(default_factory=list, max_length=3)


class RoleAnalysis(BaseModel):
    typical_rounds: int = Field(ge=2, le=8)
    focus_areas: List[str] = Field(min_length=1)
    interview_formats: List[str] = Field(default_factory=list)
    similar_roles: List[str] = Field(default_factory=list)
    interview_difficulty: str = ""
    preparation_recommendations: List[str] = Field(default_factory=list)


class CompanyResearch(BaseModel):
    """Single company research response carrying company context and role patterns."""
    company: CompanyContext
    role: RoleAnalysis


class PersonaIdentity(BaseModel):
    name: str = Field(min_length=1)
    role: str = Field(min_length=1)
    tenure_years: int = Field(ge=1, le=15)
    personality_traits: List[str] = Field(min_length=2, max_length=5)


class PersonaKnowledge(BaseModel):
    strategic_advantages: List[str] = Field(min_length=1, max_length=3)
    recent_developments: List[str] = Field(min_length=1, max_length=3)
    competitive_context: str = Field(min_length=1)


class InterviewerPersona(BaseModel):
    id: str
    round_number: int = Field(ge=1, le=5)
    round_type: RoundType
    identity: PersonaIdentity
    knowledge_base: PersonaKnowledge


QuestionCategory = Literal["motivation", "behavioral", "cultural", "strategic"]


class StandardQuestion(BaseModel):
    id: str = ""
    text: str = Field(min_length=1)
    category: QuestionCategory
    follow_ups: List[str] = Field(default_factory=list)
    time_allocation_minutes: int = Field(default=4, ge=1)


class StandardQuestionSet(BaseModel):
    questions: List[StandardQuestion] = Field(min_length=1, max_length=8)


class RoundDefinition(BaseModel):
    round_number: int = Field(ge=1)
    type: RoundType
    title: str
    focus_areas: List[str] = Field(default_factory=list)
    duration_minutes: int = Field(ge=1)


class StructureDesign(BaseModel):
    total_rounds: int = Field(ge=1)
    difficulty_level: Literal["beginner", "intermediate", "advanced", "expert"]
    rounds: List[RoundDefinition] = Field(min_length=1)


class RoundPersona(BaseModel):
    name: str
    role: str
    personality: str = ""
    communication_style: str = ""
    goal: str = ""


class SampleQuestion(BaseModel):
    text: str
    difficulty: Optional[str] = None
    expected_duration: Optional[float] = None


class RoundTopic(BaseModel):
    topic: str
    subtopics: List[str] = Field(default_factory=list)
    depth: Literal["basic", "intermediate", "advanced"] = "intermediate"
    time_allocation: Optional[int] = None
    must_cover: bool = True
    questions: List[SampleQuestion] = Field(default_factory=list)


class EvaluationCriterion(BaseModel):
    criterion: str
    weight: float
    rubric: str


class RoundContent(BaseModel):
    interviewer_persona: RoundPersona
    topics: List[RoundTopic] = Field(default_factory=list)
    evaluation_criteria: List[EvaluationCriterion] = Field(default_factory=list)
    sample_questions: List[SampleQuestion] = Field(default_factory=list)
    opening_script: Optional[str] = None
    closing_script: Optional[str] = None


class QualityEvaluation(BaseModel):
    overall_score: int = Field(ge=0, le=100)
    weak_areas: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


# ──────────────────────────────────────────────────
#  Pipeline artifacts
# ──────────────────────────────────────────────────

class GeneratedRound(BaseModel):
    round_number: int
    round_type: RoundType
    title: str
    description: str
    duration_minutes: int
    interviewer_persona: RoundPersona
    topics_to_cover: List[RoundTopic] = Field(default_factory=list)
    evaluation_criteria: List[EvaluationCriterion] = Field(default_factory=list)
    sample_questions: List[SampleQuestion] = Field(default_factory=list)
    opening_script: str = "Welcome to the interview."
    closing_script: str = "Thank you for your time."
    passing_score: int = 70

    @classmethod
    def from_content(cls, definition: RoundDefinition, content: RoundContent) -> "GeneratedRound":
        topic_count = max(len(content.topics), 1)
        topics = [
            topic.model_copy(update={
                "time_allocation": topic.time_allocation
                if topic.time_allocation is not None
                else round(definition.duration_minutes / topic_count),
            })
            for topic in content.topics
        ]
        sample_questions = content.sample_questions or [
            q for topic in content.topics for q in topic.questions
        ]
        return cls(
            round_number=definition.round_number,
            round_type=definition.type,
            title=definition.title,
            description=f"{definition.type.value} interview focusing on {', '.join(definition.focus_areas)}",
            duration_minutes=definition.duration_minutes,
            interviewer_persona=content.interviewer_persona,
            topics_to_cover=topics,
            evaluation_criteria=content.evaluation_criteria,
            sample_questions=sample_questions,
            opening_script=content.opening_script or "Welcome to the interview.",
            closing_script=content.closing_script or "Thank you for your time.",
        )


class GenerationResult(BaseModel):
    """Outcome of one provider call. Immutable once returned."""
    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    content: str
    tokens_used: int = 0
    cost_cents: float = 0.0
    latency_ms: float = 0.0
    cached: bool = False
    grounding: Optional[Dict[str, Any]] = None


class ProviderUsage(BaseModel):
    provider: str
    total_requests: int = 0
    total_tokens: int = 0
    total_cost_cents: float = 0.0
    average_latency_ms: float = 0.0
    errors: int = 0
    success_rate: float = 1.0


# ──────────────────────────────────────────────────
#  API request/response models
# ──────────────────────────────────────────────────

class UserProfile(BaseModel):
    name: Optional[str] = None
    experience_years: Optional[int] = Field(default=None, ge=0)
    focus_areas: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)


class GenerateCurriculumRequest(BaseModel):
    user_input: str = Field(min_length=1, max_length=20000)
    user_profile: Optional[UserProfile] = None


class GenerateCurriculumResponse(BaseModel):
    run_id: str
    curriculum_id: str
    quality: Optional[int] = None
    best_effort: bool = False
    refinement_attempts: int = 0
    warnings: List[str] = Field(default_factory=list)


class ProviderStatusResponse(BaseModel):
    available: Dict[str, bool]
    usage: List[ProviderUsage] = Field(default_factory=list)
    budget: Dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "1.0.0"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    providers: Dict[str, bool] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
