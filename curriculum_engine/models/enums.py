"""Enums used across the curriculum engine."""
from enum import Enum


class ProviderName(str, Enum):
    GEMINI = "gemini"
    GEMINI_PRO = "gemini-pro"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    BEDROCK = "bedrock"


class TaskName(str, Enum):
    JOB_PARSING = "job_parsing"
    COMPANY_RESEARCH = "company_research"
    PERSONA_GENERATION = "persona_generation"
    QUESTION_GENERATION = "question_generation"
    STRUCTURE_DESIGN = "structure_design"
    ROUND_GENERATION = "round_generation"
    QUALITY_EVALUATION = "quality_evaluation"


class RoundType(str, Enum):
    RECRUITER_SCREEN = "recruiter_screen"
    BEHAVIORAL_DEEP_DIVE = "behavioral_deep_dive"
    CULTURE_VALUES_ALIGNMENT = "culture_values_alignment"
    STRATEGIC_ROLE_DISCUSSION = "strategic_role_discussion"
    EXECUTIVE_FINAL = "executive_final"


class GateState(str, Enum):
    GENERATED = "generated"
    EVALUATED = "evaluated"
    REFINING = "refining"
    PERSISTED = "persisted"
    PERSISTED_WITH_ERRORS = "persisted_with_errors"


class StorageBackend(str, Enum):
    MEMORY = "memory"
    DYNAMO = "dynamo"
