"""Persistence adapters for generated curricula."""
import asyncio
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import boto3
from botocore.exceptions import ClientError
import structlog

from curriculum_engine.config import Settings
from curriculum_engine.models.enums import StorageBackend
from curriculum_engine.utils.retry import retry_with_backoff

logger = structlog.get_logger(__name__)


def build_curriculum_record(curriculum_id: str, state: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten the final pipeline state into the stored curriculum document."""
    job = state.get("job_data") or {}
    return {
        "curriculum_id": curriculum_id,
        "run_id": state.get("run_id", ""),
        "title": f"{job.get('title', 'Interview')} at {job.get('company_name', 'Unknown')}",
        "job": job,
        "company": state.get("company_context") or {},
        "role_patterns": state.get("role_patterns") or {},
        "structure": state.get("structure") or {},
        "rounds": list(state.get("rounds") or []),
        "personas": list(state.get("personas") or []),
        "standard_questions": dict(state.get("standard_questions") or {}),
        "quality_score": state.get("quality"),
        "best_effort": bool(state.get("best_effort", False)),
        "refinement_attempts": state.get("refinement_attempts", 0),
        "warnings": list(state.get("warnings") or []),
        "errors": list(state.get("errors") or []),
        "created_at": datetime.now(timezone.utc).isoformat(),
    }


class CurriculumStore(ABC):
    """Persistence boundary called by the terminal pipeline node.

    Storage errors propagate unchanged.
    """

    @abstractmethod
    async def persist(self, state: Mapping[str, Any]) -> str:
        ...

    @abstractmethod
    async def get(self, curriculum_id: str) -> Optional[Dict[str, Any]]:
        ...


class InMemoryCurriculumStore(CurriculumStore):
    """In-memory store for local development and tests."""

    def __init__(self) -> None:
        self._items: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    async def persist(self, state: Mapping[str, Any]) -> str:
        curriculum_id = str(uuid.uuid4())
        record = build_curriculum_record(curriculum_id, state)
        with self._lock:
            self._items[curriculum_id] = record
        logger.info("curriculum_persisted", curriculum_id=curriculum_id, backend="memory")
        return curriculum_id

    async def get(self, curriculum_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._items.get(curriculum_id)
            return dict(item) if item else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def _convert_floats(obj: Any) -> Any:
    """Convert float values to Decimal for DynamoDB compatibility."""
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: _convert_floats(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_floats(i) for i in obj]
    return obj


def _convert_decimals(obj: Any) -> Any:
    """Convert Decimal values back to int/float from DynamoDB responses."""
    if isinstance(obj, Decimal):
        return int(obj) if obj == obj.to_integral_value() else float(obj)
    if isinstance(obj, dict):
        return {k: _convert_decimals(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_decimals(i) for i in obj]
    return obj


class DynamoCurriculumStore(CurriculumStore):
    """DynamoDB-backed store; the table is keyed by ``curriculum_id``."""

    def __init__(self, table: Any):
        self._table = table

    @classmethod
    def from_settings(cls, settings: Settings) -> "DynamoCurriculumStore":
        resource = boto3.resource(
            "dynamodb",
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        )
        return cls(resource.Table(settings.DYNAMO_TABLE_CURRICULA))

    @retry_with_backoff(max_retries=3, initial_delay=0.5, retryable_exceptions=(ClientError,))
    def _put(self, item: Dict[str, Any]) -> None:
        self._table.put_item(Item=item)

    async def persist(self, state: Mapping[str, Any]) -> str:
        curriculum_id = str(uuid.uuid4())
        record = _convert_floats(build_curriculum_record(curriculum_id, state))
        await asyncio.to_thread(self._put, record)
        logger.info("curriculum_persisted", curriculum_id=curriculum_id, backend="dynamo")
        return curriculum_id

    async def get(self, curriculum_id: str) -> Optional[Dict[str, Any]]:
        response = await asyncio.to_thread(self._table.get_item, Key={"curriculum_id": curriculum_id})
        item = response.get("Item")
        return _convert_decimals(item) if item else None


def create_curriculum_store(settings: Settings) -> CurriculumStore:
    backend = StorageBackend(settings.STORAGE_BACKEND)
    if backend is StorageBackend.DYNAMO:
        return DynamoCurriculumStore.from_settings(settings)
    return InMemoryCurriculumStore()
