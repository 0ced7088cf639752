"""Terminal node: persist the curriculum through the injected store."""

from datetime import datetime, timezone
from typing import Any, Mapping

from curriculum_engine.orchestrator.runtime import PipelineRuntime
from curriculum_engine.utils.logger import append_run_log


async def save_curriculum(state: Mapping[str, Any], runtime: PipelineRuntime) -> dict[str, Any]:
    curriculum_id = await runtime.store.persist(state)
    append_run_log(state.get("run_id", ""), "INFO", "save_curriculum", f"Saved curriculum {curriculum_id}")
    return {
        "curriculum_id": curriculum_id,
        "end_time": datetime.now(timezone.utc).isoformat(),
        "progress": 100,
    }
