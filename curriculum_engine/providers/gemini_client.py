"""Google Gemini handle built on the google-genai SDK."""

from typing import Any, Optional

from google import genai
from google.genai import types

from curriculum_engine.providers.base import Completion, CompletionRequest, ModelHandle


def _grounding_metadata(response: Any) -> Optional[dict[str, Any]]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    metadata = getattr(candidates[0], "grounding_metadata", None)
    if metadata is None:
        return None
    return metadata.model_dump(exclude_none=True)


class GeminiHandle(ModelHandle):
    def __init__(self, client: genai.Client, model: str, provider: str = "gemini"):
        super().__init__(provider, model)
        self._client = client

    async def complete(self, request: CompletionRequest) -> Completion:
        config = types.GenerateContentConfig(
            temperature=request.temperature,
            max_output_tokens=request.max_tokens,
            top_p=request.top_p,
            system_instruction=request.system_prompt or None,
            response_mime_type="application/json" if request.json_mode else None,
        )
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=request.prompt,
            config=config,
        )
        usage = response.usage_metadata
        tokens = (usage.total_token_count or 0) if usage else 0
        return Completion(
            text=response.text or "",
            tokens_used=tokens,
            grounding=_grounding_metadata(response),
        )


def build_gemini_client(api_key: str, timeout: float) -> genai.Client:
    # HttpOptions timeout is expressed in milliseconds
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=int(timeout * 1000)),
    )
