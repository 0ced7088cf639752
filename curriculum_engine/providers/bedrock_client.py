"""Model handle for AWS Bedrock via the Converse API (Claude, Llama, etc.)."""
import asyncio
from typing import Any, Dict

import boto3
from botocore.config import Config

from curriculum_engine.providers.base import Completion, CompletionRequest, ModelHandle
from curriculum_engine.utils.logger import get_logger

logger = get_logger("bedrock_client")


def build_bedrock_client(
    region: str,
    access_key_id: str,
    secret_access_key: str,
    timeout: float,
    max_retries: int,
):
    """Get a Bedrock Runtime client with bounded read timeout and retries."""
    return boto3.client(
        "bedrock-runtime",
        region_name=region,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        config=Config(
            read_timeout=timeout,
            connect_timeout=min(timeout, 10),
            retries={"max_attempts": max_retries + 1, "mode": "standard"},
        ),
    )


class BedrockHandle(ModelHandle):
    """Invoke a Bedrock model through Converse.

    boto3 is blocking, so each call runs in a worker thread.
    """

    def __init__(self, client: Any, model: str, provider: str = "bedrock"):
        super().__init__(provider, model)
        self._client = client

    def _converse(self, request: CompletionRequest) -> Dict[str, Any]:
        inference_config: Dict[str, Any] = {
            "maxTokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.top_p is not None:
            inference_config["topP"] = request.top_p

        kwargs: Dict[str, Any] = {
            "modelId": self.model,
            "messages": [{"role": "user", "content": [{"text": request.prompt}]}],
            "inferenceConfig": inference_config,
        }
        if request.system_prompt:
            kwargs["system"] = [{"text": request.system_prompt}]

        return self._client.converse(**kwargs)

    async def complete(self, request: CompletionRequest) -> Completion:
        response = await asyncio.to_thread(self._converse, request)
        content_blocks = response.get("output", {}).get("message", {}).get("content", [])
        text = "".join(block["text"] for block in content_blocks if "text" in block)
        usage = response.get("usage", {})
        tokens = usage.get("totalTokens") or usage.get("inputTokens", 0) + usage.get("outputTokens", 0)
        if response.get("stopReason") == "max_tokens":
            logger.warning("bedrock_response_truncated", model=self.model, max_tokens=request.max_tokens)
        return Completion(text=text, tokens_used=tokens)
