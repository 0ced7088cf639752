"""Anthropic messages API handle."""

from anthropic import AsyncAnthropic

from curriculum_engine.providers.base import Completion, CompletionRequest, ModelHandle


class AnthropicHandle(ModelHandle):
    def __init__(self, client: AsyncAnthropic, model: str, provider: str = "anthropic"):
        super().__init__(provider, model)
        self._client = client

    async def complete(self, request: CompletionRequest) -> Completion:
        kwargs = {
            "model": self.model,
            "max_tokens": request.max_tokens,
            "temperature": min(request.temperature, 1.0),
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_prompt:
            kwargs["system"] = request.system_prompt
        if request.top_p is not None:
            kwargs["top_p"] = request.top_p

        response = await self._client.messages.create(**kwargs)
        text = "".join(block.text for block in response.content if block.type == "text")
        tokens = response.usage.input_tokens + response.usage.output_tokens
        return Completion(text=text, tokens_used=tokens)


def build_anthropic_client(api_key: str, timeout: float, max_retries: int) -> AsyncAnthropic:
    return AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=max_retries)
