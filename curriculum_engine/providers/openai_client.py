"""OpenAI chat completions handle."""

from openai import AsyncOpenAI

from curriculum_engine.providers.base import Completion, CompletionRequest, ModelHandle


class OpenAIHandle(ModelHandle):
    def __init__(self, client: AsyncOpenAI, model: str, provider: str = "openai"):
        super().__init__(provider, model)
        self._client = client

    async def complete(self, request: CompletionRequest) -> Completion:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        kwargs = {
            "model": self.model,
            "messages": messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.top_p is not None:
            kwargs["top_p"] = request.top_p
        if request.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._client.chat.completions.create(**kwargs)
        text = response.choices[0].message.content or ""
        tokens = response.usage.total_tokens if response.usage else 0
        return Completion(text=text, tokens_used=tokens)


def build_openai_client(api_key: str, timeout: float, max_retries: int) -> AsyncOpenAI:
    return AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
