from typing import List, Optional

import httpx

from app.logging_config import get_logger
from app.services.llm.base import LLMError, LLMProvider, LLMResponse

logger = get_logger("llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions over plain HTTP."""

    def __init__(self, api_key: str, default_model: str = "gpt-4o", base_url: str = "https://api.openai.com/v1"):
        self.api_key = api_key
        self.default_model = default_model
        self.completions_url = f"{base_url.rstrip('/')}/chat/completions"

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.8,
        max_tokens: int = 200,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        model = model or self.default_model
        timeout = timeout_seconds if timeout_seconds is not None else 30.0

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

        with httpx.Client(timeout=timeout) as client:
            response = client.post(
                self.completions_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )

        if response.status_code != 200:
            logger.error(
                "OpenAI completion failed",
                extra={"context": {"status_code": response.status_code, "body": response.text[:500]}},
            )
            raise LLMError(f"OpenAI API error: {response.status_code}", status_code=response.status_code)

        data = response.json()
        content = ""
        choices = data.get("choices") or []
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""
        logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}")

        return LLMResponse(
            content=content.strip(),
            model=data.get("model", model),
            usage=data.get("usage"),
        )
